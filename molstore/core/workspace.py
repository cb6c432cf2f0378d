"""Per-save scratch workspaces.

Each save copies its uploads into a fresh, uniquely named temporary
directory under canonical names, and the transformation engine works only
inside that directory.  ``ScratchWorkspace`` is a context manager: the
directory is removed on every exit path (success, transformation failure,
storage failure).

Canonical names are ``<stem><ext>`` where ``<stem>`` is the client-supplied
filename with any directory part and everything from the first dot removed,
and ``<ext>`` is fixed by the file's role (``.pdb``, ``.top``, ``.itp``).
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from molstore.core.errors import InvalidInputError, StorageIOError
from molstore.models.molecule import StagedInput, StagedMolecule, UploadedFile

logger = logging.getLogger(__name__)

PDB_EXT = ".pdb"
TOP_EXT = ".top"
ITP_EXT = ".itp"


def canonical_name(original_name: str, extension: str) -> str:
    """Return the on-disk name used for an upload inside a workspace.

    >>> canonical_name("dir/Mol.v2.itp", ".itp")
    'Mol.itp'
    """
    basename = original_name.replace("\\", "/").rsplit("/", 1)[-1]
    stem = basename.split(".", 1)[0]
    if not stem:
        raise InvalidInputError(
            f"Cannot derive a file name from upload {original_name!r}"
        )
    return stem + extension


def validate_inputs(
    itp_files: list[UploadedFile],
    pdb_file: UploadedFile | None,
    top_file: UploadedFile | None,
    force_field: str,
) -> None:
    """Reject a save before anything is staged or transformed.

    Checks that the coordinate and topology files are given, that every
    upload still exists on disk, that fragment names do not collide once
    canonicalized, and that a force field was named.
    """
    if pdb_file is None:
        raise InvalidInputError("A coordinate (PDB) file is required")
    if top_file is None:
        raise InvalidInputError("A topology (TOP) file is required")
    if not force_field or not force_field.strip():
        raise InvalidInputError("A force field must be specified")

    for upload in [pdb_file, top_file, *itp_files]:
        if not Path(upload.path).is_file():
            raise InvalidInputError(
                f"Uploaded file {upload.original_name!r} is missing on disk"
            )

    seen: set[str] = set()
    for upload in itp_files:
        name = canonical_name(upload.original_name, ITP_EXT)
        if name in seen:
            raise InvalidInputError(f"Duplicate fragment file name {name!r}")
        seen.add(name)

    # Raises on unusable names
    canonical_name(pdb_file.original_name, PDB_EXT)
    canonical_name(top_file.original_name, TOP_EXT)


class ScratchWorkspace:
    """A temporary directory that lives exactly as long as one save.

    Parameters
    ----------
    base_dir:
        Parent for the workspace directory.  ``None`` uses the system
        temporary-file root.
    keep:
        Leave the directory on disk after exit.  Debugging aid only.
    """

    def __init__(self, base_dir: Path | None = None, *, keep: bool = False) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._keep = keep
        self._path: Path | None = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Workspace is not open")
        return self._path

    def __enter__(self) -> ScratchWorkspace:
        try:
            if self._base_dir is not None:
                self._base_dir.mkdir(parents=True, exist_ok=True)
            self._path = Path(tempfile.mkdtemp(prefix="molstore-", dir=self._base_dir))
        except OSError as exc:
            raise StorageIOError(f"Could not create scratch workspace: {exc}") from exc
        logger.debug("Opened scratch workspace %s", self._path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Delete the workspace directory.  Safe to call more than once."""
        if self._path is None:
            return
        path, self._path = self._path, None
        if self._keep:
            logger.info("Keeping scratch workspace %s", path)
            return
        shutil.rmtree(path, ignore_errors=True)
        logger.debug("Removed scratch workspace %s", path)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_file(self, upload: UploadedFile, extension: str) -> StagedInput:
        """Copy one upload into the workspace under its canonical name."""
        staged_name = canonical_name(upload.original_name, extension)
        target = self.path / staged_name
        shutil.copyfile(upload.path, target)
        size = target.stat().st_size
        logger.debug(
            "Staged %s as %s (%d bytes)", upload.original_name, staged_name, size
        )
        return StagedInput(
            original_name=upload.original_name,
            staged_name=staged_name,
            path=target,
            size=size,
        )

    def stage(
        self,
        itp_files: list[UploadedFile],
        pdb_file: UploadedFile,
        top_file: UploadedFile,
    ) -> StagedMolecule:
        """Copy all inputs of a save into the workspace.

        File contents are not inspected here; the transformation engine is
        the judge of whether they make sense.
        """
        pdb = self.stage_file(pdb_file, PDB_EXT)
        top = self.stage_file(top_file, TOP_EXT)
        itp = [self.stage_file(f, ITP_EXT) for f in itp_files]
        return StagedMolecule(workdir=self.path, pdb=pdb, top=top, itp=itp)
