"""Molecule artifact store — archive + metadata pairs keyed by snowflake.

Storage layout (one flat directory)::

    {root}/{id}.zip    compressed archive of the canonical files
    {root}/{id}.json   MoleculeSaveInfo record (UTF-8 JSON)

Save pipeline, strictly sequential::

    validate -> stage -> build topology -> build CONECT pdb
        -> archive -> hash -> metadata -> return id

Both files are written under hidden temporary names and renamed into place;
the metadata is published only after the archive has been published and
hashed.  The identifier is returned only after every step has succeeded, so
no caller ever holds the id of a partial save.  The scratch workspace is
deleted on every exit path.

The store holds no lock: concurrent saves use separate workspaces and
distinct identifiers.  ``remove_all()`` and ``sweep(delete=True)`` must not
run concurrently with saves.
"""

from __future__ import annotations

import io
import logging
import os
import re
import threading
import zipfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from molstore.core.archive_builder import (
    DEFAULT_COMPRESSION_LEVEL,
    ArchiveBuilder,
    describe,
)
from molstore.core.errors import (
    CorruptArtifactError,
    SaveCancelledError,
    StorageIOError,
    TransformationFailedError,
)
from molstore.core.hasher import md5_file
from molstore.core.metadata_writer import finalize
from molstore.core.snowflake import SnowflakeGenerator
from molstore.core.transformer import MoleculeTransformer, transform
from molstore.core.workspace import ScratchWorkspace, validate_inputs
from molstore.models.molecule import (
    MoleculeSave,
    MoleculeSaveInfo,
    StagedMolecule,
    SweepReport,
    UploadedFile,
)

if TYPE_CHECKING:
    from molstore.config import StoreSettings

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".zip"
INFO_SUFFIX = ".json"

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class MoleculeStore:
    """Stores transformed molecule files as ZIP archives with JSON metadata.

    Parameters
    ----------
    root:
        Storage directory.  Created on construction if missing.
    transformer:
        Transformation engine used by ``save()``.
    id_generator:
        Returns a new unique identifier per call.  Defaults to a
        ``SnowflakeGenerator``.
    tmp_base_dir:
        Parent directory for scratch workspaces (system temp if ``None``).
    compression_level:
        DEFLATE level of every archive written by this store.
    """

    def __init__(
        self,
        root: Path,
        transformer: MoleculeTransformer,
        *,
        id_generator: Callable[[], str] | None = None,
        tmp_base_dir: Path | None = None,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    ) -> None:
        self._root = Path(root)
        self._transformer = transformer
        self._new_id = id_generator or SnowflakeGenerator()
        self._tmp_base_dir = tmp_base_dir
        self._builder = ArchiveBuilder(compression_level)
        self.ensure_root()

    @classmethod
    def from_settings(cls, settings: StoreSettings | None = None) -> MoleculeStore:
        """Build a store and its GROMACS transformer from ``StoreSettings``."""
        from molstore.config import config as default_config
        from molstore.core.transformer import GromacsTransformer

        settings = settings or default_config
        transformer = GromacsTransformer(
            settings.force_field_dir,
            conect_command=settings.conect_command or None,
            conect_mdp=settings.conect_mdp_path,
            timeout=settings.transform_timeout_seconds,
        )
        return cls(
            settings.molecule_root_dir,
            transformer,
            id_generator=SnowflakeGenerator(settings.worker_id),
            tmp_base_dir=settings.tmp_base_dir,
            compression_level=settings.compression_level,
        )

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> None:
        """Create the storage root.  Idempotent; an existing root is fine."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            if not self._root.is_dir():
                raise StorageIOError(
                    f"Cannot create storage root {self._root}: {exc}"
                ) from exc
            logger.debug("Storage root %s exists (%s)", self._root, exc)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def archive_path(self, file_id: str) -> Path:
        """Full path of the archive for *file_id* (streamable to clients)."""
        return self._root / f"{file_id}{ARCHIVE_SUFFIX}"

    def _info_path(self, file_id: str) -> Path:
        return self._root / f"{file_id}{INFO_SUFFIX}"

    @staticmethod
    def _is_valid_id(file_id: str) -> bool:
        return bool(file_id) and _ID_RE.match(file_id) is not None

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(
        self,
        itp_files: list[UploadedFile],
        pdb_file: UploadedFile,
        top_file: UploadedFile,
        force_field: str,
        *,
        cancel: threading.Event | None = None,
    ) -> MoleculeSave:
        """Transform, compress and store a molecule.

        Setting *cancel* from another thread stops the save, including a
        running CONECT program, as long as the archive is not yet published.

        Raises
        ------
        InvalidInputError
            A required file is missing or its name is unusable.
        TransformationFailedError
            The transformation engine rejected the files.  Diagnostics are
            captured before the workspace is deleted.
        StorageIOError
            The archive or metadata could not be written.  Nothing is left
            in the storage root.
        SaveCancelledError
            *cancel* was set before publication.  Nothing is left in the
            storage root and no identifier was issued.
        """
        validate_inputs(itp_files, pdb_file, top_file, force_field)
        logger.debug(
            "Saving %s + %s with %d fragments",
            pdb_file.original_name,
            top_file.original_name,
            len(itp_files),
        )

        with ScratchWorkspace(self._tmp_base_dir) as workspace:
            try:
                staged = workspace.stage(itp_files, pdb_file, top_file)
            except OSError as exc:
                raise StorageIOError(f"Could not stage uploads: {exc}") from exc

            try:
                outputs = transform(staged, self._transformer, force_field, cancel=cancel)
            except TransformationFailedError as exc:
                exc.capture()
                logger.info("Transformation rejected molecule: %s", exc.reason)
                raise

            if cancel is not None and cancel.is_set():
                raise SaveCancelledError("Save cancelled before publication")
            save_id = self._new_id()
            return self._publish(save_id, staged, outputs.top, outputs.pdb, force_field)

    def _publish(
        self,
        save_id: str,
        staged: StagedMolecule,
        top: Path,
        pdb: Path,
        force_field: str,
    ) -> MoleculeSave:
        archive = self.archive_path(save_id)
        top_name = staged.top.staged_name
        pdb_name = Path(pdb).name

        entries = [(i.staged_name, i.path) for i in staged.itp]
        entries.append((top_name, top))
        entries.append((pdb_name, pdb))

        try:
            self._builder.build(archive, entries)
            info = finalize(
                archive,
                self._info_path(save_id),
                pdb=describe(pdb, pdb_name),
                top=describe(top, top_name),
                itp=[describe(i.path, i.staged_name) for i in staged.itp],
                force_field=force_field,
            )
        except OSError as exc:
            archive.unlink(missing_ok=True)
            raise StorageIOError(f"Could not store molecule {save_id}: {exc}") from exc
        except StorageIOError:
            archive.unlink(missing_ok=True)
            raise

        logger.info(
            "Saved molecule #%s (%d files, hash=%s)", save_id, len(entries), info.hash
        )
        return MoleculeSave(id=save_id, name=archive, infos=info)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, file_id: str) -> bool:
        """True iff the archive for *file_id* is present."""
        return self._is_valid_id(file_id) and self.archive_path(file_id).is_file()

    def get(self, file_id: str) -> tuple[zipfile.ZipFile, MoleculeSaveInfo] | None:
        """Load the archive into memory and read its metadata.

        Returns ``None`` if no archive exists for *file_id*, including when
        it is removed while being read.

        Raises
        ------
        CorruptArtifactError
            The archive is unreadable, or its metadata is missing or invalid.
        StorageIOError
            The archive or metadata exists but cannot be read.
        """
        if not self.exists(file_id):
            return None
        try:
            data = self.archive_path(file_id).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageIOError(f"Could not read archive of #{file_id}: {exc}") from exc

        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise CorruptArtifactError(f"Archive of #{file_id} is unreadable") from exc

        info = self._read_info(file_id)
        if info is None:
            return None
        return archive, info

    def get_info(self, file_id: str) -> MoleculeSaveInfo | None:
        """Metadata of *file_id*, or ``None`` if no archive exists."""
        if not self.exists(file_id):
            return None
        return self._read_info(file_id)

    def _read_info(self, file_id: str) -> MoleculeSaveInfo | None:
        path = self._info_path(file_id)
        try:
            return MoleculeSaveInfo.model_validate_json(path.read_bytes())
        except FileNotFoundError as exc:
            # A concurrent remove() deletes the archive first
            if not self.exists(file_id):
                return None
            raise CorruptArtifactError(f"Metadata of #{file_id} is missing") from exc
        except ValidationError as exc:
            raise CorruptArtifactError(f"Metadata of #{file_id} is invalid") from exc
        except OSError as exc:
            raise StorageIOError(f"Could not read metadata of #{file_id}: {exc}") from exc

    def iter_infos(
        self, predicate: Callable[[str], bool] | None = None
    ) -> Iterator[tuple[str, MoleculeSaveInfo]]:
        """Yield ``(id, metadata)`` for every readable metadata record.

        *predicate* receives the metadata file name (``"<id>.json"``).
        Order is directory enumeration order.  Unreadable records are
        skipped with a warning.
        """
        with os.scandir(self._root) as it:
            names = [e.name for e in it if e.is_file()]

        for name in names:
            if name.startswith(".") or not name.endswith(INFO_SUFFIX):
                continue
            if predicate is not None and not predicate(name):
                continue
            try:
                info = MoleculeSaveInfo.model_validate_json(
                    (self._root / name).read_bytes()
                )
            except FileNotFoundError:
                continue
            except (OSError, ValidationError) as exc:
                logger.warning("Skipping unreadable metadata %s: %s", name, exc)
                continue
            yield name[: -len(INFO_SUFFIX)], info

    def list(
        self, predicate: Callable[[str], bool] | None = None
    ) -> list[MoleculeSaveInfo]:
        """Metadata of every stored molecule, optionally filtered by file name."""
        return [info for _, info in self.iter_infos(predicate)]

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def hash(self, file_id: str) -> str | None:
        """Recompute the MD5 of the stored archive, or ``None`` if absent."""
        if not self.exists(file_id):
            return None
        try:
            return md5_file(self.archive_path(file_id))
        except FileNotFoundError:
            return None

    def verify(self, file_id: str) -> bool:
        """True if the archive's current hash equals the recorded hash."""
        digest = self.hash(file_id)
        if digest is None:
            return False
        try:
            info = self._read_info(file_id)
        except CorruptArtifactError:
            return False
        return info is not None and info.hash == digest

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def remove(self, file_id: str) -> None:
        """Delete archive and metadata.  Never raises."""
        if not self._is_valid_id(file_id):
            return
        for path in (self.archive_path(file_id), self._info_path(file_id)):
            try:
                path.unlink()
            except OSError as exc:
                logger.debug("Could not remove %s: %s", path, exc)
        logger.debug("Removed save ID #%s", file_id)

    def remove_all(self) -> None:
        """Delete every file in the storage root.  Not safe during saves."""
        count = 0
        try:
            with os.scandir(self._root) as it:
                for entry in it:
                    if entry.is_file():
                        os.unlink(entry.path)
                        count += 1
        except OSError as exc:
            raise StorageIOError(f"Could not wipe {self._root}: {exc}") from exc
        logger.info("Removed %d files from %s", count, self._root)

    def sweep(self, *, delete: bool = False) -> SweepReport:
        """Find (and optionally delete) inconsistent files in the root.

        Reports archives without metadata, metadata without an archive, and
        leftover temporary files.  A save in progress looks like an orphan
        archive, so ``delete=True`` must not run concurrently with saves.
        """
        with os.scandir(self._root) as it:
            names = sorted(e.name for e in it if e.is_file())

        archives = {n[: -len(ARCHIVE_SUFFIX)] for n in names
                    if n.endswith(ARCHIVE_SUFFIX) and not n.startswith(".")}
        infos = {n[: -len(INFO_SUFFIX)] for n in names
                 if n.endswith(INFO_SUFFIX) and not n.startswith(".")}
        temps = [n for n in names if n.startswith(".")
                 and (n.endswith(".part") or n.endswith(".tmp"))]

        report = SweepReport(
            orphan_archives=sorted(archives - infos),
            orphan_metadata=sorted(infos - archives),
            stale_temp_files=temps,
            deleted=delete,
        )
        if report.is_clean:
            return report

        logger.warning(
            "Sweep of %s: %d orphan archives, %d orphan metadata, %d temp files",
            self._root,
            len(report.orphan_archives),
            len(report.orphan_metadata),
            len(report.stale_temp_files),
        )
        if delete:
            doomed = (
                [self.archive_path(i) for i in report.orphan_archives]
                + [self._info_path(i) for i in report.orphan_metadata]
                + [self._root / n for n in report.stale_temp_files]
            )
            for path in doomed:
                path.unlink(missing_ok=True)
        return report
