"""Error taxonomy for the molecule store.

Every error raised by a store operation derives from ``MoleculeStoreError``
so callers can separate "your files were invalid" from "the server could not
store them" with two ``except`` clauses.  A missing artifact is not an error:
lookups return ``None``.
"""

from __future__ import annotations

from pathlib import Path

from molstore.models.molecule import ProcessDiagnostics


class MoleculeStoreError(RuntimeError):
    """Base class for all molecule store failures."""


class InvalidInputError(MoleculeStoreError):
    """Raised when required input files are missing or malformed before staging."""


class TransformationFailedError(MoleculeStoreError):
    """Raised when the transformation engine rejects the staged files.

    Parameters
    ----------
    reason:
        Short human-readable description of what failed.
    workdir:
        The scratch workspace the engine ran in.  Captured program output
        (``*.stdout`` / ``*.stderr``) was written there.
    diagnostics:
        Program output captured before the workspace was torn down.  When
        absent, ``diagnostics()`` reads it from ``workdir`` on demand.
    """

    def __init__(
        self,
        reason: str,
        workdir: Path,
        *,
        diagnostics: ProcessDiagnostics | None = None,
    ) -> None:
        super().__init__(f"{reason} (workdir: {workdir})")
        self.reason = reason
        self.workdir = Path(workdir)
        self._diagnostics = diagnostics

    def diagnostics(self) -> ProcessDiagnostics:
        """Return the captured stdout/stderr of the failed transformation."""
        if self._diagnostics is None:
            from molstore.core.diagnostics import dump_std_from_dir

            self._diagnostics = dump_std_from_dir(self.workdir)
        return self._diagnostics

    def capture(self) -> None:
        """Read diagnostics from ``workdir`` now, before it is deleted."""
        self.diagnostics()


class StorageIOError(MoleculeStoreError):
    """Raised when writing the archive or metadata to the storage root fails."""


class CorruptArtifactError(MoleculeStoreError):
    """Raised when an archive exists but its metadata is missing or unreadable."""


class SaveCancelledError(MoleculeStoreError):
    """Raised when a save is cancelled before its archive was published."""
