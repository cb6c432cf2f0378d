"""Archive hashing and sidecar metadata persistence.

The metadata record is the last thing a save writes.  Its hash is computed
from the archive as it sits on disk, after the archive has been published,
so the recorded value is exactly what a later ``hash()`` will recompute.
The JSON is written to a temporary name and renamed into place.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from molstore.core.errors import StorageIOError
from molstore.core.hasher import md5_file
from molstore.models.molecule import FileDescriptor, MoleculeSaveInfo

logger = logging.getLogger(__name__)


def tmp_path_for(target: Path) -> Path:
    """Temporary path a metadata record is written to before being published."""
    return target.with_name(f".{target.name}.tmp")


def write_info(target: Path, info: MoleculeSaveInfo) -> None:
    """Atomically write *info* as UTF-8 JSON at *target*."""
    tmp = tmp_path_for(target)
    try:
        tmp.write_text(info.model_dump_json(), encoding="utf-8")
        os.replace(tmp, target)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise StorageIOError(f"Could not write metadata {target.name}: {exc}") from exc


def finalize(
    archive_path: Path,
    info_path: Path,
    *,
    pdb: FileDescriptor,
    top: FileDescriptor,
    itp: list[FileDescriptor],
    force_field: str,
) -> MoleculeSaveInfo:
    """Hash the published archive and write its metadata record.

    Returns
    -------
    MoleculeSaveInfo
        The record exactly as written to *info_path*.
    """
    try:
        digest = md5_file(archive_path)
    except OSError as exc:
        raise StorageIOError(f"Could not hash archive {archive_path.name}: {exc}") from exc

    info = MoleculeSaveInfo(
        pdb=pdb,
        top=top,
        itp=list(itp),
        hash=digest,
        force_field=force_field,
    )
    write_info(info_path, info)
    logger.debug("Wrote metadata %s (hash=%s)", info_path, digest)
    return info
