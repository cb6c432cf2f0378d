"""Deterministic ZIP packaging of a molecule's canonical files.

Entries are flat (basename only), streamed from disk in the order given, with
a fixed timestamp and a fixed DEFLATE level, so identical inputs give identical
archives for a given zlib version.

The archive is written to a hidden ``.<name>.part`` file next to the target
and renamed into place once the ZIP central directory has been flushed and
the file closed.  If anything fails, the partial file is deleted and
``StorageIOError`` is raised: no truncated archive is ever visible under
the target name.
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
from pathlib import Path

from molstore.core.errors import StorageIOError
from molstore.models.molecule import FileDescriptor

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 6
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_COPY_BUFSIZE = 64 * 1024


def part_path_for(target: Path) -> Path:
    """Temporary path an archive is written to before being published."""
    return target.with_name(f".{target.name}.part")


def describe(path: Path, name: str | None = None) -> FileDescriptor:
    """Archive descriptor (entry name and byte size) for a file on disk."""
    path = Path(path)
    return FileDescriptor(name=name or path.name, size=path.stat().st_size)


class ArchiveBuilder:
    """Packages files into a single compressed archive.

    Parameters
    ----------
    compression_level:
        zlib level used for every entry.  Fixed per store, not per save.
    """

    def __init__(self, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> None:
        if not 0 <= compression_level <= 9:
            raise ValueError(f"compression_level must be 0-9, got {compression_level}")
        self._level = compression_level

    @property
    def compression_level(self) -> int:
        return self._level

    def build(self, target: Path, entries: list[tuple[str, Path]]) -> Path:
        """Write *entries* into a ZIP at *target* and return *target*.

        Each ``(name, path)`` pair becomes one entry called *name* holding
        the bytes of *path*.  Names are reduced to their basename.
        """
        target = Path(target)
        part = part_path_for(target)
        try:
            with zipfile.ZipFile(
                part,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self._level,
            ) as zf:
                for name, path in entries:
                    info = zipfile.ZipInfo(Path(name).name, date_time=_FIXED_DATE_TIME)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    info.external_attr = 0o644 << 16
                    info.file_size = Path(path).stat().st_size
                    # ZipFile.open() only honours a per-entry level set here
                    info._compresslevel = self._level
                    with zf.open(info, "w") as dst, open(path, "rb") as src:
                        shutil.copyfileobj(src, dst, _COPY_BUFSIZE)
            os.replace(part, target)
        except (OSError, zipfile.BadZipFile) as exc:
            part.unlink(missing_ok=True)
            raise StorageIOError(f"Could not write archive {target.name}: {exc}") from exc
        except BaseException:
            part.unlink(missing_ok=True)
            raise

        logger.debug(
            "Wrote archive %s (%d entries, %d bytes)",
            target,
            len(entries),
            target.stat().st_size,
        )
        return target
