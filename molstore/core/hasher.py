"""Hashing helpers for archive integrity.

Archive digests are MD5 hex strings computed over the bytes on disk, read in
fixed-size chunks so large archives never have to fit in memory.  MD5 is an
integrity check here, not a security boundary.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def md5_hex(data: bytes) -> str:
    """Return the MD5 hex digest of raw bytes."""
    return hashlib.md5(data).hexdigest()


def md5_file(path: Path) -> str:
    """Return the MD5 hex digest of a file's contents, streamed from disk."""
    digest = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
