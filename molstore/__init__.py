"""Molstore: content-hashed archive store for molecular simulation inputs.

Turns uploaded topology/coordinate bundles into durable artifacts:
  - per-save scratch workspaces, always cleaned up
  - pluggable transformation engine (canonical topology + CONECT coordinates)
  - deterministic ZIP archives, published atomically
  - MD5 integrity hash and JSON metadata sidecar per archive
  - snowflake identifiers, listing, removal, consistency sweep
  - asyncio facade and a Typer/Rich admin CLI
"""

__version__ = "0.1.0"
__description__ = "Content-hashed archive store for molecular simulation inputs"

from molstore.core.errors import (
    CorruptArtifactError,
    InvalidInputError,
    MoleculeStoreError,
    SaveCancelledError,
    StorageIOError,
    TransformationFailedError,
)
from molstore.core.molecule_store import MoleculeStore

__all__ = [
    "MoleculeStore",
    "MoleculeStoreError",
    "InvalidInputError",
    "TransformationFailedError",
    "StorageIOError",
    "CorruptArtifactError",
    "SaveCancelledError",
    "__version__",
]
