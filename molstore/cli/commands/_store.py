"""Shared helpers for CLI commands: store construction and the root option."""

from __future__ import annotations

from pathlib import Path

import typer

from molstore.config import config
from molstore.core.molecule_store import MoleculeStore

ROOT_OPTION = typer.Option(
    None,
    "--root",
    "-r",
    help="Molecule storage directory (default: MOLSTORE_MOLECULE_ROOT_DIR).",
)


def open_store(root: Path | None) -> MoleculeStore:
    """Build a store from the active config, optionally overriding its root."""
    settings = config
    if root is not None:
        settings = config.model_copy(update={"molecule_root_dir": root})
    return MoleculeStore.from_settings(settings)
