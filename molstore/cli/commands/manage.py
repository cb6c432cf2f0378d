"""Destructive commands: ``remove``, ``wipe``, ``sweep``."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from molstore.cli.commands._store import ROOT_OPTION, open_store
from molstore.core.errors import StorageIOError

console = Console()


def remove_cmd(
    file_ids: list[str] = typer.Argument(..., help="Molecule identifiers."),
    root: Path = ROOT_OPTION,
) -> None:
    """Remove molecules.  Missing identifiers are ignored."""
    store = open_store(root)
    for file_id in file_ids:
        store.remove(file_id)
        console.print(f"Removed #{file_id}")


def wipe_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    root: Path = ROOT_OPTION,
) -> None:
    """Delete every stored molecule."""
    store = open_store(root)
    if not yes:
        typer.confirm(f"Delete every file in {store.root}?", abort=True)
    try:
        store.remove_all()
    except StorageIOError as exc:
        console.print(f"[red]Wipe failed:[/red] {exc}")
        raise typer.Exit(code=1)
    console.print(f"[green]Wiped[/green] {store.root}")


def sweep_cmd(
    delete: bool = typer.Option(False, "--delete", help="Delete the inconsistent files."),
    root: Path = ROOT_OPTION,
) -> None:
    """Report archives without metadata, metadata without archives, temp files."""
    store = open_store(root)
    report = store.sweep(delete=delete)
    if report.is_clean:
        console.print("[green]Storage root is consistent.[/green]")
        return

    table = Table(title="Inconsistent files")
    table.add_column("Kind", style="yellow")
    table.add_column("Name")
    for file_id in report.orphan_archives:
        table.add_row("archive without metadata", file_id)
    for file_id in report.orphan_metadata:
        table.add_row("metadata without archive", file_id)
    for name in report.stale_temp_files:
        table.add_row("temporary file", name)
    console.print(table)

    if report.deleted:
        console.print("[green]Deleted.[/green]")
