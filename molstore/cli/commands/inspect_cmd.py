"""Read-only commands: ``list``, ``info``, ``hash``, ``verify``."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from molstore.cli.commands._store import ROOT_OPTION, open_store
from molstore.core.errors import CorruptArtifactError

console = Console()


def list_cmd(
    force_field: str = typer.Option(
        None, "--force-field", "-f", help="Only show molecules built with this force field."
    ),
    prefix: str = typer.Option(
        None, "--prefix", "-p", help="Only show identifiers starting with this prefix."
    ),
    root: Path = ROOT_OPTION,
) -> None:
    """List stored molecules."""
    store = open_store(root)
    predicate = (lambda name: name.startswith(prefix)) if prefix else None

    rows = [
        (file_id, info)
        for file_id, info in store.iter_infos(predicate)
        if force_field is None or info.force_field == force_field
    ]
    if not rows:
        console.print("[dim]No molecules stored.[/dim]")
        return

    table = Table(title=f"Molecules in {store.root}")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Force field", style="green")
    table.add_column("PDB")
    table.add_column("TOP")
    table.add_column("ITP", justify="right")

    for file_id, info in sorted(rows, key=lambda r: r[0]):
        table.add_row(
            file_id,
            info.force_field,
            info.pdb.name,
            info.top.name,
            str(len(info.itp)),
        )
    console.print(table)


def info_cmd(
    file_id: str = typer.Argument(..., help="Molecule identifier."),
    root: Path = ROOT_OPTION,
) -> None:
    """Show the metadata record of a molecule."""
    store = open_store(root)
    try:
        info = store.get_info(file_id)
    except CorruptArtifactError as exc:
        console.print(f"[red]Corrupt molecule:[/red] {exc}")
        raise typer.Exit(code=1)

    if info is None:
        console.print(f"[yellow]Molecule #{file_id} not found.[/yellow]")
        raise typer.Exit(code=1)

    lines = [
        f"[bold]Force field:[/bold] {info.force_field}",
        f"[bold]Hash:[/bold] {info.hash}",
        f"[bold]PDB:[/bold] {info.pdb.name} ({info.pdb.size:,} bytes)",
        f"[bold]TOP:[/bold] {info.top.name} ({info.top.size:,} bytes)",
    ]
    for itp in info.itp:
        lines.append(f"[bold]ITP:[/bold] {itp.name} ({itp.size:,} bytes)")
    lines.append(f"[dim]{store.archive_path(file_id)}[/dim]")

    console.print(Panel("\n".join(lines), title=f"[bold]Molecule #{file_id}[/bold]"))


def hash_cmd(
    file_id: str = typer.Argument(..., help="Molecule identifier."),
    root: Path = ROOT_OPTION,
) -> None:
    """Recompute the MD5 hash of a stored archive."""
    digest = open_store(root).hash(file_id)
    if digest is None:
        console.print(f"[yellow]Molecule #{file_id} not found.[/yellow]")
        raise typer.Exit(code=1)
    console.print(digest)


def verify_cmd(
    file_id: str = typer.Argument(..., help="Molecule identifier."),
    root: Path = ROOT_OPTION,
) -> None:
    """Check a stored archive against the hash recorded in its metadata."""
    store = open_store(root)
    if not store.exists(file_id):
        console.print(f"[yellow]Molecule #{file_id} not found.[/yellow]")
        raise typer.Exit(code=1)

    if store.verify(file_id):
        console.print(f"[green]OK[/green] #{file_id}")
    else:
        console.print(f"[red]MISMATCH[/red] #{file_id}")
        raise typer.Exit(code=1)
