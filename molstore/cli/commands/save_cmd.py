"""``molstore save`` — store a molecule from local files.

Runs the same pipeline as the web service: stage, transform, archive,
hash, write metadata.  Prints the new identifier.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from molstore.cli.commands._store import ROOT_OPTION, open_store
from molstore.core.errors import (
    InvalidInputError,
    StorageIOError,
    TransformationFailedError,
)
from molstore.models.molecule import UploadedFile

console = Console()


def _upload(path: Path) -> UploadedFile:
    size = path.stat().st_size if path.is_file() else 0
    return UploadedFile(original_name=path.name, path=path, size=size)


def save_cmd(
    pdb: Path = typer.Option(..., "--pdb", help="Coordinate file."),
    top: Path = typer.Option(..., "--top", help="Topology file."),
    itp: list[Path] = typer.Option([], "--itp", help="Fragment file (repeatable)."),
    force_field: str = typer.Option(..., "--force-field", "-f", help="Force field name."),
    root: Path = ROOT_OPTION,
) -> None:
    """Transform and store a molecule."""
    store = open_store(root)
    try:
        save = store.save([_upload(p) for p in itp], _upload(pdb), _upload(top), force_field)
    except InvalidInputError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(code=1)
    except TransformationFailedError as exc:
        diagnostics = exc.diagnostics()
        console.print(f"[red]Transformation failed:[/red] {exc.reason}")
        if diagnostics.stderr:
            console.print(Panel(diagnostics.stderr, title="stderr", border_style="red"))
        if diagnostics.stdout:
            console.print(Panel(diagnostics.stdout, title="stdout", border_style="dim"))
        raise typer.Exit(code=1)
    except StorageIOError as exc:
        console.print(f"[red]Storage failure:[/red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                "[bold green]Molecule stored![/bold green]",
                f"[bold]ID:[/bold] {save.id}",
                f"[bold]Archive:[/bold] {save.name}",
                f"[bold]Hash:[/bold] {save.infos.hash}",
            ]),
            border_style="green",
        )
    )
