"""Typer application for the ``molstore`` admin command.

Entry point: ``molstore`` (``project.scripts`` in pyproject.toml).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from molstore.cli.commands.inspect_cmd import hash_cmd, info_cmd, list_cmd, verify_cmd
from molstore.cli.commands.manage import remove_cmd, sweep_cmd, wipe_cmd
from molstore.cli.commands.save_cmd import save_cmd
from molstore.config import config

app = typer.Typer(
    name="molstore",
    help="Molstore: content-hashed archive store for molecular simulation inputs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    """Route all ``logging`` output through Rich at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (default: MOLSTORE_LOG_LEVEL)."
    ),
) -> None:
    configure_logging(log_level or config.log_level)


# Register subcommands
app.command(name="list", help="List stored molecules.")(list_cmd)
app.command(name="info", help="Show a molecule's metadata.")(info_cmd)
app.command(name="hash", help="Recompute a molecule archive's hash.")(hash_cmd)
app.command(name="verify", help="Check an archive against its recorded hash.")(verify_cmd)
app.command(name="remove", help="Remove molecules.")(remove_cmd)
app.command(name="wipe", help="Remove every stored molecule.")(wipe_cmd)
app.command(name="sweep", help="Find inconsistent files in the storage root.")(sweep_cmd)
app.command(name="save", help="Transform and store a molecule from local files.")(save_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
