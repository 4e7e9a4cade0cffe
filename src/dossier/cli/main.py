"""Dossier CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from dossier.cli.ingest import ingest_cmd
from dossier.cli.init import init_cmd
from dossier.cli.remove import remove_cmd
from dossier.cli.retry import retry_cmd
from dossier.cli.search import search_cmd
from dossier.cli.status import status_cmd
from dossier.cli.users import users_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("applicant-dossier")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dossier {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="dossier",
    help=(
        "Dossier — hybrid retrieval store for applicant documents.\n\n"
        "  dossier ingest  Chunk, embed and index an applicant's files.\n"
        "  dossier search  Keyword + semantic search, optionally per applicant."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Dossier — hybrid retrieval store for applicant documents."""


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("remove")(remove_cmd)
app.command("status")(status_cmd)
app.command("retry")(retry_cmd)
app.add_typer(users_app, name="users")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Dossier version."""
    typer.echo(f"dossier {_installed_version()}")


if __name__ == "__main__":
    app()
