"""dossier remove — delete files with their chunks and index entries.

Usage:
  dossier remove --file-id 1003
  dossier remove --applicant a-1042 --yes
"""

from __future__ import annotations

from typing import Annotated

import typer

from dossier.cli.session import ApiKeyOption, DbOption, console, load_settings, open_dossier, require_api_key


def remove_cmd(
    file_id: Annotated[
        int | None,
        typer.Option("--file-id", "-f", help="File to remove."),
    ] = None,
    applicant: Annotated[
        str | None,
        typer.Option("--applicant", "-a", help="Remove every file of this applicant."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    api_key: ApiKeyOption = None,
    db: DbOption = None,
) -> None:
    """Remove a file, or all files of an applicant (admin)."""
    if (file_id is None) == (applicant is None):
        console.print("[red]Error:[/] Give exactly one of --file-id or --applicant.")
        raise typer.Exit(1)

    key = require_api_key(api_key)
    cfg = load_settings(db)

    with open_dossier(cfg) as dossier:
        if file_id is not None:
            file = dossier.get(key, file_id)
            console.print(f"\nRemove file: [bold]{file.filename}[/] ({file.applicant}, id {file.file_id})")
        else:
            files = dossier.list_by_applicant(key, applicant)
            if not files:
                console.print(f"[yellow]No files for applicant '{applicant}'.[/]")
                raise typer.Exit(0)
            console.print(f"\nRemove [bold]{len(files)}[/] file(s) of applicant [bold]{applicant}[/]")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        if file_id is not None:
            removed = dossier.delete(key, file_id)
            console.print(f"\n[green]✓[/] Removed file {file_id} ({removed} chunks)")
        else:
            deleted = dossier.delete_applicant(key, applicant)
            console.print(f"\n[green]✓[/] Removed {deleted} file(s) of '{applicant}'")
