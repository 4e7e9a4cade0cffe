"""dossier init — create the database and a starter dossier.yaml.

Creates:
  .dossier.db     — empty store with schema and the vector table
  dossier.yaml    — project config (kept if it already exists)

With --admin/--email the first administrator is provisioned and their API
key printed once.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from dossier.cli.session import console, load_settings, open_dossier
from dossier.config import write_project_config
from dossier.db.models import Role

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    admin: Annotated[
        str | None,
        typer.Option("--admin", help="User id of the first administrator."),
    ] = None,
    email: Annotated[
        str | None,
        typer.Option("--email", help="Email of the first administrator."),
    ] = None,
) -> None:
    """Initialize a dossier store in PROJECT_DIR."""
    if (admin is None) != (email is None):
        console.print("[red]Error:[/] --admin and --email must be given together.")
        raise typer.Exit(1)

    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    cfg = load_settings()
    db_path = Path(cfg.database.path)
    if not db_path.is_absolute():
        db_path = project_dir / db_path
    existed = db_path.exists()

    config_path = write_project_config(project_dir, cfg)
    cfg.database.path = str(db_path)
    console.print(f"  [green]✓[/] {config_path.name}")

    with open_dossier(cfg, must_exist=False) as dossier:
        if existed:
            console.print(f"  [yellow]⚠[/] {db_path.name} already exists — schema checked, data kept")
        else:
            console.print(f"  [green]✓[/] {db_path.name}")

        if admin is not None and email is not None:
            user = dossier.directory.provision(admin, email, role=Role.ADMIN)
            console.print(f"  [green]✓[/] admin user '{user.user_id}'")
            console.print(f"\n  API key (shown once):  [bold]{user.api_key}[/]")
            console.print("  export DOSSIER_API_KEY=<key>")

    console.print("\n[bold]Done.[/] Next:  dossier ingest --applicant <id> <file>")
