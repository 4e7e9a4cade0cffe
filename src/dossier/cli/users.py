"""dossier users — local administration of the identity directory.

These commands operate directly on the database file and do not go through
the access gate; whoever can write the file is the administrator.

Usage:
  dossier users add jdoe --email jdoe@example.com --role admin
  dossier users list
  dossier users set-role jdoe inactive
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from dossier.cli.session import DbOption, console, load_settings, open_dossier
from dossier.db.models import Role

users_app = typer.Typer(help="Manage users, roles and API keys.", no_args_is_help=True)


@users_app.command("add")
def add_cmd(
    user_id: Annotated[str, typer.Argument(help="Unique user id.")],
    email: Annotated[str, typer.Option("--email", help="Unique email address.")],
    role: Annotated[Role, typer.Option("--role", help="Initial role.")] = Role.VIEWER,
    first_name: Annotated[str, typer.Option("--first-name")] = "",
    last_name: Annotated[str, typer.Option("--last-name")] = "",
    db: DbOption = None,
) -> None:
    """Provision a user and print their API key."""
    cfg = load_settings(db)
    with open_dossier(cfg) as dossier:
        user = dossier.directory.provision(
            user_id, email, first_name=first_name, last_name=last_name, role=role
        )
    console.print(f"[green]✓[/] User '{user.user_id}' ({user.role.value})")
    console.print(f"  API key (shown once):  [bold]{user.api_key}[/]")


@users_app.command("list")
def list_cmd(db: DbOption = None) -> None:
    """List users and their roles."""
    cfg = load_settings(db)
    with open_dossier(cfg) as dossier:
        users = dossier.directory.list_users()

    if not users:
        console.print("[dim]No users. Add one with:  dossier users add <user-id> --email <email>[/]")
        return

    table = Table(title="Users")
    table.add_column("User", style="bold")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Created", style="dim")
    for user in users:
        name = f"{user.first_name} {user.last_name}".strip()
        role_style = {Role.ADMIN: "green", Role.VIEWER: "cyan", Role.INACTIVE: "dim"}[user.role]
        table.add_row(
            user.user_id,
            name,
            user.email,
            f"[{role_style}]{user.role.value}[/]",
            user.created_at or "",
        )
    console.print(table)


@users_app.command("set-role")
def set_role_cmd(
    user_id: Annotated[str, typer.Argument(help="User id.")],
    role: Annotated[Role, typer.Argument(help="New role.")],
    db: DbOption = None,
) -> None:
    """Change a user's role (inactive disables the user's API key)."""
    cfg = load_settings(db)
    with open_dossier(cfg) as dossier:
        user = dossier.directory.set_role(user_id, role)
    console.print(f"[green]✓[/] {user.user_id} is now {user.role.value}")
