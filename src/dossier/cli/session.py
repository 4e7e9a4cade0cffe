"""Shared plumbing for dossier commands: config, database, API key."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from dossier.cli.errors import err_config, err_from, err_no_api_key, err_no_db
from dossier.config import ConfigError, DossierConfig, load_config
from dossier.db.connection import Database
from dossier.engine import Dossier
from dossier.errors import DossierError
from dossier.logging_config import configure_logging

console = Console()

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the database (default: database.path from dossier.yaml)."),
]
ApiKeyOption = Annotated[
    str | None,
    typer.Option(
        "--api-key",
        envvar="DOSSIER_API_KEY",
        help="Your API key (or set DOSSIER_API_KEY).",
        show_default=False,
    ),
]


def load_settings(db: Path | None = None) -> DossierConfig:
    """Load config, apply --db, and configure logging. Exits on a bad config."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.database.path = str(db)
    configure_logging(cfg.logging.level, cfg.logging.json)
    return cfg


def require_api_key(api_key: str | None) -> str:
    if not api_key:
        console.print(err_no_api_key())
        raise typer.Exit(1)
    return api_key


@contextmanager
def open_dossier(cfg: DossierConfig, *, must_exist: bool = True) -> Iterator[Dossier]:
    """Yield a Dossier over the configured database.

    Core errors raised inside the block are printed as actionable messages
    and turned into exit code 1.
    """
    path = Path(cfg.database.path)
    if must_exist and not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    dossier = Dossier(Database(path, busy_timeout=cfg.database.busy_timeout), cfg)
    try:
        yield dossier
    except DossierError as exc:
        console.print(err_from(exc, cfg.embedding.model))
        raise typer.Exit(1) from exc
    finally:
        dossier.close()
