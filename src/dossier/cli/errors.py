"""Dossier rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from dossier.cli.errors import err_no_db, err_from
    console.print(err_no_db(".dossier.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from dossier.errors import (
    DossierError,
    EmbeddingUnavailable,
    Forbidden,
    IndexInconsistency,
    NotFoundError,
    OperationTimeout,
    Unauthorized,
    ValidationError,
)


def err_no_db(db_path: str = ".dossier.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  dossier init"
    )


def err_no_api_key() -> str:
    """Command needs an API key and none was given."""
    return (
        "[red]Error:[/] No API key given.\n"
        "  Pass --api-key or set:  export DOSSIER_API_KEY=<key>\n"
        "  An administrator can create one with:  dossier users add <user-id> --email <email>"
    )


def err_unauthorized() -> str:
    return (
        "[red]Error:[/] Unknown API key.\n"
        "  Check DOSSIER_API_KEY, or list users with:  dossier users list"
    )


def err_forbidden(detail: str) -> str:
    return (
        f"[red]Error:[/] Permission denied: {detail}\n"
        "  Ask an administrator to run:  dossier users set-role <user-id> admin"
    )


def err_file_not_found(detail: str) -> str:
    return (
        f"[yellow]Not found:[/] {detail}\n"
        "  Run:  dossier status  to see all stored files."
    )


def err_embedding_unavailable(model: str, detail: str) -> str:
    """Query embedding failed — suggest lexical mode."""
    return (
        f"[red]Error:[/] Embedding model '{model}' is unavailable: {detail}\n"
        "  Check the model server, or search without embeddings:\n"
        "    dossier search <query> --mode lexical"
    )


def err_config(detail: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n  {detail}\n"
        "  Fix dossier.yaml (or ~/.dossier/config.yaml) and retry."
    )


def err_busy(detail: str) -> str:
    return (
        f"[red]Error:[/] {detail}\n"
        "  Another process is working on the same data. Retry in a moment."
    )


def err_inconsistent(detail: str) -> str:
    return (
        f"[red]Error:[/] Index inconsistency detected: {detail}\n"
        "  Remove and re-ingest the affected file:  dossier remove --file-id <id>"
    )


def err_from(exc: DossierError, model: str = "") -> str:
    """Actionable message for a core error."""
    if isinstance(exc, Unauthorized):
        return err_unauthorized()
    if isinstance(exc, Forbidden):
        return err_forbidden(str(exc))
    if isinstance(exc, NotFoundError):
        return err_file_not_found(str(exc))
    if isinstance(exc, EmbeddingUnavailable):
        return err_embedding_unavailable(model, str(exc))
    if isinstance(exc, OperationTimeout):
        return err_busy(str(exc))
    if isinstance(exc, IndexInconsistency):
        return err_inconsistent(str(exc))
    if isinstance(exc, ValidationError):
        return f"[red]Error:[/] {exc}"
    return f"[red]Error:[/] {type(exc).__name__}: {exc}"
