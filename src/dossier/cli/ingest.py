"""dossier ingest — register documents for an applicant.

Each file is read as UTF-8 text, chunked, embedded and marked processed.
Re-ingesting an unchanged file is a no-op; a changed file replaces the
stored version.

Usage:
  dossier ingest --applicant a-1042 cv.txt motivation.md
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from dossier.cli.session import ApiKeyOption, DbOption, console, load_settings, open_dossier, require_api_key
from dossier.db.models import EmbeddingState


def ingest_cmd(
    files: Annotated[
        list[Path],
        typer.Argument(help="Text files to ingest.", exists=True, dir_okay=False, readable=True),
    ],
    applicant: Annotated[str, typer.Option("--applicant", "-a", help="Applicant the files belong to.")],
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-chunk embedding timeout in seconds."),
    ] = None,
    api_key: ApiKeyOption = None,
    db: DbOption = None,
) -> None:
    """Ingest one or more files for an applicant (admin)."""
    key = require_api_key(api_key)
    cfg = load_settings(db)

    with open_dossier(cfg) as dossier:
        for path in files:
            try:
                content = path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                console.print(f"  [red]✗[/] {path}: not UTF-8 text — skipping")
                continue

            with Progress(
                SpinnerColumn(), TextColumn("{task.description}"), console=console, transient=True
            ) as progress:
                progress.add_task(f"{path.name}: chunking + embedding …", total=None)
                file = dossier.register(key, path.name, applicant, content, timeout)

            stats = dossier.store.stats(file.file_id)
            failed = stats[EmbeddingState.FAILED]
            total = sum(stats.values())
            mark = "[green]✓[/]" if not failed else "[yellow]⚠[/]"
            console.print(
                f"  {mark} {path.name} → file {file.file_id}  "
                f"({total} chunks, {stats[EmbeddingState.EMBEDDED]} embedded, {failed} failed)"
            )
            if failed:
                console.print(f"    Retry later:  dossier retry --file-id {file.file_id}")
