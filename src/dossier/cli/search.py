"""dossier search — query the store.

Usage:
  dossier search "python developer" --applicant a-1042 --top-k 5
  dossier search "python developer" --mode lexical
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from dossier.cli.session import ApiKeyOption, DbOption, console, load_settings, open_dossier, require_api_key

_SNIPPET_CHARS = 80


def search_cmd(
    query: Annotated[str, typer.Argument(help="Query text.")],
    applicant: Annotated[
        str | None,
        typer.Option("--applicant", "-a", help="Only search this applicant's files."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Maximum number of results."),
    ] = None,
    mode: Annotated[
        str | None,
        typer.Option("--mode", "-m", help="lexical | vector | hybrid (default from config)."),
    ] = None,
    api_key: ApiKeyOption = None,
    db: DbOption = None,
) -> None:
    """Search chunks by keywords and semantic similarity (viewer)."""
    key = require_api_key(api_key)
    cfg = load_settings(db)

    with open_dossier(cfg) as dossier:
        results = dossier.search(key, query, applicant, top_k, mode)

    if not results:
        console.print("[dim]No matching chunks.[/]")
        return

    table = Table(title=f"Results for '{query}' ({mode or cfg.retrieval.mode})")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Chunk", justify="right", style="dim")
    table.add_column("File")
    table.add_column("Applicant")
    table.add_column("Text")
    for i, hit in enumerate(results, start=1):
        text = " ".join(hit.chunk.content.split())
        if len(text) > _SNIPPET_CHARS:
            text = text[: _SNIPPET_CHARS - 1] + "…"
        table.add_row(
            str(i),
            f"{hit.score:.4f}",
            str(hit.chunk.chunk_id),
            f"{hit.filename}#{hit.chunk.chunk_index}",
            hit.applicant,
            text,
        )
    console.print(table)
