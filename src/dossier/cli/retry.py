"""dossier retry — finish interrupted ingestion and re-embed failed chunks.

Usage:
  dossier retry
  dossier retry --file-id 1003
"""

from __future__ import annotations

from typing import Annotated

import typer

from dossier.cli.session import ApiKeyOption, DbOption, console, load_settings, open_dossier, require_api_key


def retry_cmd(
    file_id: Annotated[
        int | None,
        typer.Option("--file-id", "-f", help="Only retry chunks of this file."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-chunk embedding timeout in seconds."),
    ] = None,
    api_key: ApiKeyOption = None,
    db: DbOption = None,
) -> None:
    """Resume unprocessed files, then retry failed embeddings once (admin)."""
    key = require_api_key(api_key)
    cfg = load_settings(db)

    with open_dossier(cfg) as dossier:
        if file_id is None:
            resumed = dossier.resume(key, timeout)
            if resumed:
                console.print(f"[green]✓[/] Resumed {len(resumed)} unprocessed file(s)")
        embedded = dossier.retry_failed(key, file_id, timeout)

    console.print(f"[green]✓[/] {embedded} chunk(s) embedded on retry")
