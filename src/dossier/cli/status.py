"""dossier status — store overview.

Shows database stats, files per applicant, and chunk embedding states.
Reads the database file directly, like the users commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from dossier.cli.session import DbOption, console, load_settings, open_dossier
from dossier.db.models import EmbeddingState, File
from dossier.engine import Dossier


def status_cmd(
    applicant: Annotated[
        str | None,
        typer.Option("--applicant", "-a", help="Only show files of this applicant."),
    ] = None,
    db: DbOption = None,
) -> None:
    """Show store status: files, chunks, and embedding coverage."""
    cfg = load_settings(db)
    db_path = Path(cfg.database.path)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  dossier init",
                title="[bold]Store[/]",
                expand=False,
            )
        )
        raise typer.Exit(0)

    with open_dossier(cfg) as dossier:
        files = (
            dossier.store.list_by_applicant(applicant)
            if applicant is not None
            else dossier.store.list_all()
        )
        stats = {f.file_id: dossier.store.stats(f.file_id) for f in files}
        _show_store_panel(dossier, db_path, len(files), stats)
        if files:
            _show_files_table(files, stats)


def _show_store_panel(
    dossier: Dossier,
    db_path: Path,
    n_files: int,
    stats: dict[int, dict[EmbeddingState, int]],
) -> None:
    totals = {state: sum(s[state] for s in stats.values()) for state in EmbeddingState}
    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:  {db_path} ({size_mb:.1f} MB)",
        f"Model:     {dossier.config.embedding.model}",
        f"Files: [bold]{n_files}[/]  |  Chunks: [bold]{sum(totals.values()):,}[/]",
        f"Embedded: [green]{totals[EmbeddingState.EMBEDDED]}[/]  |  "
        f"Failed: [red]{totals[EmbeddingState.FAILED]}[/]  |  "
        f"Pending: [yellow]{totals[EmbeddingState.PENDING]}[/]",
    ]
    if totals[EmbeddingState.FAILED] or totals[EmbeddingState.PENDING]:
        lines.append("\n  Run:  dossier retry")
    console.print(Panel("\n".join(lines), title="[bold]Store[/]", expand=False))


def _show_files_table(files: list[File], stats: dict[int, dict[EmbeddingState, int]]) -> None:
    table = Table(title="Files")
    table.add_column("Id", justify="right")
    table.add_column("Applicant")
    table.add_column("Filename", style="bold")
    table.add_column("Chunks", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Processed")
    for f in files:
        s = stats[f.file_id]
        table.add_row(
            str(f.file_id),
            f.applicant,
            f.filename,
            str(sum(s.values())),
            str(s[EmbeddingState.EMBEDDED]),
            str(s[EmbeddingState.FAILED]),
            "[green]✓[/]" if f.processed else "[yellow]…[/]",
        )
    console.print(table)
