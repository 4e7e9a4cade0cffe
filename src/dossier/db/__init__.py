"""Dossier database layer."""

from dossier.db.connection import Database, transaction
from dossier.db.migrations import MIGRATIONS, run_migrations
from dossier.db.schema import initialize
from dossier.db.vectors import EMBEDDING_DIMENSIONS, ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "transaction",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "EMBEDDING_DIMENSIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
