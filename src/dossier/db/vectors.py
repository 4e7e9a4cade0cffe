"""Per-model sqlite-vec virtual table management."""

from __future__ import annotations

import re
import sqlite3

EMBEDDING_DIMENSIONS = 768


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "ollama/nomic-embed-text" -> "ollama_nomic_embed_text"
        "huggingface/intfloat/multilingual-e5-base" -> "huggingface_intfloat_multilingual_e5_base"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(
    conn: sqlite3.Connection, model_slug: str, dimensions: int = EMBEDDING_DIMENSIONS
) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    The table stores one cosine-distance vector per embedded chunk
    (rowid = chunk_id) plus ``applicant`` and ``file_id`` metadata columns,
    so KNN queries can be restricted to one applicant before ranking.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions.

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    conn.execute(
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING vec0("
        f"embedding float[{dimensions}] distance_metric=cosine, "
        "applicant text, "
        "file_id integer)"
    )
    return table


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Return True if *table* exists in the database."""
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        is not None
    )
