"""Forward-only migration runner for the dossier database schema.

Vec tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id         TEXT PRIMARY KEY,
    first_name      TEXT NOT NULL DEFAULT '',
    last_name       TEXT NOT NULL DEFAULT '',
    email           TEXT NOT NULL UNIQUE,
    role            TEXT NOT NULL DEFAULT 'viewer'
                    CHECK (role IN ('admin', 'viewer', 'inactive')),
    api_key         TEXT UNIQUE,
    salt            TEXT NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS files (
    file_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    filename        TEXT NOT NULL CHECK (filename <> ''),
    applicant       TEXT NOT NULL CHECK (applicant <> ''),
    content         TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    processed       INTEGER NOT NULL DEFAULT 0,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_files_applicant ON files (applicant);
CREATE INDEX IF NOT EXISTS idx_files_filename ON files (filename);

CREATE TABLE IF NOT EXISTS chunks (
    chunk_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id             INTEGER NOT NULL REFERENCES files(file_id) ON DELETE CASCADE,
    chunk_index         INTEGER NOT NULL CHECK (chunk_index >= 0),
    content             TEXT NOT NULL,
    token_count         INTEGER NOT NULL,
    embedding_state     TEXT NOT NULL DEFAULT 'pending'
                        CHECK (embedding_state IN ('pending', 'embedded', 'failed')),
    embedding_attempts  INTEGER NOT NULL DEFAULT 0,
    embedding_error     TEXT,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (file_id, chunk_index)
);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(content, tokenize='porter unicode61 remove_diacritics 2');

-- File ids start at 1000.
INSERT INTO sqlite_sequence (name, seq)
SELECT 'files', 999
WHERE NOT EXISTS (SELECT 1 FROM sqlite_sequence WHERE name = 'files');
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
