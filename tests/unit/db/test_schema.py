"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from dossier.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def _add_file(conn, filename="cv.txt") -> int:
    cur = conn.execute(
        "INSERT INTO files (filename, applicant, content, content_hash) VALUES (?, ?, ?, ?)",
        (filename, "a1", "text", "hash"),
    )
    return cur.lastrowid


def test_users_columns(tmp_db):
    assert _table_columns(tmp_db, "users") == {
        "user_id", "first_name", "last_name", "email", "role", "api_key", "salt", "created_at",
    }


def test_files_columns(tmp_db):
    assert _table_columns(tmp_db, "files") == {
        "file_id", "filename", "applicant", "content", "content_hash", "processed", "created_at",
    }


def test_chunks_columns(tmp_db):
    assert _table_columns(tmp_db, "chunks") == {
        "chunk_id", "file_id", "chunk_index", "content", "token_count", "embedding_state",
        "embedding_attempts", "embedding_error", "created_at",
    }


def test_schema_version_recorded(tmp_db):
    assert _table_exists(tmp_db, "schema_version")
    version = tmp_db.execute("SELECT version FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    rows = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert rows == 1
    # the file id seed is not re-applied
    assert _add_file(tmp_db) == 1000
    initialize(tmp_db)
    assert _add_file(tmp_db, "b.txt") == 1001


def test_role_check_constraint(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO users (user_id, email, role, salt) VALUES ('u', 'u@x', 'owner', 's')"
        )


def test_embedding_state_check_constraint(tmp_db):
    file_id = _add_file(tmp_db)
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO chunks (file_id, chunk_index, content, token_count, embedding_state)"
            " VALUES (?, 0, 'x', 1, 'queued')",
            (file_id,),
        )


def test_chunk_index_unique_per_file(tmp_db):
    file_id = _add_file(tmp_db)
    sql = "INSERT INTO chunks (file_id, chunk_index, content, token_count) VALUES (?, 0, 'x', 1)"
    tmp_db.execute(sql, (file_id,))
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(sql, (file_id,))


def test_files_cascade_to_chunks(tmp_db):
    file_id = _add_file(tmp_db)
    tmp_db.execute(
        "INSERT INTO chunks (file_id, chunk_index, content, token_count) VALUES (?, 0, 'x', 1)",
        (file_id,),
    )
    tmp_db.execute("DELETE FROM files WHERE file_id = ?", (file_id,))
    count = tmp_db.execute("SELECT COUNT(*) FROM chunks WHERE file_id = ?", (file_id,)).fetchone()[0]
    assert count == 0


def test_chunks_fts_porter_stemming(tmp_db):
    tmp_db.execute("INSERT INTO chunks_fts(rowid, content) VALUES (42, 'managed large teams')")
    tmp_db.execute("INSERT INTO chunks_fts(rowid, content) VALUES (43, 'wrote firmware')")
    rows = tmp_db.execute(
        "SELECT rowid FROM chunks_fts WHERE chunks_fts MATCH 'managing' ORDER BY bm25(chunks_fts)"
    ).fetchall()
    assert [r[0] for r in rows] == [42]


def test_chunks_fts_folds_case_and_diacritics(tmp_db):
    tmp_db.execute("INSERT INTO chunks_fts(rowid, content) VALUES (7, 'Jürgen Müller, Überlingen')")
    for term in ("überlingen", "Überlingen", "muller", "JURGEN"):
        rows = tmp_db.execute(
            "SELECT rowid FROM chunks_fts WHERE chunks_fts MATCH ?", (f'"{term}"',)
        ).fetchall()
        assert [r[0] for r in rows] == [7], term
