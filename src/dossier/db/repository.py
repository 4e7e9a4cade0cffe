"""Repository pattern for all dossier database operations.

Single interface for: users, files, chunks, FTS5 search, vec embeddings.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.

Methods never commit on their own: callers group them with
``dossier.db.connection.transaction`` so a unit of work is atomic.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable

from dossier.db.models import Chunk, EmbeddingState, File, Role, User

_USER_COLUMNS = "user_id, first_name, last_name, email, role, api_key, salt, created_at"
_FILE_COLUMNS = "file_id, filename, applicant, content_hash, processed, created_at"
_CHUNK_COLUMNS = (
    "chunk_id, file_id, chunk_index, content, token_count, embedding_state, "
    "embedding_attempts, embedding_error, created_at"
)


class Repository:
    """Data access layer for all dossier database entities.

    Wraps an open sqlite3.Connection and provides typed methods for users,
    files, chunks, FTS5 search, and vec embeddings. The connection is owned by
    the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see dossier.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> None:
        """Insert a new user record. Raises sqlite3.IntegrityError on duplicates."""
        self._conn.execute(
            """
            INSERT INTO users (user_id, first_name, last_name, email, role, api_key, salt)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user.user_id,
                user.first_name,
                user.last_name,
                user.email,
                user.role.value,
                user.api_key,
                user.salt,
            ),
        )

    def get_user(self, user_id: str) -> User | None:
        row = self._conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_api_key(self, api_key: str) -> User | None:
        row = self._conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE api_key = ?", (api_key,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def list_users(self) -> list[User]:
        rows = self._conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at, user_id"
        ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_role(self, user_id: str, role: Role) -> bool:
        """Set the role of *user_id*. Returns False if the user does not exist."""
        cur = self._conn.execute(
            "UPDATE users SET role = ? WHERE user_id = ?", (role.value, user_id)
        )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_file(self, filename: str, applicant: str, content: str, content_hash: str) -> int:
        """Insert a new file record (processed = false). Returns the new file_id."""
        cur = self._conn.execute(
            """
            INSERT INTO files (filename, applicant, content, content_hash)
            VALUES (?, ?, ?, ?)
            """,
            (filename, applicant, content, content_hash),
        )
        return cur.lastrowid

    def get_file_content(self, file_id: int) -> str | None:
        row = self._conn.execute(
            "SELECT content FROM files WHERE file_id = ?", (file_id,)
        ).fetchone()
        return row["content"] if row else None

    def get_file(self, file_id: int) -> File | None:
        row = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE file_id = ?", (file_id,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_files(self, file_ids: Iterable[int]) -> dict[int, File]:
        ids = list(set(file_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE file_id IN ({placeholders})", ids
        ).fetchall()
        return {r["file_id"]: _row_to_file(r) for r in rows}

    def find_file(self, applicant: str, filename: str) -> File | None:
        """Return the newest file with this applicant and filename, or None."""
        row = self._conn.execute(
            f"""
            SELECT {_FILE_COLUMNS} FROM files
            WHERE applicant = ? AND filename = ?
            ORDER BY file_id DESC LIMIT 1
            """,
            (applicant, filename),
        ).fetchone()
        return _row_to_file(row) if row else None

    def list_files(self, applicant: str | None = None) -> list[File]:
        """Return files ordered by file_id, optionally for one applicant."""
        if applicant is None:
            rows = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files ORDER BY file_id"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE applicant = ? ORDER BY file_id",
                (applicant,),
            ).fetchall()
        return [_row_to_file(r) for r in rows]

    def list_unprocessed_files(self) -> list[File]:
        rows = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE processed = 0 ORDER BY file_id"
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def set_processed(self, file_id: int) -> bool:
        """Flip processed false → true. Returns False if it was already true."""
        cur = self._conn.execute(
            "UPDATE files SET processed = 1 WHERE file_id = ? AND processed = 0",
            (file_id,),
        )
        return cur.rowcount > 0

    def delete_file(self, file_id: int) -> int:
        """Delete a file record. Chunk rows cascade; FTS and vec rows do not."""
        cur = self._conn.execute("DELETE FROM files WHERE file_id = ?", (file_id,))
        return cur.rowcount

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk row in ``pending`` state. Returns the new chunk_id."""
        cur = self._conn.execute(
            """
            INSERT INTO chunks (file_id, chunk_index, content, token_count)
            VALUES (?, ?, ?, ?)
            """,
            (chunk.file_id, chunk.chunk_index, chunk.content, chunk.token_count),
        )
        return cur.lastrowid

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks(self, chunk_ids: Iterable[int]) -> dict[int, Chunk]:
        ids = list(set(chunk_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE chunk_id IN ({placeholders})", ids
        ).fetchall()
        return {r["chunk_id"]: _row_to_chunk(r) for r in rows}

    def list_chunks(self, file_id: int) -> list[Chunk]:
        """Return the chunks of *file_id* ordered by chunk_index."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE file_id = ? ORDER BY chunk_index",
            (file_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def list_chunks_by_state(
        self, states: Iterable[EmbeddingState], file_id: int | None = None
    ) -> list[Chunk]:
        values = [s.value for s in states]
        placeholders = ",".join("?" * len(values))
        sql = f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE embedding_state IN ({placeholders})"
        params: list[object] = list(values)
        if file_id is not None:
            sql += " AND file_id = ?"
            params.append(file_id)
        sql += " ORDER BY file_id, chunk_index"
        return [_row_to_chunk(r) for r in self._conn.execute(sql, params).fetchall()]

    def chunk_ids_by_file(self, file_id: int) -> list[int]:
        return [
            r[0]
            for r in self._conn.execute(
                "SELECT chunk_id FROM chunks WHERE file_id = ?", (file_id,)
            ).fetchall()
        ]

    def count_chunks_by_state(self, file_id: int) -> dict[EmbeddingState, int]:
        counts = {state: 0 for state in EmbeddingState}
        rows = self._conn.execute(
            """
            SELECT embedding_state, COUNT(*) AS n FROM chunks
            WHERE file_id = ? GROUP BY embedding_state
            """,
            (file_id,),
        ).fetchall()
        for r in rows:
            counts[EmbeddingState(r["embedding_state"])] = r["n"]
        return counts

    def begin_attempt(self, chunk_id: int) -> int | None:
        """Start an embedding attempt. Returns the attempt number.

        Returns None if the chunk no longer exists or is already embedded.
        """
        row = self._conn.execute(
            """
            UPDATE chunks
            SET embedding_state = 'pending',
                embedding_attempts = embedding_attempts + 1,
                embedding_error = NULL
            WHERE chunk_id = ? AND embedding_state <> 'embedded'
            RETURNING embedding_attempts
            """,
            (chunk_id,),
        ).fetchone()
        return row[0] if row else None

    def record_embedded(self, chunk_id: int, attempt: int) -> bool:
        cur = self._conn.execute(
            """
            UPDATE chunks SET embedding_state = 'embedded'
            WHERE chunk_id = ? AND embedding_attempts = ? AND embedding_state = 'pending'
            """,
            (chunk_id, attempt),
        )
        return cur.rowcount > 0

    def record_failed(self, chunk_id: int, attempt: int, reason: str) -> bool:
        cur = self._conn.execute(
            """
            UPDATE chunks SET embedding_state = 'failed', embedding_error = ?
            WHERE chunk_id = ? AND embedding_attempts = ? AND embedding_state = 'pending'
            """,
            (reason, chunk_id, attempt),
        )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # FTS5 / BM25
    # ------------------------------------------------------------------

    def index_fts(self, chunk_id: int, content: str) -> None:
        """(Re)write the FTS5 postings of one chunk (rowid = chunk_id)."""
        self._conn.execute("DELETE FROM chunks_fts WHERE rowid = ?", (chunk_id,))
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, content) VALUES (?, ?)", (chunk_id, content)
        )

    def delete_fts(self, chunk_ids: list[int]) -> None:
        if not chunk_ids:
            return
        placeholders = ",".join("?" * len(chunk_ids))
        self._conn.execute(
            f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", chunk_ids
        )

    def count_fts(self, chunk_ids: list[int]) -> int:
        if not chunk_ids:
            return 0
        placeholders = ",".join("?" * len(chunk_ids))
        return self._conn.execute(
            f"SELECT COUNT(*) FROM chunks_fts WHERE rowid IN ({placeholders})", chunk_ids
        ).fetchone()[0]

    def search_fts(
        self,
        match: str,
        limit: int = 10,
        applicant: str | None = None,
        file_id: int | None = None,
    ) -> list[tuple[int, float]]:
        """BM25 full-text search. Returns (chunk_id, bm25) sorted best-first.

        bm25() returns negative values; lower (more negative) = better match.
        Filters are part of the WHERE clause, so LIMIT applies after filtering.
        """
        sql = """
            SELECT c.chunk_id AS chunk_id, bm25(chunks_fts) AS score
            FROM chunks_fts
            JOIN chunks c ON c.chunk_id = chunks_fts.rowid
            JOIN files f ON f.file_id = c.file_id
            WHERE chunks_fts MATCH ?
        """
        params: list[object] = [match]
        if applicant is not None:
            sql += " AND f.applicant = ?"
            params.append(applicant)
        if file_id is not None:
            sql += " AND c.file_id = ?"
            params.append(file_id)
        sql += " ORDER BY score, c.chunk_id LIMIT ?"
        params.append(limit)
        return [(r["chunk_id"], r["score"]) for r in self._conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def put_embedding(
        self,
        table: str,
        chunk_id: int,
        embedding: list[float],
        applicant: str,
        file_id: int,
    ) -> None:
        """Write an embedding into a vec table with explicit rowid = chunk_id."""
        self._conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (chunk_id,))
        self._conn.execute(
            f"INSERT INTO {table}(rowid, embedding, applicant, file_id) VALUES (?, ?, ?, ?)",
            (chunk_id, json.dumps(embedding), applicant, file_id),
        )

    def get_embedding(self, table: str, chunk_id: int) -> list[float] | None:
        row = self._conn.execute(
            f"SELECT vec_to_json(embedding) AS embedding FROM {table} WHERE rowid = ?",
            (chunk_id,),
        ).fetchone()
        return json.loads(row["embedding"]) if row else None

    def count_embeddings(self, table: str, chunk_ids: list[int]) -> int:
        if not chunk_ids:
            return 0
        placeholders = ",".join("?" * len(chunk_ids))
        return self._conn.execute(
            f"SELECT COUNT(*) FROM {table} WHERE rowid IN ({placeholders})", chunk_ids
        ).fetchone()[0]

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        applicant: str | None = None,
        file_id: int | None = None,
    ) -> list[tuple[int, float]]:
        """KNN search. Returns (chunk_id, cosine distance) sorted nearest-first.

        Metadata filters are evaluated inside the KNN query, so ``limit``
        neighbours are drawn from the filtered set only.
        """
        sql = f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? AND k = ?"
        params: list[object] = [json.dumps(embedding), limit]
        if applicant is not None:
            sql += " AND applicant = ?"
            params.append(applicant)
        if file_id is not None:
            sql += " AND file_id = ?"
            params.append(file_id)
        sql += " ORDER BY distance"
        rows = self._conn.execute(sql, params).fetchall()
        return [(r["rowid"], r["distance"]) for r in rows]

    def delete_embeddings(self, chunk_ids: list[int]) -> int:
        """Delete embeddings for *chunk_ids* from every vec table.

        Returns the total number of embedding rows deleted across all vec tables.
        """
        if not chunk_ids:
            return 0

        total_deleted = 0
        placeholders = ",".join("?" * len(chunk_ids))
        for table in self.list_vec_tables():
            cur = self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                chunk_ids,
            )
            total_deleted += cur.rowcount
        return total_deleted

    def list_vec_tables(self) -> list[str]:
        """Names of the vec0 virtual tables (shadow tables excluded)."""
        return [
            r[0]
            for r in self._conn.execute(
                r"""
                SELECT name FROM sqlite_master
                WHERE type = 'table'
                  AND name LIKE 'vec\_chunks\_%' ESCAPE '\'
                  AND sql LIKE 'CREATE VIRTUAL TABLE%'
                """
            ).fetchall()
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        user_id=row["user_id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        role=Role(row["role"]),
        api_key=row["api_key"],
        salt=row["salt"],
        created_at=row["created_at"],
    )


def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        file_id=row["file_id"],
        filename=row["filename"],
        applicant=row["applicant"],
        content_hash=row["content_hash"],
        processed=bool(row["processed"]),
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        chunk_id=row["chunk_id"],
        file_id=row["file_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        token_count=row["token_count"],
        embedding_state=EmbeddingState(row["embedding_state"]),
        embedding_attempts=row["embedding_attempts"],
        embedding_error=row["embedding_error"],
        created_at=row["created_at"],
    )
