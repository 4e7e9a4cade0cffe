"""Hybrid index: FTS5 lexical postings + sqlite-vec vectors over chunks.

Both views are keyed by chunk_id and written in the same SQLite transaction
as the chunk state they mirror, so they never disagree with the chunk table
once a write returns. Mutations for one file run under that file's lock.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager

from dossier.db.connection import Database, transaction
from dossier.db.models import Chunk, EmbeddingState
from dossier.db.repository import Repository
from dossier.db.vectors import EMBEDDING_DIMENSIONS, ensure_vec_table, model_to_slug
from dossier.errors import IndexInconsistency, NotFoundError
from dossier.index.locks import FileLocks
from dossier.ingest.embedder import validate_dimensions
from dossier.logging_config import get_logger

log = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


def build_match(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression.

    Every word is quoted (so FTS5 operators in user text are inert) and the
    words are OR-ed, letting bm25 rank chunks that match more terms higher.
    Returns "" when the text has no word characters.
    """
    tokens = _TOKEN_RE.findall(query.lower())
    return " OR ".join(f'"{t}"' for t in dict.fromkeys(tokens))


class HybridIndex:
    """Lexical and vector views over the chunk table.

    Args:
        db: Database whose per-thread connections are used.
        embedding_model: Model whose vectors this index stores (selects the vec table).
        locks: Shared per-file lock registry.
    """

    def __init__(self, db: Database, embedding_model: str, locks: FileLocks | None = None) -> None:
        self._db = db
        self.locks = locks or FileLocks(timeout=db.busy_timeout)
        self.vec_table = ensure_vec_table(
            db.local(), model_to_slug(embedding_model), EMBEDDING_DIMENSIONS
        )

    def repo(self) -> Repository:
        return Repository(self._db.local())

    @contextmanager
    def snapshot(self) -> Iterator[Repository]:
        """Yield a repository bound to one consistent read snapshot."""
        repo = self.repo()
        with transaction(repo.conn, write=False):
            yield repo

    # ------------------------------------------------------------------
    # Upsert / remove
    # ------------------------------------------------------------------

    def upsert(self, chunk: Chunk) -> bool:
        """Index one stored chunk. See ``upsert_many``."""
        return self.upsert_many([chunk]) == 1

    def upsert_many(self, chunks: list[Chunk]) -> int:
        """(Re)index stored chunks in one transaction. Returns how many were indexed.

        Lexical postings are rewritten from ``content``; a vector is written
        only for chunks in ``embedded`` state that carry an embedding, and any
        other vector for the chunk is dropped. Re-running with unchanged chunks
        leaves the index unchanged. Chunks whose row no longer exists (file
        deleted meanwhile) are skipped, never re-created.

        Raises:
            IndexInconsistency: A chunk differs from its stored row.
        """
        if not chunks:
            return 0
        for chunk in chunks:
            if chunk.chunk_id is None:
                raise IndexInconsistency(
                    f"chunk {chunk.file_id}/{chunk.chunk_index} has not been stored"
                )

        indexed = 0
        with self.locks.hold_many(c.file_id for c in chunks):
            repo = self.repo()
            with transaction(repo.conn):
                stored = repo.get_chunks(c.chunk_id for c in chunks)
                files = repo.get_files(c.file_id for c in stored.values())
                for chunk in chunks:
                    row = stored.get(chunk.chunk_id)
                    if row is None or row.file_id not in files:
                        continue
                    self._check_matches(chunk, row)
                    repo.index_fts(row.chunk_id, row.content)
                    if row.embedding_state is EmbeddingState.EMBEDDED and chunk.embedding is not None:
                        repo.put_embedding(
                            self.vec_table,
                            row.chunk_id,
                            validate_dimensions(chunk.embedding),
                            files[row.file_id].applicant,
                            row.file_id,
                        )
                    elif row.embedding_state is not EmbeddingState.EMBEDDED:
                        repo.delete_embeddings([row.chunk_id])
                    indexed += 1
        return indexed

    def remove(self, chunk_id: int) -> None:
        """Purge the lexical and vector entries of one chunk.

        Raises:
            NotFoundError: Unknown chunk_id.
        """
        chunk = self.repo().get_chunk(chunk_id)
        if chunk is None:
            raise NotFoundError(f"unknown chunk {chunk_id}")
        with self.locks.hold(chunk.file_id):
            repo = self.repo()
            with transaction(repo.conn):
                repo.delete_fts([chunk_id])
                repo.delete_embeddings([chunk_id])

    def remove_file(self, file_id: int, repo: Repository | None = None) -> int:
        """Purge the lexical and vector entries of every chunk of *file_id*.

        When *repo* is given the caller already holds the file lock and an open
        write transaction, and the purge joins it. Returns the number of chunks
        purged.
        """
        if repo is not None:
            return self._purge(repo, file_id)
        with self.locks.hold(file_id):
            repo = self.repo()
            with transaction(repo.conn):
                return self._purge(repo, file_id)

    def _purge(self, repo: Repository, file_id: int) -> int:
        chunk_ids = repo.chunk_ids_by_file(file_id)
        repo.delete_fts(chunk_ids)
        repo.delete_embeddings(chunk_ids)
        return len(chunk_ids)

    # ------------------------------------------------------------------
    # Embedding state transitions
    # ------------------------------------------------------------------

    def begin_attempt(self, chunk: Chunk) -> int | None:
        """Mark *chunk* pending for a new attempt. Returns the attempt number.

        Returns None when the chunk is gone or already embedded.
        """
        with self.locks.hold(chunk.file_id):
            repo = self.repo()
            with transaction(repo.conn):
                return repo.begin_attempt(chunk.chunk_id)

    def attach_embedding(self, chunk: Chunk, attempt: int, vector: list[float]) -> bool:
        """Record *vector* for *chunk* if *attempt* is still the live attempt.

        Returns False when the attempt was superseded (timed out, file deleted).
        """
        vector = validate_dimensions(vector)
        with self.locks.hold(chunk.file_id):
            repo = self.repo()
            with transaction(repo.conn):
                file = repo.get_file(chunk.file_id)
                if file is None or not repo.record_embedded(chunk.chunk_id, attempt):
                    return False
                repo.put_embedding(
                    self.vec_table, chunk.chunk_id, vector, file.applicant, file.file_id
                )
                return True

    def fail_embedding(self, chunk: Chunk, attempt: int, reason: str) -> bool:
        """Record a failed attempt. Returns False if the attempt was superseded."""
        with self.locks.hold(chunk.file_id):
            repo = self.repo()
            with transaction(repo.conn):
                return repo.record_failed(chunk.chunk_id, attempt, reason)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_lexical(
        self,
        repo: Repository,
        query: str,
        limit: int,
        applicant: str | None = None,
        file_id: int | None = None,
    ) -> list[tuple[int, float]]:
        """Return (chunk_id, relevance) best-first; relevance = -bm25."""
        match = build_match(query)
        if not match:
            return []
        return [
            (chunk_id, -score)
            for chunk_id, score in repo.search_fts(match, limit, applicant, file_id)
        ]

    def search_vector(
        self,
        repo: Repository,
        embedding: list[float],
        limit: int,
        applicant: str | None = None,
        file_id: int | None = None,
    ) -> list[tuple[int, float]]:
        """Return (chunk_id, cosine similarity) best-first, ties by chunk_id."""
        hits = repo.search_vec(self.vec_table, embedding, limit, applicant, file_id)
        ranked = [(chunk_id, 1.0 - distance) for chunk_id, distance in hits]
        ranked.sort(key=lambda h: (-h[1], h[0]))
        return ranked

    # ------------------------------------------------------------------
    # Consistency checks
    # ------------------------------------------------------------------

    def verify_file(self, file_id: int, repo: Repository | None = None) -> None:
        """Check chunk_index contiguity and index coverage for *file_id*.

        Raises:
            IndexInconsistency: Gaps or duplicates in chunk_index, lexical
                postings missing, or vectors for chunks that are not embedded.
        """
        repo = repo or self.repo()
        chunks = repo.list_chunks(file_id)
        check_contiguous(file_id, [c.chunk_index for c in chunks])

        chunk_ids = [c.chunk_id for c in chunks]
        if repo.count_fts(chunk_ids) != len(chunk_ids):
            _inconsistent(file_id, "lexical postings missing for some chunks")

        embedded = [c.chunk_id for c in chunks if c.embedding_state is EmbeddingState.EMBEDDED]
        if repo.count_embeddings(self.vec_table, chunk_ids) != len(embedded):
            _inconsistent(file_id, "vector entries do not match embedded chunks")

    @staticmethod
    def _check_matches(chunk: Chunk, row: Chunk) -> None:
        if (
            chunk.file_id != row.file_id
            or chunk.chunk_index != row.chunk_index
            or chunk.content != row.content
        ):
            _inconsistent(
                row.file_id,
                f"chunk {row.chunk_id} differs from its stored row",
            )


def check_contiguous(file_id: int, indexes: list[int]) -> None:
    """Raise IndexInconsistency unless *indexes* is exactly 0..N-1 in order."""
    if indexes != list(range(len(indexes))):
        _inconsistent(file_id, f"chunk_index values {indexes} are not 0..{len(indexes) - 1}")


def _inconsistent(file_id: int, detail: str) -> None:
    log.error("index_inconsistency", file_id=file_id, detail=detail)
    raise IndexInconsistency(f"file {file_id}: {detail}")
