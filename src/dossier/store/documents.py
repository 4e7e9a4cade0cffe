"""Document store — File records, their chunks, and their lifecycle.

A File is registered unprocessed, receives its chunks exactly once, and
becomes processed once every chunk has reached a terminal embedding state.
Deleting a File removes its chunk rows and their index entries in one
transaction, under the file's lock.
"""

from __future__ import annotations

import hashlib
import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from dossier.db.connection import transaction
from dossier.db.models import Chunk, EmbeddingState, File
from dossier.errors import IndexInconsistency, NotFoundError, ValidationError
from dossier.index.hybrid import HybridIndex, check_contiguous
from dossier.logging_config import get_logger

log = get_logger(__name__)


def content_hash(content: str) -> str:
    """SHA-256 hex digest of *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class DocumentStore:
    """Owner of File records and the chunk rows that belong to them.

    Args:
        index: The hybrid index kept consistent with the chunk rows. Its lock
            registry is shared so store and index mutations of one file are
            mutually exclusive.
    """

    def __init__(self, index: HybridIndex) -> None:
        self._index = index
        self._locks = index.locks

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def register(self, filename: str, applicant: str, content: str) -> int:
        """Store a new unprocessed File and return its id.

        Raises:
            ValidationError: ``content`` is empty, or ``filename``/``applicant``
                is empty or blank.
        """
        if not filename or not filename.strip():
            raise ValidationError("filename must not be empty")
        if not applicant or not applicant.strip():
            raise ValidationError("applicant must not be empty")
        if not content:
            raise ValidationError("content must not be empty")

        repo = self._index.repo()
        with transaction(repo.conn):
            file_id = repo.add_file(filename, applicant, content, content_hash(content))
        log.info("file_registered", file_id=file_id, filename=filename, applicant=applicant)
        return file_id

    def get(self, file_id: int) -> File:
        file = self._index.repo().get_file(file_id)
        if file is None:
            raise NotFoundError(f"unknown file {file_id}")
        return file

    def find(self, applicant: str, filename: str) -> File | None:
        return self._index.repo().find_file(applicant, filename)

    def list_by_applicant(self, applicant: str) -> list[File]:
        """Files of *applicant*, ordered by file_id."""
        return self._index.repo().list_files(applicant)

    def list_all(self) -> list[File]:
        return self._index.repo().list_files()

    def list_unprocessed(self) -> list[File]:
        return self._index.repo().list_unprocessed_files()

    def mark_processed(self, file_id: int) -> None:
        """Set ``processed = true``. Calling it again is a no-op.

        Raises:
            NotFoundError: Unknown file_id.
            ValidationError: Some chunk is still ``pending``.
        """
        if not self.settle(file_id):
            raise ValidationError(f"file {file_id} has chunk(s) awaiting embedding")

    def settle(self, file_id: int) -> bool:
        """Mark *file_id* processed unless one of its chunks is ``pending``.

        Unlike ``mark_processed`` a pending chunk is not an error: a retry may
        have taken it back to ``pending`` since the caller last looked.
        Returns whether the file is processed afterwards.

        Raises:
            NotFoundError: Unknown file_id.
        """
        with self._locks.hold(file_id):
            repo = self._index.repo()
            with transaction(repo.conn):
                if repo.get_file(file_id) is None:
                    raise NotFoundError(f"unknown file {file_id}")
                if repo.count_chunks_by_state(file_id)[EmbeddingState.PENDING]:
                    return False
                changed = repo.set_processed(file_id)
        if changed:
            log.info("file_processed", file_id=file_id)
        return True

    def delete(self, file_id: int) -> int:
        """Delete a File, its chunks, and their index entries atomically.

        Returns the number of chunks removed.

        Raises:
            NotFoundError: Unknown file_id.
        """
        with self._locks.hold(file_id):
            repo = self._index.repo()
            with transaction(repo.conn):
                if repo.get_file(file_id) is None:
                    raise NotFoundError(f"unknown file {file_id}")
                removed = self._index.remove_file(file_id, repo=repo)
                repo.delete_file(file_id)
        log.info("file_deleted", file_id=file_id, chunks=removed)
        return removed

    def name_lock(
        self, applicant: str, filename: str, timeout: float | None = None
    ) -> AbstractContextManager[None]:
        """Exclusive scope over the (applicant, filename) slot.

        Hold it while deciding whether a name maps to an existing File, a
        replacement, or a new registration. File locks may be taken inside it,
        never the other way round.
        """
        return self._locks.hold(("name", applicant, filename), timeout)

    def delete_by_applicant(self, applicant: str) -> int:
        """Delete every File of *applicant*. Returns the number of files deleted."""
        deleted = 0
        for file in self.list_by_applicant(applicant):
            try:
                self.delete(file.file_id)
            except NotFoundError:
                continue  # deleted concurrently
            deleted += 1
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(self, file_id: int, chunks: list[Chunk]) -> list[Chunk]:
        """Persist the chunk sequence of *file_id* with its lexical postings.

        Chunks are written once per file, all in one transaction. A file that
        receives zero chunks is marked processed immediately.

        Returns:
            The same chunks with ``chunk_id`` set.

        Raises:
            NotFoundError: Unknown file_id.
            IndexInconsistency: The file already has chunks, or the
                chunk_index values are not exactly 0..N-1.
        """
        with self._locks.hold(file_id):
            repo = self._index.repo()
            with transaction(repo.conn):
                if repo.get_file(file_id) is None:
                    raise NotFoundError(f"unknown file {file_id}")
                if repo.chunk_ids_by_file(file_id):
                    log.error("index_inconsistency", file_id=file_id, detail="chunks already stored")
                    raise IndexInconsistency(f"file {file_id}: chunks already stored")
                check_contiguous(file_id, [c.chunk_index for c in chunks])

                for chunk in chunks:
                    if chunk.file_id != file_id:
                        raise IndexInconsistency(
                            f"chunk {chunk.chunk_index} belongs to file {chunk.file_id}, not {file_id}"
                        )
                    try:
                        chunk.chunk_id = repo.add_chunk(chunk)
                    except sqlite3.IntegrityError as exc:
                        log.error("index_inconsistency", file_id=file_id, detail=str(exc))
                        raise IndexInconsistency(f"file {file_id}: {exc}") from exc
                    chunk.embedding_state = EmbeddingState.PENDING
                self._index.upsert_many(chunks)

                if not chunks:
                    repo.set_processed(file_id)

        log.info("chunks_indexed", file_id=file_id, chunks=len(chunks))
        if not chunks:
            log.info("file_processed", file_id=file_id)
        return chunks

    def ensure_chunks(
        self, file_id: int, split: Callable[[int, str], list[Chunk]]
    ) -> list[Chunk]:
        """Chunks of *file_id*, splitting its content with *split* if it has none.

        The check and the write happen under the file's lock, so concurrent
        callers split a file once and the others get the stored chunks.

        Raises:
            NotFoundError: Unknown file_id.
        """
        with self._locks.hold(file_id):
            chunks = self.chunks(file_id)
            if chunks or self.get(file_id).processed:
                return chunks
            return self.add_chunks(file_id, split(file_id, self.content(file_id)))

    def chunks(self, file_id: int, with_embeddings: bool = False) -> list[Chunk]:
        """Chunks of *file_id* ordered by chunk_index.

        Raises:
            NotFoundError: Unknown file_id.
        """
        with self._index.snapshot() as repo:
            if repo.get_file(file_id) is None:
                raise NotFoundError(f"unknown file {file_id}")
            chunks = repo.list_chunks(file_id)
            if with_embeddings:
                for chunk in chunks:
                    if chunk.embedding_state is EmbeddingState.EMBEDDED:
                        chunk.embedding = repo.get_embedding(self._index.vec_table, chunk.chunk_id)
        return chunks

    def stats(self, file_id: int) -> dict[EmbeddingState, int]:
        """Chunk counts per embedding state for *file_id*."""
        self.get(file_id)
        return self._index.repo().count_chunks_by_state(file_id)

    def content(self, file_id: int) -> str:
        """The text *file_id* was registered with.

        Raises:
            NotFoundError: Unknown file_id.
        """
        content = self._index.repo().get_file_content(file_id)
        if content is None:
            raise NotFoundError(f"unknown file {file_id}")
        return content

    def chunks_in_state(
        self, *states: EmbeddingState, file_id: int | None = None
    ) -> list[Chunk]:
        """Chunks currently in one of *states*, ordered by (file_id, chunk_index)."""
        return self._index.repo().list_chunks_by_state(states, file_id)
