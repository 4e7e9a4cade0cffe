"""Ingestion driver — register, chunk, embed, mark processed.

The driver owns retry policy: attachment makes one attempt per chunk, and
``resume`` / ``retry_failed`` are the explicit ways to try again.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

from dossier.db.models import EmbeddingState, File
from dossier.errors import NotFoundError
from dossier.ingest.attacher import EmbeddingAttacher
from dossier.ingest.paragraph import ParagraphChunker
from dossier.logging_config import get_logger
from dossier.store.documents import DocumentStore, content_hash

log = get_logger(__name__)


class IngestionDriver:
    """Run files through the ingestion stages, several files in parallel.

    Args:
        store: Document store that owns files and chunk rows.
        attacher: Embedding attachment stage.
        max_tokens_per_chunk: Chunk size limit passed to the chunker.
        file_workers: Files processed concurrently by ``submit``.
        embed_timeout: Default per-call embedding timeout in seconds.
    """

    def __init__(
        self,
        store: DocumentStore,
        attacher: EmbeddingAttacher,
        max_tokens_per_chunk: int = 512,
        file_workers: int = 2,
        embed_timeout: float = 30.0,
    ) -> None:
        self._store = store
        self._attacher = attacher
        self._chunker = ParagraphChunker(max_tokens_per_chunk)
        self._embed_timeout = embed_timeout
        self._pool = ThreadPoolExecutor(max_workers=file_workers, thread_name_prefix="ingest")

    def ingest(
        self, filename: str, applicant: str, content: str, timeout: float | None = None
    ) -> File:
        """Ingest one document and return its File once processing settled.

        Re-ingesting identical content for the same (applicant, filename) is a
        no-op that returns the existing File (finishing it first if an earlier
        run was interrupted). Changed content replaces the old File.
        """
        digest = content_hash(content)
        with self._store.name_lock(applicant, filename):
            existing = self._store.find(applicant, filename)
            if existing is not None and existing.content_hash == digest:
                if existing.processed:
                    log.info("ingest_skipped", file_id=existing.file_id, filename=filename)
                    return existing
                file_id = existing.file_id
            else:
                if existing is not None:
                    self._discard(existing)
                file_id = self._store.register(filename, applicant, content)
        return self._finish(file_id, timeout)

    def submit(
        self, filename: str, applicant: str, content: str, timeout: float | None = None
    ) -> Future[File]:
        """Schedule ``ingest`` on the file worker pool."""
        return self._pool.submit(self.ingest, filename, applicant, content, timeout)

    def resume(self, timeout: float | None = None) -> list[File]:
        """Finish every unprocessed file. Returns the files after the run."""
        finished: list[File] = []
        for file in self._store.list_unprocessed():
            try:
                finished.append(self._finish(file.file_id, timeout))
            except NotFoundError:
                continue  # deleted while we were working
        return finished

    def retry_failed(self, file_id: int | None = None, timeout: float | None = None) -> int:
        """Make one more attempt for chunks in ``failed`` state.

        Returns the number of chunks that became ``embedded``.
        """
        if file_id is not None:
            self._store.get(file_id)
        failed = self._store.chunks_in_state(EmbeddingState.FAILED, file_id=file_id)
        if not failed:
            return 0
        outcome = self._attacher.attach(failed, self._timeout(timeout))
        for retried in sorted({c.file_id for c in failed}):
            try:
                self._store.settle(retried)
            except NotFoundError:
                continue  # deleted while retrying
        embedded = sum(1 for state in outcome.values() if state is EmbeddingState.EMBEDDED)
        log.info("retry_completed", chunks=len(failed), embedded=embedded)
        return embedded

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self._attacher.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _discard(self, existing: File) -> None:
        try:
            self._store.delete(existing.file_id)
        except NotFoundError:
            log.info("file_already_deleted", file_id=existing.file_id)
        else:
            log.info("file_replaced", file_id=existing.file_id, filename=existing.filename)

    def _finish(self, file_id: int, timeout: float | None) -> File:
        chunks = self._store.ensure_chunks(file_id, self._chunker.chunk)

        pending = [c for c in chunks if c.embedding_state is EmbeddingState.PENDING]
        if pending:
            self._attacher.attach(pending, self._timeout(timeout))

        self._store.settle(file_id)
        return self._store.get(file_id)

    def _timeout(self, timeout: float | None) -> float:
        return self._embed_timeout if timeout is None else timeout
