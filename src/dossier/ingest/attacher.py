"""Embedding attachment — one attempt per chunk, bounded by a timeout.

Each chunk runs through ``begin_attempt`` (pending, attempt counter + 1), a
call to the external embedding function on a thread of its own, and then either
``attach_embedding`` or ``fail_embedding``. A call that outlives its timeout
is abandoned: the chunk is marked failed, and when the call eventually
returns its result is discarded because the attempt number has moved on or
the state is no longer pending.

The timeout starts when the call starts. Abandoned calls keep their thread
until the model returns, so they never hold up the chunks queued behind them.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from dossier.db.models import Chunk, EmbeddingState
from dossier.errors import EmbeddingError, OperationTimeout
from dossier.index.hybrid import HybridIndex
from dossier.ingest.embedder import Embedder
from dossier.logging_config import get_logger

log = get_logger(__name__)


class EmbeddingAttacher:
    """Drive the pending → embedded | failed transition for chunks.

    Args:
        index: Index that records the outcome of every attempt.
        embedder: The external embedding function.
        workers: Size of the task pool, i.e. chunks attached concurrently.
    """

    def __init__(self, index: HybridIndex, embedder: Embedder, workers: int = 4) -> None:
        self._index = index
        self._embedder = embedder
        self._tasks = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="attach")

    def attach(self, chunks: list[Chunk], timeout: float) -> dict[int, EmbeddingState]:
        """Attempt an embedding once for every chunk not yet embedded.

        Failures are recorded per chunk and never abort the siblings.

        Returns:
            Mapping chunk_id → state after the attempt. Chunks that vanished
            (file deleted meanwhile) are absent.
        """
        pending = [c for c in chunks if c.embedding_state is not EmbeddingState.EMBEDDED]
        futures = {c.chunk_id: self._tasks.submit(self._attach_one, c, timeout) for c in pending}
        outcome: dict[int, EmbeddingState] = {
            c.chunk_id: EmbeddingState.EMBEDDED
            for c in chunks
            if c.embedding_state is EmbeddingState.EMBEDDED
        }
        for chunk_id, future in futures.items():
            try:
                state = future.result()
            except OperationTimeout as exc:
                # file lock unavailable; the chunk stays pending for resume()
                log.warning("embedding_deferred", chunk_id=chunk_id, reason=str(exc))
                continue
            if state is not None:
                outcome[chunk_id] = state
        return outcome

    def _attach_one(self, chunk: Chunk, timeout: float) -> EmbeddingState | None:
        attempt = self._index.begin_attempt(chunk)
        if attempt is None:
            return None

        call = self._start_call(chunk, timeout)
        try:
            vector = call.result(timeout=timeout)
            if self._index.attach_embedding(chunk, attempt, vector):
                chunk.embedding_state = EmbeddingState.EMBEDDED
                chunk.embedding = vector
                return EmbeddingState.EMBEDDED
            return self._current_state(chunk)
        except FutureTimeout:
            reason = f"timed out after {timeout:.1f}s"
        except (EmbeddingError, OperationTimeout) as exc:
            reason = str(exc)

        log.warning(
            "embedding_failed",
            chunk_id=chunk.chunk_id,
            file_id=chunk.file_id,
            chunk_index=chunk.chunk_index,
            attempt=attempt,
            reason=reason,
        )
        if self._index.fail_embedding(chunk, attempt, reason):
            chunk.embedding_state = EmbeddingState.FAILED
            chunk.embedding_error = reason
            return EmbeddingState.FAILED
        return self._current_state(chunk)

    def _start_call(self, chunk: Chunk, timeout: float) -> Future[list[float]]:
        call: Future[list[float]] = Future()

        def run() -> None:
            call.set_running_or_notify_cancel()
            try:
                call.set_result(self._embedder.embed(chunk.content, timeout))
            except Exception as exc:  # re-raised by call.result()
                call.set_exception(exc)

        threading.Thread(target=run, name=f"embed-{chunk.chunk_id}", daemon=True).start()
        return call

    def _current_state(self, chunk: Chunk) -> EmbeddingState | None:
        row = self._index.repo().get_chunk(chunk.chunk_id)
        return row.embedding_state if row else None

    def close(self) -> None:
        self._tasks.shutdown(wait=True)
