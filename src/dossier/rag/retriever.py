"""Query engine: BM25 (FTS5) + dense (sqlite-vec), fused via RRF.

Reciprocal Rank Fusion over the ranks a chunk actually has:
  score(d) = 1 / (k + rank_lexical) + 1 / (k + rank_vector)   k = 60
A chunk missing from one channel simply lacks that term.

The query embedding is computed before the read snapshot opens; both
channels then run inside one snapshot, so a concurrent delete is seen
entirely or not at all.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from dossier.config import SEARCH_MODES, RetrievalCfg
from dossier.db.models import Chunk, EmbeddingState
from dossier.db.repository import Repository
from dossier.errors import EmbeddingError, EmbeddingUnavailable, IndexInconsistency, ValidationError
from dossier.index.hybrid import HybridIndex
from dossier.ingest.embedder import Embedder
from dossier.logging_config import get_logger

log = get_logger(__name__)


@dataclass
class ScoredChunk:
    """A retrieved chunk together with its score and per-channel ranks.

    Attributes:
        chunk: The Chunk instance from the database.
        score: Mode-dependent relevance (higher = more relevant): -bm25 in
            lexical mode, cosine similarity in vector mode, RRF in hybrid mode.
        lexical_rank: 1-based rank in the lexical channel (None if not retrieved).
        vector_rank: 1-based rank in the vector channel (None if not retrieved).
        applicant: Applicant of the owning file.
        filename: Filename of the owning file.
    """

    chunk: Chunk
    score: float
    lexical_rank: int | None = None
    vector_rank: int | None = None
    applicant: str = ""
    filename: str = ""


class QueryEngine:
    """Answer lexical, vector and hybrid queries over the hybrid index.

    Args:
        index: Index to read from.
        embedder: Embedding function used for the query text.
        config: Retrieval defaults and limits.
        embed_timeout: Timeout in seconds for the query embedding call.
    """

    def __init__(
        self,
        index: HybridIndex,
        embedder: Embedder,
        config: RetrievalCfg | None = None,
        embed_timeout: float = 30.0,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self._config = config or RetrievalCfg()
        self._embed_timeout = embed_timeout

    def search(
        self,
        query_text: str,
        applicant_filter: str | None = None,
        top_k: int | None = None,
        mode: str | None = None,
    ) -> list[ScoredChunk]:
        """Return at most *top_k* chunks best-first; ties by ascending chunk_id.

        Raises:
            ValidationError: Blank query, unknown mode, or top_k out of range.
            EmbeddingUnavailable: The query could not be embedded (vector and
                hybrid modes).
            IndexInconsistency: The vector index returned a chunk that is not
                in ``embedded`` state.
        """
        mode = mode or self._config.mode
        top_k = self._config.top_k if top_k is None else top_k
        if not query_text or not query_text.strip():
            raise ValidationError("query_text must not be empty")
        if mode not in SEARCH_MODES:
            raise ValidationError(f"mode must be one of {', '.join(SEARCH_MODES)}, got '{mode}'")
        if not 1 <= top_k <= self._config.max_top_k:
            raise ValidationError(f"top_k must be between 1 and {self._config.max_top_k}, got {top_k}")

        started = time.perf_counter()
        query_embedding = self._embed(query_text) if mode != "lexical" else None

        with self._index.snapshot() as repo:
            lexical: list[tuple[int, float]] = []
            vector: list[tuple[int, float]] = []
            if mode != "vector":
                lexical = self._index.search_lexical(repo, query_text, top_k, applicant_filter)
            if query_embedding is not None:
                vector = self._index.search_vector(repo, query_embedding, top_k, applicant_filter)

            if mode == "lexical":
                ranked = _rank_single(lexical, channel="lexical")
            elif mode == "vector":
                ranked = _rank_single(vector, channel="vector")
            else:
                ranked = rrf_fuse(lexical, vector, k=self._config.rrf_k)
            results = self._materialize(repo, ranked[:top_k], vector_ids={c for c, _ in vector})

        log.info(
            "search_completed",
            mode=mode,
            applicant=applicant_filter,
            top_k=top_k,
            results=len(results),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return results

    def _embed(self, text: str) -> list[float]:
        try:
            return self._embedder.embed(text, timeout=self._embed_timeout)
        except EmbeddingError as exc:
            raise EmbeddingUnavailable(f"query embedding failed: {exc}") from exc

    def _materialize(
        self, repo: Repository, ranked: list[ScoredChunk], vector_ids: set[int]
    ) -> list[ScoredChunk]:
        chunks = repo.get_chunks(s.chunk.chunk_id for s in ranked)
        files = repo.get_files(c.file_id for c in chunks.values())
        for scored in ranked:
            chunk_id = scored.chunk.chunk_id
            chunk = chunks.get(chunk_id)
            if chunk is None or chunk.file_id not in files:
                log.error("index_inconsistency", chunk_id=chunk_id, detail="indexed chunk has no row")
                raise IndexInconsistency(f"chunk {chunk_id} is indexed but has no row")
            if chunk_id in vector_ids and chunk.embedding_state is not EmbeddingState.EMBEDDED:
                log.error(
                    "index_inconsistency",
                    chunk_id=chunk_id,
                    detail=f"vector entry for {chunk.embedding_state.value} chunk",
                )
                raise IndexInconsistency(
                    f"chunk {chunk_id} has a vector but is {chunk.embedding_state.value}"
                )
            file = files[chunk.file_id]
            scored.chunk = chunk
            scored.applicant = file.applicant
            scored.filename = file.filename
        return ranked


# ------------------------------------------------------------------
# Ranking
# ------------------------------------------------------------------


def rrf_fuse(
    lexical: list[tuple[int, float]],
    vector: list[tuple[int, float]],
    k: int = 60,
) -> list[ScoredChunk]:
    """Fuse two best-first (chunk_id, score) lists by Reciprocal Rank Fusion.

    Returns placeholder ScoredChunks (chunk rows not yet loaded) ordered by
    fused score descending, then chunk_id ascending.
    """
    lexical_rank = {chunk_id: i + 1 for i, (chunk_id, _) in enumerate(lexical)}
    vector_rank = {chunk_id: i + 1 for i, (chunk_id, _) in enumerate(vector)}

    scored: list[ScoredChunk] = []
    for chunk_id in set(lexical_rank) | set(vector_rank):
        lr = lexical_rank.get(chunk_id)
        vr = vector_rank.get(chunk_id)
        score = 0.0
        if lr is not None:
            score += 1.0 / (k + lr)
        if vr is not None:
            score += 1.0 / (k + vr)
        scored.append(
            ScoredChunk(chunk=_placeholder(chunk_id), score=score, lexical_rank=lr, vector_rank=vr)
        )

    scored.sort(key=lambda s: (-s.score, s.chunk.chunk_id))
    return scored


def _rank_single(hits: list[tuple[int, float]], channel: str) -> list[ScoredChunk]:
    ordered = sorted(hits, key=lambda h: (-h[1], h[0]))
    return [
        ScoredChunk(
            chunk=_placeholder(chunk_id),
            score=score,
            lexical_rank=i + 1 if channel == "lexical" else None,
            vector_rank=i + 1 if channel == "vector" else None,
        )
        for i, (chunk_id, score) in enumerate(ordered)
    ]


def _placeholder(chunk_id: int) -> Chunk:
    return Chunk(file_id=0, chunk_index=0, content="", token_count=0, chunk_id=chunk_id)
