"""Base chunker interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from dossier.db.models import Chunk


class BaseChunker(ABC):
    """Abstract base for chunkers.

    Subclasses implement ``chunk()`` and may use ``_split_fixed_window()``
    and ``_make_chunks()`` for the hard-truncation fallback path.

    Token counting uses a 4-chars-per-token approximation; the real tokenizer
    belongs to the embedding model and is not a dependency of the store.
    """

    def __init__(self, max_tokens_per_chunk: int = 512) -> None:
        if max_tokens_per_chunk < 1:
            raise ValueError("max_tokens_per_chunk must be >= 1")
        self.max_tokens_per_chunk = max_tokens_per_chunk

    @abstractmethod
    def chunk(self, file_id: int, content: str) -> list[Chunk]:
        """Split *content* into Chunk objects for *file_id*.

        Args:
            file_id: Id of the owning File row.
            content: Full decoded text of the document.

        Returns:
            Ordered list of unsaved Chunk objects with ``chunk_index`` 0..N-1.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split *text* into consecutive windows of ``max_tokens_per_chunk`` tokens.

        Window size = ``self.max_tokens_per_chunk * 4`` characters.
        Segments are stripped; empty segments are omitted.
        """
        if not text.strip():
            return []

        char_size = self.max_tokens_per_chunk * 4
        segments: list[str] = []
        for pos in range(0, len(text), char_size):
            segment = text[pos : pos + char_size].strip()
            if segment:
                segments.append(segment)
        return segments

    def _make_chunks(self, file_id: int, texts: list[str]) -> list[Chunk]:
        """Convert a list of text strings into sequentially indexed Chunks."""
        return [
            Chunk(
                file_id=file_id,
                chunk_index=i,
                content=t,
                token_count=self.count_tokens(t),
            )
            for i, t in enumerate(texts)
        ]
