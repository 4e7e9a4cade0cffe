"""Paragraph chunker — paragraph/sentence packing with fixed-window fallback."""

from __future__ import annotations

import re

from dossier.db.models import Chunk
from dossier.ingest.base import BaseChunker

# A blank line (optionally containing whitespace) separates paragraphs.
_PARAGRAPH_RE = re.compile(r"\n[ \t]*\n")
# Sentence end: ., ! or ? followed by whitespace.
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


class ParagraphChunker(BaseChunker):
    """Pack paragraphs into chunks of at most ``max_tokens_per_chunk`` tokens.

    Strategy:
    - Consecutive paragraphs are joined (blank line between) while the result
      stays within the limit.
    - A paragraph that is too large on its own is split on sentence
      boundaries, and sentences are packed the same way.
    - A sentence that is still too large is cut into fixed windows.

    Output depends only on ``content`` and ``max_tokens_per_chunk``.
    """

    def chunk(self, file_id: int, content: str) -> list[Chunk]:
        if not content.strip():
            return []

        texts: list[str] = []
        current = ""
        for paragraph in _PARAGRAPH_RE.split(content):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            candidate = f"{current}\n\n{paragraph}" if current else paragraph
            if self.count_tokens(candidate) <= self.max_tokens_per_chunk:
                current = candidate
                continue

            if current:
                texts.append(current)
                current = ""

            if self.count_tokens(paragraph) <= self.max_tokens_per_chunk:
                current = paragraph
            else:
                texts.extend(self._split_sentences(paragraph))

        if current:
            texts.append(current)

        return self._make_chunks(file_id, texts)

    def _split_sentences(self, paragraph: str) -> list[str]:
        """Pack the sentences of an oversized paragraph."""
        texts: list[str] = []
        current = ""
        for sentence in _SENTENCE_RE.split(paragraph):
            sentence = sentence.strip()
            if not sentence:
                continue

            candidate = f"{current} {sentence}" if current else sentence
            if self.count_tokens(candidate) <= self.max_tokens_per_chunk:
                current = candidate
                continue

            if current:
                texts.append(current)
                current = ""

            if self.count_tokens(sentence) <= self.max_tokens_per_chunk:
                current = sentence
            else:
                texts.extend(self._split_fixed_window(sentence))

        if current:
            texts.append(current)
        return texts


def chunk(file_id: int, content: str, max_tokens_per_chunk: int) -> list[Chunk]:
    """Split *content* into ordered chunks for *file_id*."""
    return ParagraphChunker(max_tokens_per_chunk).chunk(file_id, content)
