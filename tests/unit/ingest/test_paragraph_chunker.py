"""Tests for ParagraphChunker."""

from __future__ import annotations

import pytest

from dossier.db.models import Chunk, EmbeddingState
from dossier.ingest.paragraph import ParagraphChunker, chunk


def _paragraph(word: str, chars: int = 150) -> str:
    text = ""
    while len(text) < chars:
        text += f"{word} "
    return text[:chars].strip() + "."


def test_default_settings():
    assert ParagraphChunker().max_tokens_per_chunk == 512


def test_invalid_limit_rejected():
    with pytest.raises(ValueError):
        ParagraphChunker(0)


@pytest.mark.parametrize("content", ["", "   ", "\n\n  \n"])
def test_empty_content_yields_no_chunks(content):
    assert ParagraphChunker().chunk(1000, content) == []


def test_three_paragraphs_three_chunks():
    content = "\n\n".join(_paragraph(w) for w in ("alpha", "bravo", "charlie"))
    chunks = chunk(1000, content, max_tokens_per_chunk=50)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[0].content.startswith("alpha")
    assert chunks[2].content.startswith("charlie")


def test_small_paragraphs_are_packed():
    content = "First point.\n\nSecond point.\n\nThird point."
    chunks = chunk(1000, content, max_tokens_per_chunk=512)
    assert len(chunks) == 1
    assert chunks[0].content == "First point.\n\nSecond point.\n\nThird point."


def test_oversized_paragraph_splits_on_sentences():
    sentences = [f"Sentence number {i} talks about topic {i} in some detail." for i in range(10)]
    chunks = chunk(1000, " ".join(sentences), max_tokens_per_chunk=30)
    assert len(chunks) > 1
    for c in chunks:
        assert c.content.endswith(".")
        assert c.token_count <= 30


def test_oversized_sentence_falls_back_to_fixed_windows():
    chunks = chunk(1000, "x" * 1000, max_tokens_per_chunk=50)
    assert [len(c.content) for c in chunks] == [200] * 5
    assert all(c.token_count == 50 for c in chunks)


def test_every_chunk_within_limit():
    content = "\n\n".join(
        [_paragraph("short", 60), _paragraph("long", 900), "y" * 500, _paragraph("tail", 40)]
    )
    for c in chunk(1000, content, max_tokens_per_chunk=40):
        assert c.token_count <= 40


def test_chunks_are_contiguous_and_unsaved():
    content = "\n\n".join(_paragraph(f"p{i}") for i in range(7))
    chunks = chunk(1234, content, max_tokens_per_chunk=50)
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert all(isinstance(c, Chunk) for c in chunks)
    assert all(c.file_id == 1234 and c.chunk_id is None for c in chunks)
    assert all(c.embedding_state is EmbeddingState.PENDING for c in chunks)


def test_chunking_is_deterministic():
    content = "\n\n".join(_paragraph(f"w{i}", 40 * i + 30) for i in range(6)) + "\n\n" + "z" * 700
    first = chunk(1000, content, 64)
    second = chunk(1000, content, 64)
    assert [(c.chunk_index, c.content, c.token_count) for c in first] == [
        (c.chunk_index, c.content, c.token_count) for c in second
    ]


def test_token_count_estimate():
    assert ParagraphChunker.count_tokens("") == 1
    assert ParagraphChunker.count_tokens("abcd" * 10) == 10
