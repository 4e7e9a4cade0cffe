"""Tests for the hybrid (FTS5 + sqlite-vec) index."""

from __future__ import annotations

import threading
import time

import pytest

from dossier.db.models import Chunk, EmbeddingState
from dossier.errors import IndexInconsistency, NotFoundError
from dossier.index.hybrid import build_match, check_contiguous


def _stored_chunks(store, texts, applicant="a1", filename="cv.txt"):
    file_id = store.register(filename, applicant, "\n\n".join(texts))
    chunks = [
        Chunk(file_id=file_id, chunk_index=i, content=t, token_count=max(1, len(t) // 4))
        for i, t in enumerate(texts)
    ]
    return file_id, store.add_chunks(file_id, chunks)


def _embed(index, embedder, chunk):
    attempt = index.begin_attempt(chunk)
    assert index.attach_embedding(chunk, attempt, embedder.embed(chunk.content))


def _lexical(index, query, **filters):
    with index.snapshot() as repo:
        return [cid for cid, _ in index.search_lexical(repo, query, 10, **filters)]


def _vector(index, embedder, text, **filters):
    with index.snapshot() as repo:
        return [cid for cid, _ in index.search_vector(repo, embedder.embed(text), 10, **filters)]


# ------------------------------------------------------------------
# build_match
# ------------------------------------------------------------------

@pytest.mark.parametrize("query,expected", [
    ("Python developer", '"python" OR "developer"'),
    ("python python", '"python"'),
    ('NEAR(a b) OR "x" AND -y*', '"near" OR "a" OR "b" OR "or" OR "x" OR "and" OR "y"'),
    ("  ?! ", ""),
])
def test_build_match(query, expected):
    assert build_match(query) == expected


def test_check_contiguous():
    check_contiguous(1000, [])
    check_contiguous(1000, [0, 1, 2])
    for bad in ([1, 2], [0, 2], [0, 0, 1], [1, 0]):
        with pytest.raises(IndexInconsistency):
            check_contiguous(1000, bad)


# ------------------------------------------------------------------
# Lexical view
# ------------------------------------------------------------------

def test_all_chunks_are_lexically_indexed_regardless_of_state(index, store):
    _, chunks = _stored_chunks(store, ["python developer", "java engineer"])
    assert _lexical(index, "python") == [chunks[0].chunk_id]
    assert _lexical(index, "engineer") == [chunks[1].chunk_id]


def test_lexical_filters(index, store):
    f1, c1 = _stored_chunks(store, ["python developer"], applicant="a1")
    _, c2 = _stored_chunks(store, ["python tester"], applicant="a2", filename="b.txt")
    assert _lexical(index, "python", applicant="a2") == [c2[0].chunk_id]
    assert _lexical(index, "python", file_id=f1) == [c1[0].chunk_id]


def test_operator_text_is_inert(index, store):
    _stored_chunks(store, ["plain text"])
    assert _lexical(index, 'text" OR NEAR(') != []
    assert _lexical(index, "***") == []


# ------------------------------------------------------------------
# Vector view
# ------------------------------------------------------------------

def test_vector_view_only_has_embedded_chunks(index, store, embedder):
    _, chunks = _stored_chunks(store, ["python developer", "java engineer"])
    _embed(index, embedder, chunks[0])
    attempt = index.begin_attempt(chunks[1])
    assert index.fail_embedding(chunks[1], attempt, "model down")

    hits = _vector(index, embedder, "java engineer")
    assert hits == [chunks[0].chunk_id]


def test_vector_search_exact_match_first(index, store, embedder):
    _, chunks = _stored_chunks(store, ["alpha text", "bravo text", "charlie text"])
    for c in chunks:
        _embed(index, embedder, c)
    with index.snapshot() as repo:
        hits = index.search_vector(repo, embedder.embed("bravo text"), 3)
    assert hits[0][0] == chunks[1].chunk_id
    assert hits[0][1] == pytest.approx(1.0, abs=1e-4)


def test_vector_applicant_filter_applies_before_top_k(index, store, embedder):
    _, a1_chunks = _stored_chunks(store, [f"a1 text {i}" for i in range(5)], applicant="a1")
    _, a2_chunks = _stored_chunks(store, ["a2 text"], applicant="a2", filename="b.txt")
    for c in a1_chunks + a2_chunks:
        _embed(index, embedder, c)

    with index.snapshot() as repo:
        hits = index.search_vector(repo, embedder.embed("a1 text 0"), 1, applicant="a2")
    assert [h[0] for h in hits] == [a2_chunks[0].chunk_id]


def test_stale_attach_is_rejected(index, store, embedder):
    _, chunks = _stored_chunks(store, ["text"])
    first = index.begin_attempt(chunks[0])
    index.fail_embedding(chunks[0], first, "timed out")
    assert not index.attach_embedding(chunks[0], first, embedder.embed("text"))
    assert _vector(index, embedder, "text") == []


# ------------------------------------------------------------------
# upsert / remove
# ------------------------------------------------------------------

def test_upsert_is_idempotent(index, store, embedder):
    file_id, chunks = _stored_chunks(store, ["python developer"])
    _embed(index, embedder, chunks[0])
    stored = store.chunks(file_id, with_embeddings=True)

    assert index.upsert(stored[0])
    assert index.upsert(stored[0])

    repo = index.repo()
    assert repo.count_fts([stored[0].chunk_id]) == 1
    assert repo.count_embeddings(index.vec_table, [stored[0].chunk_id]) == 1
    index.verify_file(file_id)


def test_upsert_rejects_mismatched_chunk(index, store):
    _, chunks = _stored_chunks(store, ["original"])
    tampered = Chunk(
        file_id=chunks[0].file_id, chunk_index=0, content="changed", token_count=1,
        chunk_id=chunks[0].chunk_id,
    )
    with pytest.raises(IndexInconsistency):
        index.upsert(tampered)


def test_upsert_never_resurrects_deleted_chunks(index, store):
    file_id, chunks = _stored_chunks(store, ["python developer"])
    store.delete(file_id)

    assert index.upsert(chunks[0]) is False
    assert _lexical(index, "python") == []


def test_upserts_and_attachments_racing_a_file_delete_leave_no_entries(index, store, embedder):
    doomed_id, doomed = _stored_chunks(store, [f"doomed text {i}" for i in range(6)])
    kept_id, kept = _stored_chunks(store, [f"kept text {i}" for i in range(6)], filename="b.txt")
    stop = threading.Event()
    errors: list[Exception] = []

    def churn(chunks):
        try:
            while not stop.is_set():
                index.upsert_many(chunks)
                for chunk in chunks:
                    attempt = index.begin_attempt(chunk)
                    if attempt is not None:
                        index.attach_embedding(chunk, attempt, embedder.embed(chunk.content))
        except Exception as exc:  # reported by the assertion below
            errors.append(exc)

    workers = [
        threading.Thread(target=churn, args=(chunks,))
        for chunks in (doomed, doomed, doomed + kept, kept)
    ]
    for worker in workers:
        worker.start()
    time.sleep(0.05)
    assert store.delete(doomed_id) == 6
    time.sleep(0.1)
    stop.set()
    for worker in workers:
        worker.join(timeout=10)

    assert errors == []
    repo = index.repo()
    doomed_ids = [c.chunk_id for c in doomed]
    assert repo.count_fts(doomed_ids) == 0
    assert repo.count_embeddings(index.vec_table, doomed_ids) == 0
    assert all(repo.get_chunk(cid) is None for cid in doomed_ids)
    assert _lexical(index, "doomed") == []

    index.verify_file(kept_id)
    assert store.stats(kept_id)[EmbeddingState.EMBEDDED] == 6


def test_upsert_unsaved_chunk_rejected(index):
    with pytest.raises(IndexInconsistency):
        index.upsert(Chunk(file_id=1000, chunk_index=0, content="x", token_count=1))


def test_remove_chunk_purges_both_views(index, store, embedder):
    _, chunks = _stored_chunks(store, ["python developer"])
    _embed(index, embedder, chunks[0])

    index.remove(chunks[0].chunk_id)

    assert _lexical(index, "python") == []
    assert _vector(index, embedder, "python developer") == []


def test_remove_unknown_chunk(index):
    with pytest.raises(NotFoundError):
        index.remove(424242)


def test_remove_file_purges_every_chunk(index, store, embedder):
    file_id, chunks = _stored_chunks(store, ["python one", "python two"])
    other_id, other = _stored_chunks(store, ["python three"], filename="b.txt")
    for c in chunks + other:
        _embed(index, embedder, c)

    assert index.remove_file(file_id) == 2

    assert _lexical(index, "python") == [other[0].chunk_id]
    assert _vector(index, embedder, "python one") == [other[0].chunk_id]


def test_verify_file_detects_missing_postings(index, store):
    file_id, chunks = _stored_chunks(store, ["python developer"])
    index.repo().delete_fts([chunks[0].chunk_id])
    with pytest.raises(IndexInconsistency, match="lexical"):
        index.verify_file(file_id)


def test_verify_file_detects_vector_for_failed_chunk(index, store, embedder):
    file_id, chunks = _stored_chunks(store, ["python developer"])
    attempt = index.begin_attempt(chunks[0])
    index.fail_embedding(chunks[0], attempt, "x")
    index.repo().put_embedding(
        index.vec_table, chunks[0].chunk_id, embedder.embed("x"), "a1", file_id
    )
    with pytest.raises(IndexInconsistency, match="vector"):
        index.verify_file(file_id)
