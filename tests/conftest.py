"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import os
import random
import threading
import time

import pytest

# Test environment: use litellm's bundled model cost map (no background network
# fetch at import) and a wide terminal so CLI output is not wrapped by rich.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")
os.environ.setdefault("COLUMNS", "200")

from dossier.config import RetrievalCfg
from dossier.db.connection import Database
from dossier.db.schema import initialize
from dossier.db.vectors import EMBEDDING_DIMENSIONS
from dossier.errors import EmbeddingError
from dossier.index.hybrid import HybridIndex
from dossier.index.locks import FileLocks
from dossier.ingest.attacher import EmbeddingAttacher
from dossier.ingest.pipeline import IngestionDriver
from dossier.rag.retriever import QueryEngine
from dossier.store.documents import DocumentStore


def fake_vector(text: str) -> list[float]:
    """Deterministic 768-dim vector seeded by the hash of *text*."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = random.Random(seed)
    return [rng.uniform(-1.0, 1.0) for _ in range(EMBEDDING_DIMENSIONS)]


class FakeEmbedder:
    """In-process stand-in for the embedding model.

    Texts containing any marker in ``fail_on`` raise EmbeddingError; texts
    containing any marker in ``slow_on`` sleep ``delay`` seconds first.
    """

    model = "test/fake-embed"

    def __init__(self) -> None:
        self.fail_on: set[str] = set()
        self.slow_on: set[str] = set()
        self.delay = 0.0
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if any(marker in text for marker in self.slow_on):
            time.sleep(self.delay)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f"model refused: {text[:20]!r}")
        if text in self.vectors:
            return self.vectors[text]
        return fake_vector(text)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".dossier.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def database(tmp_path):
    """Database with per-thread connections and schema initialized."""
    db = Database(tmp_path / ".dossier.db", busy_timeout=5.0)
    initialize(db.local())
    yield db
    db.close_all()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index(database, embedder):
    return HybridIndex(database, embedder.model, FileLocks(timeout=5.0))


@pytest.fixture
def store(index):
    return DocumentStore(index)


@pytest.fixture
def attacher(index, embedder):
    a = EmbeddingAttacher(index, embedder, workers=4)
    yield a
    a.close()


@pytest.fixture
def driver(store, index, embedder):
    d = IngestionDriver(
        store,
        EmbeddingAttacher(index, embedder, workers=4),
        max_tokens_per_chunk=50,
        file_workers=2,
        embed_timeout=5.0,
    )
    yield d
    d.close()


@pytest.fixture
def engine(index, embedder):
    return QueryEngine(index, embedder, RetrievalCfg(), embed_timeout=5.0)
