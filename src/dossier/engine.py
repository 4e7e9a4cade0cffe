"""Dossier facade — the gated operations an API layer calls.

Every operation takes the caller's API key first and authorizes it before
touching the store: mutations need ``admin``, reads and searches ``viewer``.
"""

from __future__ import annotations

from dossier.auth.directory import IdentityDirectory
from dossier.auth.gate import AccessGate
from dossier.config import DossierConfig
from dossier.db.connection import Database
from dossier.db.models import EmbeddingState, File, Role
from dossier.db.schema import initialize
from dossier.index.hybrid import HybridIndex
from dossier.index.locks import FileLocks
from dossier.ingest.attacher import EmbeddingAttacher
from dossier.ingest.embedder import Embedder, LiteLLMEmbedder
from dossier.ingest.pipeline import IngestionDriver
from dossier.rag.retriever import QueryEngine, ScoredChunk
from dossier.store.documents import DocumentStore


class Dossier:
    """Wire the components over one database and expose gated operations.

    Args:
        db: Database to use; the schema is initialised on construction.
        config: Loaded configuration.
        embedder: Embedding function. Defaults to LiteLLM with the configured model.
    """

    def __init__(
        self, db: Database, config: DossierConfig, embedder: Embedder | None = None
    ) -> None:
        self.db = db
        self.config = config
        initialize(db.local())

        self.directory = IdentityDirectory(db)
        self.gate = AccessGate(self.directory)
        self.index = HybridIndex(
            db, config.embedding.model, FileLocks(timeout=config.database.busy_timeout)
        )
        self.store = DocumentStore(self.index)
        self.embedder = embedder or LiteLLMEmbedder(
            config.embedding.model, timeout=config.embedding.timeout
        )
        self.driver = IngestionDriver(
            self.store,
            EmbeddingAttacher(self.index, self.embedder, workers=config.ingest.embed_workers),
            max_tokens_per_chunk=config.chunking.max_tokens_per_chunk,
            file_workers=config.ingest.file_workers,
            embed_timeout=config.embedding.timeout,
        )
        self.engine = QueryEngine(
            self.index, self.embedder, config.retrieval, embed_timeout=config.embedding.timeout
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def register(
        self,
        api_key: str | None,
        filename: str,
        applicant: str,
        content: str,
        timeout: float | None = None,
    ) -> File:
        """Ingest a document: register, chunk, embed, mark processed."""
        self.gate.authorize(api_key, Role.ADMIN)
        return self.driver.ingest(filename, applicant, content, timeout)

    def delete(self, api_key: str | None, file_id: int) -> int:
        """Delete a file with its chunks and index entries. Returns chunks removed."""
        self.gate.authorize(api_key, Role.ADMIN)
        return self.store.delete(file_id)

    def delete_applicant(self, api_key: str | None, applicant: str) -> int:
        """Delete every file of *applicant*. Returns the number of files deleted."""
        self.gate.authorize(api_key, Role.ADMIN)
        return self.store.delete_by_applicant(applicant)

    def retry_failed(
        self, api_key: str | None, file_id: int | None = None, timeout: float | None = None
    ) -> int:
        self.gate.authorize(api_key, Role.ADMIN)
        return self.driver.retry_failed(file_id, timeout)

    def resume(self, api_key: str | None, timeout: float | None = None) -> list[File]:
        self.gate.authorize(api_key, Role.ADMIN)
        return self.driver.resume(timeout)

    # ------------------------------------------------------------------
    # Viewer operations
    # ------------------------------------------------------------------

    def get(self, api_key: str | None, file_id: int) -> File:
        self.gate.authorize(api_key, Role.VIEWER)
        return self.store.get(file_id)

    def list_by_applicant(self, api_key: str | None, applicant: str) -> list[File]:
        self.gate.authorize(api_key, Role.VIEWER)
        return self.store.list_by_applicant(applicant)

    def stats(self, api_key: str | None, file_id: int) -> dict[EmbeddingState, int]:
        self.gate.authorize(api_key, Role.VIEWER)
        return self.store.stats(file_id)

    def search(
        self,
        api_key: str | None,
        query_text: str,
        applicant_filter: str | None = None,
        top_k: int | None = None,
        mode: str | None = None,
    ) -> list[ScoredChunk]:
        self.gate.authorize(api_key, Role.VIEWER)
        return self.engine.search(query_text, applicant_filter, top_k, mode)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.driver.close()
        self.db.close_all()

    def __enter__(self) -> Dossier:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
