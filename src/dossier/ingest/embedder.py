"""Embedding function adapter — LiteLLM embeddings with dimension checks.

The store treats the model as a black box: text in, a 768-dimension vector
out, or an EmbeddingError. A vector of any other length is a failure, never
truncated or padded.
"""

from __future__ import annotations

import math
from typing import Protocol

import litellm

from dossier.db.vectors import EMBEDDING_DIMENSIONS
from dossier.errors import EmbeddingError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True


class Embedder(Protocol):
    """The external embedding function consumed by attachment and search."""

    model: str

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        """Return the embedding of *text*. Raises EmbeddingError on failure."""
        ...


class LiteLLMEmbedder:
    """Embed text with ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        timeout: Default per-call timeout in seconds.
    """

    def __init__(self, model: str, timeout: float = 30.0) -> None:
        self.model = model
        self.timeout = timeout

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=[text],
                timeout=timeout if timeout is not None else self.timeout,
            )
            vector = response.data[0]["embedding"]
        except Exception as exc:
            raise EmbeddingError(f"{self.model}: {exc}") from exc
        return validate_dimensions(vector)


def validate_dimensions(vector: list[float]) -> list[float]:
    """Return *vector* as floats if it has exactly EMBEDDING_DIMENSIONS finite values."""
    if len(vector) != EMBEDDING_DIMENSIONS:
        raise EmbeddingError(
            f"expected {EMBEDDING_DIMENSIONS} dimensions, got {len(vector)}"
        )
    try:
        values = [float(v) for v in vector]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(f"embedding contains non-numeric values: {exc}") from exc
    if not all(math.isfinite(v) for v in values):
        raise EmbeddingError("embedding contains non-finite values")
    return values
