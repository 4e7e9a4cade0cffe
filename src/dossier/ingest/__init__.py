"""Dossier ingest pipeline — chunkers and the embedding function adapter."""

from dossier.ingest.base import BaseChunker
from dossier.ingest.embedder import Embedder, LiteLLMEmbedder, validate_dimensions
from dossier.ingest.paragraph import ParagraphChunker, chunk

__all__ = [
    "BaseChunker",
    "Embedder",
    "LiteLLMEmbedder",
    "ParagraphChunker",
    "chunk",
    "validate_dimensions",
]
