"""Domain models for the dossier database layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """User role, ordered inactive < viewer < admin."""

    INACTIVE = "inactive"
    VIEWER = "viewer"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, required: Role) -> bool:
        """True if this role may perform an operation that needs *required*.

        ``inactive`` never satisfies anything, including itself.
        """
        if self is Role.INACTIVE:
            return False
        return self.rank >= required.rank


_ROLE_RANK: dict[Role, int] = {
    Role.INACTIVE: 0,
    Role.VIEWER: 1,
    Role.ADMIN: 2,
}


class EmbeddingState(str, Enum):
    """Per-chunk embedding lifecycle: pending → embedded | failed."""

    PENDING = "pending"
    EMBEDDED = "embedded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return _TERMINAL[self]


_TERMINAL: dict[EmbeddingState, bool] = {
    EmbeddingState.PENDING: False,
    EmbeddingState.EMBEDDED: True,
    EmbeddingState.FAILED: True,
}


@dataclass
class User:
    user_id: str
    email: str
    salt: str
    role: Role = Role.VIEWER
    api_key: str | None = None
    first_name: str = ""
    last_name: str = ""
    created_at: str | None = None


@dataclass
class File:
    file_id: int
    filename: str
    applicant: str
    content_hash: str
    processed: bool = False
    created_at: str | None = None


@dataclass
class Chunk:
    file_id: int
    chunk_index: int
    content: str
    token_count: int
    embedding_state: EmbeddingState = EmbeddingState.PENDING
    embedding: list[float] | None = None
    embedding_attempts: int = 0
    embedding_error: str | None = None
    created_at: str | None = None
    chunk_id: int | None = None  # set after insert; None for unsaved chunks
