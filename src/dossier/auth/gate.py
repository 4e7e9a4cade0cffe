"""Access control gate — API key → user → role check."""

from __future__ import annotations

from typing import Protocol

from dossier.db.models import Role, User
from dossier.errors import Forbidden, Unauthorized
from dossier.logging_config import get_logger

log = get_logger(__name__)


class UserLookup(Protocol):
    """Anything that can resolve an API key (the identity directory, or a test stand-in)."""

    def by_api_key(self, api_key: str) -> User | None: ...


class AccessGate:
    """Authorize callers by API key.

    Document Store mutations require ``Role.ADMIN``; reads and queries require
    ``Role.VIEWER``. The gate never mutates users.
    """

    def __init__(self, directory: UserLookup) -> None:
        self._directory = directory

    def authorize(self, api_key: str | None, required: Role) -> User:
        """Resolve *api_key* and check it carries *required* or above.

        Raises:
            Unauthorized: The key is missing or unknown.
            Forbidden: The user is inactive or below *required*.
        """
        user = self._directory.by_api_key(api_key) if api_key else None
        if user is None:
            log.warning("authorization_denied", reason="unknown_key", required=required.value)
            raise Unauthorized("unknown API key")

        if not user.role.satisfies(required):
            log.warning(
                "authorization_denied",
                reason="role",
                user_id=user.user_id,
                role=user.role.value,
                required=required.value,
            )
            raise Forbidden(
                f"user '{user.user_id}' has role '{user.role.value}', "
                f"operation requires '{required.value}'"
            )
        return user
