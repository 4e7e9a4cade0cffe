"""Identity directory — users, roles, and API keys."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import sqlite3
import uuid

from dossier.db.connection import Database, transaction
from dossier.db.models import Role, User
from dossier.db.repository import Repository
from dossier.errors import NotFoundError, Unauthorized, ValidationError
from dossier.logging_config import get_logger

log = get_logger(__name__)

_KEY_SCHEME = "#01#"


class IdentityDirectory:
    """User records keyed by ``user_id`` with unique ``email`` and ``api_key``.

    Users are created once at provisioning. ``role`` is the only field that can
    change afterwards, and only through ``set_role`` (an administrative
    operation — the access gate never mutates users).
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def _repo(self) -> Repository:
        return Repository(self._db.local())

    def provision(
        self,
        user_id: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        role: Role = Role.VIEWER,
        api_key: str | None = None,
    ) -> User:
        """Create a user and return it, generating salt and API key.

        Raises:
            ValidationError: Empty ``user_id``/``email``, or a duplicate
                ``user_id``, ``email`` or ``api_key``.
        """
        if not user_id.strip():
            raise ValidationError("user_id must not be empty")
        if not email.strip():
            raise ValidationError("email must not be empty")

        user = User(
            user_id=user_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=Role(role),
            api_key=api_key if api_key is not None else generate_api_key(),
            salt=str(uuid.uuid4()),
        )
        repo = self._repo()
        try:
            with transaction(repo.conn):
                repo.add_user(user)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"user '{user_id}' conflicts with an existing user: {exc}") from exc

        log.info("user_provisioned", user_id=user_id, role=user.role.value)
        return self.get(user_id)

    def get(self, user_id: str) -> User:
        user = self._repo().get_user(user_id)
        if user is None:
            raise NotFoundError(f"unknown user '{user_id}'")
        return user

    def by_api_key(self, api_key: str) -> User | None:
        """Resolve an API key to its user, or None if the key is unknown."""
        if not api_key:
            return None
        return self._repo().get_user_by_api_key(api_key)

    def list_users(self) -> list[User]:
        return self._repo().list_users()

    def set_role(self, user_id: str, role: Role) -> User:
        """Change the role of *user_id* (administrative operation)."""
        repo = self._repo()
        with transaction(repo.conn):
            if not repo.update_role(user_id, Role(role)):
                raise NotFoundError(f"unknown user '{user_id}'")
        log.info("user_role_changed", user_id=user_id, role=Role(role).value)
        return self.get(user_id)


def generate_api_key() -> str:
    """Return a new random URL-safe API key."""
    return secrets.token_urlsafe(32)


def derive_key(content: str, salt: str, secret: bytes) -> str:
    """HMAC-SHA256 of *content* + *salt* under *secret*, url-safe base64 encoded.

    Used for any secondary credential tied to a user (the user's ``salt``).
    """
    if not secret:
        raise ValidationError("key derivation secret must not be empty")
    mac = hmac.new(secret, digestmod=hashlib.sha256)
    mac.update(content.encode("utf-8"))
    mac.update(uuid.UUID(salt).bytes)
    encoded = base64.urlsafe_b64encode(mac.digest()).rstrip(b"=").decode("ascii")
    return f"{_KEY_SCHEME}{encoded}"


def validate_key(content: str, salt: str, secret: bytes, expected: str) -> None:
    """Raise Unauthorized unless *content* derives to *expected*."""
    if not hmac.compare_digest(derive_key(content, salt, secret), expected):
        raise Unauthorized("credential does not match")
