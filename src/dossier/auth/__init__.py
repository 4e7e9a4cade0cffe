"""Identity directory and access control gate."""

from dossier.auth.directory import IdentityDirectory, derive_key, generate_api_key, validate_key
from dossier.auth.gate import AccessGate

__all__ = [
    "AccessGate",
    "IdentityDirectory",
    "derive_key",
    "generate_api_key",
    "validate_key",
]
