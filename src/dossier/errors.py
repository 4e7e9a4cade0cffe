"""Error kinds raised by the dossier core.

Each error carries the status code an HTTP collaborator is expected to map it
to; the core itself never speaks HTTP.
"""

from __future__ import annotations


class DossierError(Exception):
    """Base class for all core errors."""

    status_code: int = 500


class ValidationError(DossierError):
    """Malformed input: empty filename/applicant/content, out-of-range limits."""

    status_code = 400


class NotFoundError(DossierError):
    """Unknown file, chunk, or user id."""

    status_code = 404


class Unauthorized(DossierError):
    """API key missing or not known to the identity directory."""

    status_code = 401


class Forbidden(DossierError):
    """Known identity whose role is inactive or below the required level."""

    status_code = 403


class EmbeddingError(DossierError):
    """A single call to the embedding function failed (error, timeout, bad dimension)."""

    status_code = 503


class EmbeddingUnavailable(DossierError):
    """A query needed an embedding and the embedding function could not provide one."""

    status_code = 503


class IndexInconsistency(DossierError):
    """Internal invariant violation in the chunk store or its indexes.

    Always fatal to the triggering operation and never repaired silently.
    """

    status_code = 500


class OperationTimeout(DossierError):
    """A lock or index operation did not complete within the caller's timeout."""

    status_code = 503
