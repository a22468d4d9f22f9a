"""Error taxonomy shared by the ingestion pipeline, stores and surfaces."""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every error raised by estate-ingest."""


class FetchError(IngestError):
    """A feed could not be retrieved and retrying will not help."""


class TransientFetchError(FetchError):
    """Network or HTTP failure worth retrying with backoff."""


class MalformedPayloadError(IngestError):
    """The feed returned something that is not a list of records."""


class RecordNormalizationError(IngestError):
    """A single raw record cannot be mapped onto the canonical listing."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(IngestError):
    """Uniqueness violation (source name or active fingerprint)."""


class InvalidStateError(IngestError):
    """Illegal lifecycle transition."""


class NotFoundError(IngestError):
    """Requested record does not exist or is not visible."""


class AuthorizationError(IngestError):
    """Caller lacks the privilege required by an admin surface."""

    def __init__(self, message: str, authenticated: bool = False) -> None:
        super().__init__(message)
        self.authenticated = authenticated


__all__ = [
    "AuthorizationError",
    "ConflictError",
    "FetchError",
    "IngestError",
    "InvalidStateError",
    "MalformedPayloadError",
    "NotFoundError",
    "RecordNormalizationError",
    "TransientFetchError",
]
