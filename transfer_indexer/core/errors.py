"""Error taxonomy shared by the indexer components."""

from __future__ import annotations


class IndexerError(RuntimeError):
    """Base class for indexer failures."""


class AccountLoadFailure(IndexerError):
    """Raised when the store cannot load the accounts referenced by a batch."""


class PersistenceFailure(IndexerError):
    """Raised when a batch could not be committed to the store."""


class DuplicateRecordId(PersistenceFailure):
    """Raised when an append-only record id already exists in the store."""


class PriceProviderFailure(IndexerError):
    """Raised when the price provider cannot answer a request."""


class ProviderUnavailable(PriceProviderFailure):
    """Network error, timeout or 5xx from the price provider."""


class ProviderMalformedResponse(PriceProviderFailure):
    """The price provider answered with a payload that could not be parsed."""


class RateLimited(PriceProviderFailure):
    """The price provider rejected the request with HTTP 429."""

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


__all__ = [
    "IndexerError",
    "AccountLoadFailure",
    "PersistenceFailure",
    "DuplicateRecordId",
    "PriceProviderFailure",
    "ProviderUnavailable",
    "ProviderMalformedResponse",
    "RateLimited",
]
