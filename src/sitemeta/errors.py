"""Custom exceptions for the metadata resolver."""


class SiteMetaError(Exception):
    """Base exception for this project."""


class ConfigError(SiteMetaError):
    """Raised when runtime configuration is invalid."""


class StorageError(SiteMetaError):
    """Raised when the key/value store cannot read or write an entry."""


class StorageQuotaError(StorageError):
    """Raised when the key/value store is full."""


class ProviderError(SiteMetaError):
    """Raised inside a provider adapter when a metadata API call fails."""


class RateLimitedError(ProviderError):
    """Raised when a provider signals throttling (HTTP 429 or an in-body code)."""


class ProviderHTTPError(ProviderError):
    """Raised when a provider answers with a non-success HTTP status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class PayloadError(ProviderError):
    """Raised when a provider body is not JSON or cannot be decoded."""
