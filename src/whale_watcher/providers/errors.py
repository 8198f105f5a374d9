"""Provider error hierarchy.

Provider clients raise these; adapters recover from them locally.
"""


class ProviderError(Exception):
    """Base exception for external provider errors."""


class ProviderUnavailableError(ProviderError):
    """Raised on network failure, timeout or a non-success HTTP status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ProviderResponseError(ProviderError):
    """Raised when a provider answers with a malformed body or an RPC error."""
