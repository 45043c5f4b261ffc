"""Errors raised at the provider boundary.

The sync pipeline branches on these types. An auth error flips the
connection to ``requires_update``; a rate limit is rescheduled with backoff;
anything else is contained to one account or one record.
"""


class ProviderError(Exception):
    """Base class. ``provider_name`` identifies the provider that failed."""

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        super().__init__(message)
        self.provider_name = provider_name


class ProviderAuthError(ProviderError):
    """Credentials were rejected or are missing (HTTP 401/403)."""


class ProviderRateLimitError(ProviderError):
    """The provider throttled us (HTTP 429).

    ``retry_after`` is the wait in seconds the provider asked for, if any.
    """

    retriable = True

    def __init__(self, message: str, provider_name: str = "", retry_after: int | None = None):
        super().__init__(message, provider_name)
        self.retry_after = retry_after


class ProviderConnectionError(ProviderError):
    """Transport failure: timeout, DNS, refused connection."""

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        super().__init__(message, provider_name)
        self.retriable = retriable


class ProviderAPIError(ProviderError):
    """Non-success HTTP response. Server errors (5xx) are retriable unless told otherwise."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        retriable: bool | None = None,
    ):
        super().__init__(message, provider_name)
        self.status_code = status_code
        if retriable is None:
            retriable = status_code is not None and status_code >= 500
        self.retriable = retriable


class ProviderDataError(ProviderError):
    """A response or record that cannot be parsed."""
