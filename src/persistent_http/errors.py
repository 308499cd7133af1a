"""Exception taxonomy for the persistent HTTP client."""

from __future__ import annotations


class HttpClientError(Exception):
    """Base class for every error raised by persistent_http."""


class ArgumentError(HttpClientError, ValueError):
    """Caller misuse detected before any network activity."""


class ConfigurationError(HttpClientError, ValueError):
    """Invalid client configuration, host mismatch, or a closed client."""


class ConnectionError(HttpClientError):  # noqa: A001
    """Transport-layer failure that survived every permitted retry.

    Attributes:
        attempts: Total number of sends issued for the logical request.
        elapsed_seconds: Wall-clock time spent before giving up.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        elapsed_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class RequestTimeoutError(HttpClientError):
    """The overall deadline of a logical request elapsed."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        elapsed_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class ResponseFormatError(HttpClientError, ValueError):
    """Response body did not parse as expected."""
