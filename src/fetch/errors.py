"""Exception types raised inside the safe fetch pipeline.

Every exception carries a FetchErrorClass and converts to a FetchError
value at the executor boundary.
"""

from src.fetch.models import FetchError, FetchErrorClass, RateWindowKind


class SafeFetchError(Exception):
    """Base exception for safe fetch failures."""

    error_class: FetchErrorClass = FetchErrorClass.INVALID_URL

    def __init__(self, message: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message (no credentials).
        """
        super().__init__(message)
        self.message = message

    def to_fetch_error(self) -> FetchError:
        """Convert to a serializable FetchError."""
        return FetchError(error_class=self.error_class, message=self.message)


class UrlSecurityError(SafeFetchError):
    """URL rejected by the guard before any network I/O."""


class InvalidUrlError(UrlSecurityError):
    """URL could not be parsed or lacks a scheme or host."""

    error_class = FetchErrorClass.INVALID_URL


class DisallowedSchemeError(UrlSecurityError):
    """URL scheme is not http or https."""

    error_class = FetchErrorClass.DISALLOWED_SCHEME

    def __init__(self, scheme: str) -> None:
        super().__init__(
            f"Only HTTP and HTTPS protocols are allowed (got '{scheme}')"
        )
        self.scheme = scheme


class PrivateNetworkBlockedError(UrlSecurityError):
    """URL host is private, loopback, link-local or otherwise internal."""

    error_class = FetchErrorClass.PRIVATE_NETWORK_BLOCKED

    def __init__(self, host: str) -> None:
        super().__init__("Access to private/internal networks is not allowed")
        self.host = host


class RateLimitExceededError(SafeFetchError):
    """Per-host request ceiling exceeded."""

    error_class = FetchErrorClass.RATE_LIMIT_EXCEEDED

    def __init__(self, host: str, window: RateWindowKind, limit: int) -> None:
        """Initialize the rate limit error.

        Args:
            host: Host that was throttled.
            window: Window whose ceiling was exceeded.
            limit: The ceiling in effect.
        """
        super().__init__(
            f"Rate limit exceeded: too many requests to {host} per {window.value} "
            f"(limit {limit})"
        )
        self.host = host
        self.window = window
        self.limit = limit

    def to_fetch_error(self) -> FetchError:
        """Convert to a FetchError carrying the window."""
        return FetchError(
            error_class=self.error_class,
            message=self.message,
            window=self.window,
        )


class SecurityViolationError(SafeFetchError):
    """TLS certificate validation bypass requested in production."""

    error_class = FetchErrorClass.SECURITY_VIOLATION


class ResponseSizeExceededError(SafeFetchError):
    """Response body exceeds the configured limit."""

    error_class = FetchErrorClass.RESPONSE_SIZE_EXCEEDED

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def to_fetch_error(self) -> FetchError:
        """Convert to a FetchError carrying the status code."""
        return FetchError(
            error_class=self.error_class,
            message=self.message,
            status_code=self.status_code,
        )


class DecodeError(SafeFetchError):
    """Decoder could not turn the response body into a document."""

    error_class = FetchErrorClass.DECODE_FAILURE


class FetchInterruptedError(SafeFetchError):
    """Fetch was cancelled while waiting to retry."""

    error_class = FetchErrorClass.INTERRUPTED
