"""Data models for the safe fetch layer."""

import random
from enum import Enum
from typing import Annotated, Any, NamedTuple
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    SerializeAsAny,
    field_validator,
    model_validator,
)

from src.fetch.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    MASKED_VALUE,
)
from src.fetch.redact import redact_url_credentials


class AuthType(str, Enum):
    """Authentication schemes understood by the fetch layer."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class FetchErrorClass(str, Enum):
    """Classification of fetch failures.

    - INVALID_URL: URL could not be parsed or has no host
    - DISALLOWED_SCHEME: Scheme other than http/https
    - PRIVATE_NETWORK_BLOCKED: Target resolves to a non-routable address
    - RATE_LIMIT_EXCEEDED: Per-host minute or hour ceiling exceeded
    - SECURITY_VIOLATION: TLS bypass requested in production
    - HTTP_STATUS: Server answered with a non-2xx status
    - EMPTY_BODY: Successful response without a body
    - RESPONSE_SIZE_EXCEEDED: Body larger than the configured limit
    - EXHAUSTED: Every attempt failed at the transport level
    - INTERRUPTED: Fetch cancelled during retry backoff
    - DECODE_FAILURE: Decoder rejected the response body
    """

    INVALID_URL = "INVALID_URL"
    DISALLOWED_SCHEME = "DISALLOWED_SCHEME"
    PRIVATE_NETWORK_BLOCKED = "PRIVATE_NETWORK_BLOCKED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    HTTP_STATUS = "HTTP_STATUS"
    EMPTY_BODY = "EMPTY_BODY"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    EXHAUSTED = "EXHAUSTED"
    INTERRUPTED = "INTERRUPTED"
    DECODE_FAILURE = "DECODE_FAILURE"


class RateWindowKind(str, Enum):
    """Rate limiting window that rejected a request."""

    MINUTE = "minute"
    HOUR = "hour"


class FetchError(BaseModel):
    """Typed error from a fetch operation.

    Messages are human-readable and never carry credential material.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if available"
    )
    window: RateWindowKind | None = Field(
        default=None, description="Rate window that tripped (rate limiting only)"
    )
    last_cause: str | None = Field(
        default=None, description="Last transport failure (exhaustion only)"
    )


class ClientKey(NamedTuple):
    """Transport configuration identifying a reusable pooled client."""

    timeout_seconds: int
    tls_bypass: bool
    user_agent: str


class FetchRequest(BaseModel):
    """A single logical feed fetch.

    The core consumes url, auth, TLS bypass, user agent and timeout.
    max_items and filters pass through untouched to the decoder.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    max_items: Annotated[int, Field(ge=0)] | None = None
    auth_type: str | None = None
    auth_token: SecretStr | None = None
    tls_bypass: bool = False
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    timeout_seconds: Annotated[int, Field(ge=1, le=300)] = DEFAULT_TIMEOUT_SECONDS
    filters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("auth_type")
    @classmethod
    def normalize_auth_type(cls, v: str | None) -> str | None:
        """Lower-case the auth kind; blank means no auth."""
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @property
    def client_key(self) -> ClientKey:
        """Get the pooled-client key for this request."""
        return ClientKey(self.timeout_seconds, self.tls_bypass, self.user_agent)

    @property
    def host(self) -> str:
        """Get the lower-cased target host, or an empty string."""
        try:
            return (urlparse(self.url).hostname or "").lower()
        except ValueError:
            return ""

    def to_safe_string(self) -> str:
        """Render the request for diagnostics with credentials masked."""
        token = MASKED_VALUE if self.auth_token is not None else None
        return (
            "FetchRequest("
            f"url={redact_url_credentials(self.url)!r}, "
            f"max_items={self.max_items!r}, "
            f"auth_type={self.auth_type!r}, "
            f"auth_token={token!r}, "
            f"tls_bypass={self.tls_bypass!r}, "
            f"user_agent={self.user_agent!r}, "
            f"timeout_seconds={self.timeout_seconds!r})"
        )

    def __repr__(self) -> str:
        return self.to_safe_string()

    def __str__(self) -> str:
        return self.to_safe_string()


class FetchResult(BaseModel):
    """Terminal outcome of a fetch.

    Exactly one of success (with body) or failure (with error).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    error: FetchError | None = Field(
        default=None, description="Error details if fetch failed"
    )
    body_bytes: bytes | None = Field(default=None, description="Raw response body")
    encoding: str | None = Field(
        default=None, description="Declared character encoding of the body"
    )
    status_code: int | None = Field(default=None, description="Final HTTP status")
    final_url: str | None = Field(default=None, description="URL after redirects")
    attempts: Annotated[int, Field(ge=0)] = 0
    payload: SerializeAsAny[BaseModel] | None = Field(
        default=None, description="Decoder output on success"
    )

    @model_validator(mode="after")
    def check_outcome(self) -> "FetchResult":
        """Ensure error and body presence match the success flag."""
        if self.success and self.error is not None:
            msg = "Successful result must not carry an error"
            raise ValueError(msg)
        if not self.success and self.error is None:
            msg = "Failed result must carry an error"
            raise ValueError(msg)
        if not self.success and self.body_bytes is not None:
            msg = "Failed result must not carry a body"
            raise ValueError(msg)
        return self

    @classmethod
    def failure(cls, error: FetchError, attempts: int = 0) -> "FetchResult":
        """Build a failed result."""
        return cls(
            success=False,
            error=error,
            status_code=error.status_code,
            attempts=attempts,
        )

    @property
    def is_success(self) -> bool:
        """Check if the fetch succeeded."""
        return self.success

    @property
    def body_size(self) -> int:
        """Get the size of the response body in bytes."""
        return len(self.body_bytes) if self.body_bytes else 0


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    Only transport-level failures are retried.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: Annotated[int, Field(ge=1, le=10)] = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 30000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.0

    def has_attempts_left(self, attempt: int) -> bool:
        """Check whether another attempt follows a failed one.

        Args:
            attempt: The attempt that just failed (0-indexed).

        Returns:
            True if the request should be retried.
        """
        return attempt + 1 < self.max_attempts

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: The attempt that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        if self.jitter_factor:
            delay += delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay)
