"""Safe HTTP fetch layer for feed documents.

This module provides guarded HTTP fetch operations with:
- SSRF protection (scheme checks, private/internal address blocking)
- Per-host minute and hour rate limiting
- TLS bypass veto in production deployments
- LRU-bounded pooled httpx clients
- Bounded retries with exponential backoff
- Credential masking for logs and diagnostics
- Metrics collection for observability
"""

from src.fetch.address import AddressClassifier, is_blocked_host
from src.fetch.constants import (
    DEFAULT_CLIENT_POOL_SIZE,
    DEFAULT_MAX_REQUESTS_PER_HOUR,
    DEFAULT_MAX_REQUESTS_PER_MINUTE,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_USER_AGENT,
    MASKED_VALUE,
)
from src.fetch.errors import (
    DecodeError,
    DisallowedSchemeError,
    FetchInterruptedError,
    InvalidUrlError,
    PrivateNetworkBlockedError,
    RateLimitExceededError,
    ResponseSizeExceededError,
    SafeFetchError,
    SecurityViolationError,
    UrlSecurityError,
)
from src.fetch.executor import (
    FeedDecoderProtocol,
    SafeFeedFetcher,
    build_request_headers,
)
from src.fetch.guard import UrlGuard
from src.fetch.metrics import FetchMetrics
from src.fetch.models import (
    AuthType,
    ClientKey,
    FetchError,
    FetchErrorClass,
    FetchRequest,
    FetchResult,
    RateWindowKind,
    RetryPolicy,
)
from src.fetch.pool import (
    ClientPool,
    PooledClient,
    build_client,
    get_shared_client_pool,
    reset_shared_client_pool,
)
from src.fetch.rate_limiter import (
    HostRateLimiter,
    RateWindow,
    get_shared_rate_limiter,
    reset_shared_rate_limiter,
)
from src.fetch.redact import redact_headers, redact_url_credentials
from src.fetch.state_machine import FetchState, FetchStateMachine
from src.fetch.tls import ensure_tls_bypass_allowed, is_production_environment


__all__ = [
    # Executor
    "SafeFeedFetcher",
    "FeedDecoderProtocol",
    "build_request_headers",
    # Guard
    "UrlGuard",
    "AddressClassifier",
    "is_blocked_host",
    # Rate limiting
    "HostRateLimiter",
    "RateWindow",
    "get_shared_rate_limiter",
    "reset_shared_rate_limiter",
    # Client pool / TLS
    "ClientPool",
    "PooledClient",
    "build_client",
    "get_shared_client_pool",
    "reset_shared_client_pool",
    "ensure_tls_bypass_allowed",
    "is_production_environment",
    # State machine
    "FetchState",
    "FetchStateMachine",
    # Models
    "AuthType",
    "ClientKey",
    "FetchError",
    "FetchErrorClass",
    "FetchRequest",
    "FetchResult",
    "RateWindowKind",
    "RetryPolicy",
    # Errors
    "SafeFetchError",
    "UrlSecurityError",
    "InvalidUrlError",
    "DisallowedSchemeError",
    "PrivateNetworkBlockedError",
    "RateLimitExceededError",
    "SecurityViolationError",
    "ResponseSizeExceededError",
    "DecodeError",
    "FetchInterruptedError",
    # Constants
    "DEFAULT_CLIENT_POOL_SIZE",
    "DEFAULT_MAX_REQUESTS_PER_HOUR",
    "DEFAULT_MAX_REQUESTS_PER_MINUTE",
    "DEFAULT_MAX_RESPONSE_SIZE_BYTES",
    "DEFAULT_USER_AGENT",
    "MASKED_VALUE",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
