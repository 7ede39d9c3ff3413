"""Safe feed fetcher: guard, rate limit, pooled client, retries, decode."""

import base64
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from io import BytesIO
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel

from src.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from src.fetch.errors import (
    DecodeError,
    FetchInterruptedError,
    ResponseSizeExceededError,
    SafeFetchError,
)
from src.fetch.guard import UrlGuard
from src.fetch.metrics import FetchMetrics
from src.fetch.models import (
    AuthType,
    FetchError,
    FetchErrorClass,
    FetchRequest,
    FetchResult,
    RetryPolicy,
)
from src.fetch.pool import ClientPool, get_shared_client_pool
from src.fetch.rate_limiter import HostRateLimiter, get_shared_rate_limiter
from src.fetch.redact import redact_headers, redact_secret, redact_url_credentials
from src.fetch.state_machine import FetchState, FetchStateMachine
from src.settings import get_settings


logger = structlog.get_logger()

Sleeper = Callable[[float], None]


class FeedDecoderProtocol(Protocol):
    """Turns a fetched body into a structured document.

    Raises DecodeError when the body cannot be decoded.
    """

    def decode(
        self,
        body: bytes,
        encoding: str | None,
        request: FetchRequest,
    ) -> BaseModel:
        """Decode a response body.

        Args:
            body: Raw response bytes.
            encoding: Declared character encoding, if any.
            request: The originating request (filters, max items).

        Returns:
            Decoded document.
        """
        ...


@dataclass(frozen=True)
class _Response:
    """A 2xx response read into memory."""

    status_code: int
    body: bytes
    encoding: str | None
    final_url: str


def build_request_headers(request: FetchRequest) -> dict[str, str]:
    """Build request headers for a fetch.

    User-Agent is always set. Basic credentials are split on the first
    colon; bearer tokens are sent verbatim. Unknown auth kinds or an
    empty token add no Authorization header.

    Args:
        request: The fetch request.

    Returns:
        Headers dictionary.
    """
    headers = {"User-Agent": request.user_agent}

    token = request.auth_token.get_secret_value() if request.auth_token else ""
    if not token:
        return headers

    if request.auth_type == AuthType.BASIC.value:
        username, _, password = token.partition(":")
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode(
            "ascii"
        )
        headers["Authorization"] = f"Basic {credentials}"
    elif request.auth_type == AuthType.BEARER.value:
        headers["Authorization"] = f"Bearer {token}"

    return headers


class SafeFeedFetcher:
    """Runs one logical fetch through the safe fetch pipeline.

    VALIDATING -> RATE_CHECK -> CLIENT_ACQUIRE -> REQUESTING -> ATTEMPTING
    -> DECODING, ending in SUCCEEDED or FAILED. Every failure becomes a
    FetchResult; nothing escapes to the caller.

    Only transport-level exceptions are retried. Non-2xx responses,
    oversize or empty bodies, and policy rejections are terminal.
    """

    def __init__(
        self,
        guard: UrlGuard | None = None,
        rate_limiter: HostRateLimiter | None = None,
        client_pool: ClientPool | None = None,
        decoder: FeedDecoderProtocol | None = None,
        retry_policy: RetryPolicy | None = None,
        max_response_size_bytes: int | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            guard: URL guard (DNS-backed by default).
            rate_limiter: Per-host limiter (process-wide by default).
            client_pool: Client pool (process-wide by default).
            decoder: Decoder for successful bodies; None keeps raw bytes.
            retry_policy: Attempt budget and backoff schedule.
            max_response_size_bytes: Body limit (settings default if None).
            sleep: Backoff sleep override (for tests).
        """
        self._guard = guard or UrlGuard()
        self._rate_limiter = rate_limiter or get_shared_rate_limiter()
        self._pool = client_pool or get_shared_client_pool()
        self._decoder = decoder
        self._policy = retry_policy or RetryPolicy()
        self._max_response_size_bytes = max_response_size_bytes
        self._sleep = sleep
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")

    def fetch(
        self,
        request: FetchRequest,
        cancel_event: threading.Event | None = None,
    ) -> FetchResult:
        """Fetch a feed.

        Args:
            request: The fetch request.
            cancel_event: When set, interrupts a pending retry backoff.

        Returns:
            Exactly one terminal outcome.
        """
        start_time_ns = time.perf_counter_ns()
        machine = FetchStateMachine(host=request.host)
        log = self._log.bind(url=redact_url_credentials(request.url))
        log.info("fetch_started", request=request.to_safe_string())

        result = self._run(request, machine, cancel_event, log)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        error_class = result.error.error_class if result.error else None
        self._metrics.record_outcome(error_class, duration_ms)

        log_method = log.info if result.success else log.warning
        log_method(
            "fetch_complete",
            success=result.success,
            state=machine.state.value,
            status_code=result.status_code,
            attempts=result.attempts,
            bytes=result.body_size,
            duration_ms=round(duration_ms, 2),
            error_class=error_class.value if error_class else None,
            error=result.error.message if result.error else None,
        )
        return result

    def _run(
        self,
        request: FetchRequest,
        machine: FetchStateMachine,
        cancel_event: threading.Event | None,
        log: structlog.stdlib.BoundLogger,
    ) -> FetchResult:
        """Drive the state machine through one fetch."""
        try:
            machine.transition_to(FetchState.VALIDATING)
            host = self._guard.validate(request.url)

            machine.transition_to(FetchState.RATE_CHECK)
            self._rate_limiter.check_and_record(host)

            machine.transition_to(FetchState.CLIENT_ACQUIRE)
            pooled = self._pool.get_client(request.client_key)
        except SafeFetchError as e:
            machine.fail()
            return FetchResult.failure(e.to_fetch_error())

        machine.transition_to(FetchState.REQUESTING)
        headers = build_request_headers(request)
        log.debug("request_built", headers=redact_headers(headers))

        machine.transition_to(FetchState.ATTEMPTING)
        outcome, attempts = self._execute_with_retry(
            client=pooled.client,
            request=request,
            headers=headers,
            cancel_event=cancel_event,
            log=log,
        )
        if isinstance(outcome, FetchError):
            machine.fail()
            return FetchResult.failure(outcome, attempts=attempts)

        machine.transition_to(FetchState.DECODING)
        try:
            payload = self._decode(outcome, request)
        except DecodeError as e:
            machine.fail()
            log.warning("decode_failed", error=e.message)
            return FetchResult.failure(e.to_fetch_error(), attempts=attempts)

        machine.transition_to(FetchState.SUCCEEDED)
        return FetchResult(
            success=True,
            body_bytes=outcome.body,
            encoding=outcome.encoding,
            status_code=outcome.status_code,
            final_url=redact_url_credentials(outcome.final_url),
            attempts=attempts,
            payload=payload,
        )

    def _execute_with_retry(
        self,
        client: httpx.Client,
        request: FetchRequest,
        headers: dict[str, str],
        cancel_event: threading.Event | None,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[_Response | FetchError, int]:
        """Execute the request with retry logic.

        Args:
            client: Pooled httpx client.
            request: The fetch request.
            headers: Request headers.
            cancel_event: Interrupts a pending backoff when set.
            log: Bound logger.

        Returns:
            Tuple of (response or terminal error, attempts made).
        """
        secret = request.auth_token.get_secret_value() if request.auth_token else None
        last_cause = "Unknown error"
        attempts = 0

        for attempt in range(self._policy.max_attempts):
            attempts = attempt + 1
            self._metrics.record_attempt()
            try:
                outcome = self._execute_single(client, request.url, headers)
            except SafeFetchError as e:
                # Blocked redirect or oversize body: not transient
                return e.to_fetch_error(), attempts
            except httpx.InvalidURL as e:
                message = redact_secret(redact_url_credentials(str(e)), secret)
                return (
                    FetchError(
                        error_class=FetchErrorClass.INVALID_URL,
                        message=f"Invalid URL format: {message}",
                    ),
                    attempts,
                )
            except httpx.TransportError as e:
                last_cause = self._describe(e, secret)
                if not self._policy.has_attempts_left(attempt):
                    log.error(
                        "retries_exhausted",
                        attempts=attempts,
                        error=last_cause,
                    )
                    break

                delay_ms = self._policy.get_delay_ms(attempt)
                self._metrics.record_retry()
                log.warning(
                    "retry_scheduled",
                    attempt=attempts,
                    delay_ms=delay_ms,
                    max_attempts=self._policy.max_attempts,
                    error=last_cause,
                )
                try:
                    self._backoff(delay_ms, cancel_event)
                except FetchInterruptedError as interrupted:
                    return interrupted.to_fetch_error(), attempts
                continue
            except Exception as e:  # noqa: BLE001
                # Redirect loops, content decoding and anything else not
                # caused by the network fail on the first attempt
                last_cause = self._describe(e, secret)
                log.error("request_failed", attempts=attempts, error=last_cause)
                break

            return outcome, attempts

        return (
            FetchError(
                error_class=FetchErrorClass.EXHAUSTED,
                message=(
                    f"Failed to fetch feed after {attempts} attempts: {last_cause}"
                ),
                last_cause=last_cause,
            ),
            attempts,
        )

    @staticmethod
    def _describe(error: Exception, secret: str | None) -> str:
        """Render an exception for messages with credentials scrubbed."""
        return redact_secret(
            redact_url_credentials(f"{type(error).__name__}: {error}"), secret
        )

    def _execute_single(
        self,
        client: httpx.Client,
        url: str,
        headers: dict[str, str],
    ) -> _Response | FetchError:
        """Execute a single HTTP attempt.

        Args:
            client: Pooled httpx client.
            url: URL to fetch.
            headers: Request headers.

        Returns:
            The in-memory response, or a terminal FetchError.

        Raises:
            ResponseSizeExceededError: If the body is too large.
            UrlSecurityError: If a redirect targets a blocked URL.
            httpx.TransportError: On transport failures.
            httpx.InvalidURL: If httpx cannot build the request URL.
        """
        with client.stream("GET", url, headers=headers) as response:
            status_code = response.status_code
            if not HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
                self._metrics.record_response(status_code, 0)
                reason = response.reason_phrase or "Unknown"
                return FetchError(
                    error_class=FetchErrorClass.HTTP_STATUS,
                    message=(
                        f"HTTP request failed with status {status_code}: {reason}"
                    ),
                    status_code=status_code,
                )

            max_size = self._max_size()
            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit():
                size = int(content_length)
                if size > max_size:
                    msg = f"Response size {size} exceeds limit {max_size}"
                    raise ResponseSizeExceededError(msg, status_code=status_code)

            body = self._read_body_with_limit(response, max_size)
            self._metrics.record_response(status_code, len(body))

            if not body:
                return FetchError(
                    error_class=FetchErrorClass.EMPTY_BODY,
                    message=f"Response body is empty (status {status_code})",
                    status_code=status_code,
                )

            return _Response(
                status_code=status_code,
                body=body,
                encoding=response.charset_encoding,
                final_url=str(response.url),
            )

    def _max_size(self) -> int:
        """Resolve the body size limit for this attempt."""
        if self._max_response_size_bytes is not None:
            return self._max_response_size_bytes
        return get_settings().max_response_size_bytes

    def _read_body_with_limit(self, response: httpx.Response, max_size: int) -> bytes:
        """Read response body with size limit.

        Args:
            response: Streaming HTTP response.
            max_size: Maximum body size in bytes.

        Returns:
            Response body bytes.

        Raises:
            ResponseSizeExceededError: If size limit exceeded.
        """
        buffer = BytesIO()
        total_read = 0

        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise ResponseSizeExceededError(msg, status_code=response.status_code)
            buffer.write(chunk)

        return buffer.getvalue()

    def _backoff(self, delay_ms: int, cancel_event: threading.Event | None) -> None:
        """Sleep before the next attempt.

        Args:
            delay_ms: Delay in milliseconds.
            cancel_event: Interrupts the wait when set.

        Raises:
            FetchInterruptedError: If the wait was interrupted.
        """
        seconds = delay_ms / 1000.0
        if self._sleep is not None:
            self._sleep(seconds)
            interrupted = cancel_event is not None and cancel_event.is_set()
        elif cancel_event is not None:
            interrupted = cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
            interrupted = False

        if interrupted:
            msg = "Fetch interrupted during retry backoff"
            raise FetchInterruptedError(msg)

    def _decode(self, response: _Response, request: FetchRequest) -> BaseModel | None:
        """Hand the body to the decoder.

        Raises:
            DecodeError: If the decoder rejects the body.
        """
        if self._decoder is None:
            return None
        try:
            return self._decoder.decode(response.body, response.encoding, request)
        except DecodeError:
            raise
        except Exception as e:  # noqa: BLE001
            msg = f"Failed to parse feed: {e}"
            raise DecodeError(msg) from e
