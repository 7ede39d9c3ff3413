"""Per-host request rate limiter with minute and hour windows."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from src.fetch.constants import HOUR_WINDOW_MS, MINUTE_WINDOW_MS
from src.fetch.errors import RateLimitExceededError
from src.fetch.models import RateWindowKind
from src.settings import get_settings


logger = structlog.get_logger()

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Get a monotonic timestamp in milliseconds."""
    return time.monotonic() * 1000


@dataclass
class RateWindow:
    """Request counters for one host.

    Each counter is reset when more than its window length has elapsed
    since its last reset. Updates are serialized by the window lock.
    A retired window has been pruned from the limiter and must not be
    updated.
    """

    minute_count: int = 0
    minute_reset_ms: float = 0.0
    hour_count: int = 0
    hour_reset_ms: float = 0.0
    retired: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def is_expired(self, now_ms: float) -> bool:
        """Check whether both counters would reset on the next request."""
        return now_ms - self.hour_reset_ms > HOUR_WINDOW_MS


class HostRateLimiter:
    """Rejects fetches that would exceed a per-host request ceiling.

    Called once per logical fetch, before the retry loop, so retries of
    one fetch share a single accounting event. Ceilings passed to the
    constructor are fixed; otherwise they are read from settings on
    every call.

    Thread-safe: each host has its own lock, so distinct hosts never
    contend.
    """

    def __init__(
        self,
        max_per_minute: int | None = None,
        max_per_hour: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            max_per_minute: Fixed per-minute ceiling.
            max_per_hour: Fixed per-hour ceiling.
            clock: Millisecond clock (injectable for tests).
        """
        self._max_per_minute = max_per_minute
        self._max_per_hour = max_per_hour
        self._clock = clock or monotonic_ms
        self._windows: dict[str, RateWindow] = {}
        self._registry_lock = threading.Lock()
        self._last_prune_ms: float | None = None
        self._log = logger.bind(component="rate_limiter")

    def _ceilings(self) -> tuple[int, int]:
        """Resolve the ceilings in effect for this call."""
        if self._max_per_minute is not None and self._max_per_hour is not None:
            return self._max_per_minute, self._max_per_hour
        settings = get_settings()
        per_minute = (
            self._max_per_minute
            if self._max_per_minute is not None
            else settings.rate_limit_per_minute
        )
        per_hour = (
            self._max_per_hour
            if self._max_per_hour is not None
            else settings.rate_limit_per_hour
        )
        return per_minute, per_hour

    def _window_for(self, host: str, now_ms: float) -> RateWindow:
        """Get or lazily create the window for a host."""
        with self._registry_lock:
            window = self._windows.get(host)
            if window is None:
                self._prune_expired(now_ms)
                window = RateWindow(minute_reset_ms=now_ms, hour_reset_ms=now_ms)
                self._windows[host] = window
            return window

    def _prune_expired(self, now_ms: float) -> None:
        """Drop hosts idle for more than an hour.

        Runs at most once a minute, with the registry lock held. Windows
        busy in another thread are skipped.
        """
        if (
            self._last_prune_ms is not None
            and now_ms - self._last_prune_ms <= MINUTE_WINDOW_MS
        ):
            return
        self._last_prune_ms = now_ms

        for host, window in list(self._windows.items()):
            if not window.lock.acquire(blocking=False):
                continue
            try:
                if window.is_expired(now_ms):
                    window.retired = True
                    del self._windows[host]
            finally:
                window.lock.release()

    @property
    def tracked_hosts(self) -> int:
        """Get the number of hosts with a live window."""
        with self._registry_lock:
            return len(self._windows)

    def check_and_record(self, host: str) -> None:
        """Count a fetch against a host and enforce the ceilings.

        A rejected request still counts as an attempt. The minute window
        is checked first; a minute violation leaves the hour window
        untouched.

        Args:
            host: Destination host.

        Raises:
            RateLimitExceededError: If either ceiling is exceeded.
        """
        per_minute, per_hour = self._ceilings()
        host = host.lower()
        while True:
            window = self._window_for(host, self._clock())
            with window.lock:
                if window.retired:
                    continue
                minute_count, hour_count = self._record(
                    window, host, per_minute, per_hour
                )
                break

        self._log.debug(
            "rate_limit_check_passed",
            host=host,
            minute_count=minute_count,
            hour_count=hour_count,
        )

    def _record(
        self,
        window: RateWindow,
        host: str,
        per_minute: int,
        per_hour: int,
    ) -> tuple[int, int]:
        """Update a host's counters; the window lock must be held."""
        now_ms = self._clock()

        if now_ms - window.minute_reset_ms > MINUTE_WINDOW_MS:
            window.minute_count = 0
            window.minute_reset_ms = now_ms
        window.minute_count += 1
        if window.minute_count > per_minute:
            self._reject(host, RateWindowKind.MINUTE, per_minute)

        if now_ms - window.hour_reset_ms > HOUR_WINDOW_MS:
            window.hour_count = 0
            window.hour_reset_ms = now_ms
        window.hour_count += 1
        if window.hour_count > per_hour:
            self._reject(host, RateWindowKind.HOUR, per_hour)

        return window.minute_count, window.hour_count

    def _reject(self, host: str, window: RateWindowKind, limit: int) -> None:
        """Log and raise a rate limit violation."""
        self._log.warning(
            "rate_limit_exceeded",
            host=host,
            window=window.value,
            limit=limit,
        )
        raise RateLimitExceededError(host=host, window=window, limit=limit)

    def snapshot(self, host: str) -> tuple[int, int]:
        """Get the current (minute, hour) counts for a host."""
        with self._registry_lock:
            window = self._windows.get(host.lower())
        if window is None:
            return 0, 0
        with window.lock:
            return window.minute_count, window.hour_count

    def reset(self) -> None:
        """Forget all hosts."""
        with self._registry_lock:
            self._windows = {}


# Shared limiter across fetchers in this process (singleton pattern)
_shared_limiter: HostRateLimiter | None = None
_shared_lock = threading.Lock()


def get_shared_rate_limiter() -> HostRateLimiter:
    """Get the process-wide rate limiter."""
    global _shared_limiter  # noqa: PLW0603
    with _shared_lock:
        if _shared_limiter is None:
            _shared_limiter = HostRateLimiter()
        return _shared_limiter


def reset_shared_rate_limiter() -> None:
    """Reset the process-wide rate limiter (for testing)."""
    global _shared_limiter  # noqa: PLW0603
    with _shared_lock:
        _shared_limiter = None
