"""Metrics collection for the safe fetch layer."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from src.fetch.models import FetchErrorClass


@dataclass
class FetchMetrics:
    """Metrics for fetch operations.

    Singleton class that tracks fetch-related metrics including
    attempts, retries, policy rejections and failures.
    """

    fetch_total: int = 0
    fetch_success_total: int = 0
    http_attempts_total: int = 0
    http_retry_total: int = 0
    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_bytes_total: int = 0
    fetch_duration_ms_total: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_attempt(self) -> None:
        """Record an HTTP attempt."""
        with self._lock:
            self.http_attempts_total += 1

    def record_retry(self) -> None:
        """Record a retry after a transport failure."""
        with self._lock:
            self.http_retry_total += 1

    def record_response(self, status_code: int, bytes_received: int) -> None:
        """Record a received HTTP response.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of body bytes received.
        """
        with self._lock:
            self.http_requests_total[status_code] = (
                self.http_requests_total.get(status_code, 0) + 1
            )
            self.http_bytes_total += bytes_received

    def record_outcome(
        self,
        error_class: FetchErrorClass | None,
        duration_ms: float,
    ) -> None:
        """Record the terminal outcome of a fetch.

        Args:
            error_class: Failure classification, or None on success.
            duration_ms: Duration of the whole fetch in milliseconds.
        """
        with self._lock:
            self.fetch_total += 1
            self.fetch_duration_ms_total += duration_ms
            if error_class is None:
                self.fetch_success_total += 1
                return
            key = error_class.value
            self.http_failures_total[key] = self.http_failures_total.get(key, 0) + 1

    def failures_for(self, error_class: FetchErrorClass) -> int:
        """Get the failure count for one error class."""
        with self._lock:
            return self.http_failures_total.get(error_class.value, 0)

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "fetch_total": self.fetch_total,
                "fetch_success_total": self.fetch_success_total,
                "http_attempts_total": self.http_attempts_total,
                "http_retry_total": self.http_retry_total,
                "http_requests_total": dict(self.http_requests_total),
                "http_failures_total": dict(self.http_failures_total),
                "http_bytes_total": self.http_bytes_total,
                "fetch_duration_ms_total": self.fetch_duration_ms_total,
            }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average fetch duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.fetch_total == 0:
            return 0.0
        return self.fetch_duration_ms_total / self.fetch_total
