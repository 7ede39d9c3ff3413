"""Pooled httpx clients keyed by transport configuration."""

import ssl
import threading
from collections import OrderedDict
from dataclasses import dataclass

import httpx
import structlog

from src.fetch.constants import DEFAULT_USER_AGENT
from src.fetch.errors import SecurityViolationError
from src.fetch.guard import UrlGuard
from src.fetch.models import ClientKey
from src.fetch.tls import ensure_tls_bypass_allowed, insecure_ssl_context
from src.settings import get_settings


logger = structlog.get_logger()


@dataclass(frozen=True)
class PooledClient:
    """An httpx client configured for one ClientKey.

    Shared by every fetch using the same key. Fetches must not mutate it.
    """

    key: ClientKey
    client: httpx.Client
    ssl_context: ssl.SSLContext | None = None

    @property
    def verifies_certificates(self) -> bool:
        """Check whether server certificates are validated."""
        return self.ssl_context is None


def build_client(
    timeout_seconds: int,
    tls_bypass: bool,
    user_agent: str | None = None,
    guard: UrlGuard | None = None,
    transport: httpx.BaseTransport | None = None,
) -> PooledClient:
    """Build a configured client.

    Args:
        timeout_seconds: Connect, read, write and pool timeout.
        tls_bypass: Accept any server certificate and skip hostname checks.
        user_agent: Default User-Agent header.
        guard: Guard re-validating every request, redirects included.
        transport: Custom transport (for tests).

    Returns:
        The pooled client.

    Raises:
        SecurityViolationError: If tls_bypass is requested in production.
    """
    user_agent = user_agent or DEFAULT_USER_AGENT
    key = ClientKey(timeout_seconds, tls_bypass, user_agent)
    ssl_context: ssl.SSLContext | None = None

    if tls_bypass:
        ensure_tls_bypass_allowed()
        ssl_context = insecure_ssl_context()
        logger.warning(
            "tls_verification_disabled",
            component="pool",
            timeout_seconds=timeout_seconds,
            user_agent=user_agent,
            hint="Only use certificate bypass in development environments",
        )

    event_hooks = {"request": [guard.check_redirect]} if guard else {}
    client = httpx.Client(
        timeout=httpx.Timeout(float(timeout_seconds)),
        verify=ssl_context if ssl_context is not None else True,
        headers={"User-Agent": user_agent},
        follow_redirects=True,
        event_hooks=event_hooks,
        transport=transport,
    )

    logger.debug(
        "client_created",
        component="pool",
        timeout_seconds=timeout_seconds,
        tls_bypass=tls_bypass,
        user_agent=user_agent,
    )
    return PooledClient(key=key, client=client, ssl_context=ssl_context)


class ClientPool:
    """LRU-bounded cache of pooled clients.

    A hit returns the same client instance to keep connection reuse.
    Evicted clients are not closed: fetches already holding them keep
    working and the client is reclaimed once unreferenced.

    Thread-safe: all map mutation happens under a single lock. No
    network I/O happens under the lock.
    """

    def __init__(
        self,
        max_size: int | None = None,
        guard: UrlGuard | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the pool.

        Args:
            max_size: Maximum distinct keys (settings default if None); 0
                disables reuse.
            guard: Guard installed on every built client.
            transport: Custom transport for built clients (for tests).
        """
        self._max_size = (
            max_size if max_size is not None else get_settings().client_pool_size
        )
        self._guard = guard
        self._transport = transport
        self._clients: OrderedDict[ClientKey, PooledClient] = OrderedDict()
        self._lock = threading.Lock()
        self._log = logger.bind(component="pool")

    @property
    def max_size(self) -> int:
        """Get the maximum number of pooled clients."""
        return self._max_size

    @property
    def size(self) -> int:
        """Get the number of pooled clients."""
        with self._lock:
            return len(self._clients)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._clients

    def get_client(self, key: ClientKey) -> PooledClient:
        """Get or build the client for a key.

        A hit refreshes the key's recency. A hit for a TLS-bypass key
        re-checks the production veto.

        Args:
            key: Transport configuration.

        Returns:
            The pooled client.

        Raises:
            SecurityViolationError: If TLS bypass is vetoed.
        """
        with self._lock:
            pooled = self._clients.get(key)
            if pooled is not None:
                if key.tls_bypass:
                    try:
                        ensure_tls_bypass_allowed()
                    except SecurityViolationError:
                        del self._clients[key]
                        raise
                self._clients.move_to_end(key)
                return pooled

            pooled = build_client(
                timeout_seconds=key.timeout_seconds,
                tls_bypass=key.tls_bypass,
                user_agent=key.user_agent,
                guard=self._guard,
                transport=self._transport,
            )
            self._clients[key] = pooled

            while len(self._clients) > self._max_size:
                evicted_key, _ = self._clients.popitem(last=False)
                self._log.debug(
                    "client_evicted",
                    timeout_seconds=evicted_key.timeout_seconds,
                    tls_bypass=evicted_key.tls_bypass,
                )
            return pooled

    def close(self) -> None:
        """Close and forget every pooled client (shutdown only)."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for pooled in clients:
            pooled.client.close()


# Shared pool across fetchers in this process (singleton pattern)
_shared_pool: ClientPool | None = None
_shared_lock = threading.Lock()


def get_shared_client_pool() -> ClientPool:
    """Get the process-wide client pool."""
    global _shared_pool  # noqa: PLW0603
    with _shared_lock:
        if _shared_pool is None:
            _shared_pool = ClientPool(guard=UrlGuard())
        return _shared_pool


def reset_shared_client_pool() -> None:
    """Close and drop the process-wide client pool (for testing)."""
    global _shared_pool  # noqa: PLW0603
    with _shared_lock:
        pool, _shared_pool = _shared_pool, None
    if pool is not None:
        pool.close()
