"""URL validation against SSRF targets."""

from urllib.parse import urlparse

import httpx
import structlog

from src.fetch.address import AddressClassifier
from src.fetch.constants import ALLOWED_SCHEMES
from src.fetch.errors import (
    DisallowedSchemeError,
    InvalidUrlError,
    PrivateNetworkBlockedError,
)
from src.fetch.redact import redact_url_credentials


logger = structlog.get_logger()


class UrlGuard:
    """Rejects URLs whose target is not safely externally routable.

    Runs before any network I/O and before rate-limit accounting, so a
    blocked request never opens a socket or consumes budget.
    """

    def __init__(self, classifier: AddressClassifier | None = None) -> None:
        """Initialize the guard.

        Args:
            classifier: Address classifier (DNS-backed by default).
        """
        self._classifier = classifier or AddressClassifier()
        self._log = logger.bind(component="guard")

    def validate(self, url: str) -> str:
        """Validate a URL.

        Args:
            url: The URL to check.

        Returns:
            The lower-cased host of the URL.

        Raises:
            InvalidUrlError: If the URL cannot be parsed (by urllib or httpx)
                or lacks scheme/host.
            DisallowedSchemeError: If the scheme is not http or https.
            PrivateNetworkBlockedError: If the host is internal.
        """
        try:
            parsed = urlparse(url.strip())
            # Accessing port validates it
            _ = parsed.port
            host = parsed.hostname
        except ValueError as e:
            raise InvalidUrlError(f"Invalid URL format: {e}") from e

        scheme = parsed.scheme.lower()
        if not scheme:
            msg = "Invalid URL format: missing scheme"
            raise InvalidUrlError(msg)

        if scheme not in ALLOWED_SCHEMES:
            self._log.warning(
                "url_blocked",
                url=redact_url_credentials(url),
                reason="disallowed_scheme",
                scheme=scheme,
            )
            raise DisallowedSchemeError(scheme)

        if not host:
            msg = "Invalid URL format: missing host"
            raise InvalidUrlError(msg)

        # The client must be able to send what the guard accepts
        try:
            httpx.URL(url.strip())
        except httpx.InvalidURL as e:
            raise InvalidUrlError(f"Invalid URL format: {e}") from e

        host = host.lower()
        if self._classifier.is_blocked_host(host):
            self._log.warning(
                "url_blocked",
                url=redact_url_credentials(url),
                reason="private_network",
                host=host,
            )
            raise PrivateNetworkBlockedError(host)

        return host

    def check_redirect(self, request: httpx.Request) -> None:
        """Validate every outgoing request, including redirect hops.

        Installed as an httpx request event hook on pooled clients.

        Args:
            request: Outgoing httpx request.

        Raises:
            UrlSecurityError: If the hop targets a blocked URL.
        """
        self.validate(str(request.url))
