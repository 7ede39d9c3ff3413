"""Classification of target hosts as internal or externally routable."""

import ipaddress
import socket
from collections.abc import Callable
from typing import Any

import structlog


logger = structlog.get_logger()

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
Resolver = Callable[..., list[tuple[Any, ...]]]

# Networks that are never fetched from
BLOCKED_NETWORKS: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...] = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
)

LOCALHOST_NAMES = frozenset({"localhost", "localhost.localdomain"})


def normalize_host(host: str) -> str:
    """Lower-case a host and strip IPv6 brackets and a trailing dot."""
    host = host.strip().lower()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host.rstrip(".")


def parse_ip_literal(host: str) -> IPAddress | None:
    """Parse a host as an IP literal.

    Args:
        host: Normalized host.

    Returns:
        The address, or None if the host is a name.
    """
    # Zone ids (fe80::1%eth0) are not part of the address
    candidate = host.split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def is_blocked_address(address: IPAddress) -> bool:
    """Check whether an address is not safely externally routable.

    Args:
        address: IPv4 or IPv6 address.

    Returns:
        True for loopback, private, link-local, unique-local,
        unspecified and multicast addresses.
    """
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped

    if (
        address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_multicast
    ):
        return True
    return any(address in network for network in BLOCKED_NETWORKS)


class AddressClassifier:
    """Decides whether a host points at an internal network.

    Literal addresses and localhost names are classified without DNS.
    Names are resolved once; a failed resolution is treated as not
    blocked, since unresolvable hosts fail later at connect time.
    """

    def __init__(self, resolver: Resolver | None = None) -> None:
        """Initialize the classifier.

        Args:
            resolver: getaddrinfo-compatible callable (injectable for tests).
        """
        self._resolver = resolver

    def is_blocked_host(self, host: str) -> bool:
        """Check whether a host is internal.

        Args:
            host: Hostname or IP literal, optionally bracketed.

        Returns:
            True if the host must not be fetched from.
        """
        normalized = normalize_host(host)
        if not normalized:
            return False

        if normalized in LOCALHOST_NAMES or normalized.endswith(".localhost"):
            return True

        literal = parse_ip_literal(normalized)
        if literal is not None:
            return is_blocked_address(literal)

        addresses = self._resolve(normalized)
        return any(is_blocked_address(address) for address in addresses)

    def _resolve(self, host: str) -> list[IPAddress]:
        """Resolve a hostname to its addresses.

        Args:
            host: Normalized hostname.

        Returns:
            Resolved addresses, empty if resolution failed.
        """
        try:
            resolver = self._resolver or socket.getaddrinfo
            infos = resolver(host, None)
        except (OSError, UnicodeError) as e:
            logger.debug(
                "dns_resolution_failed",
                component="address",
                host=host,
                error=str(e),
            )
            return []

        addresses: list[IPAddress] = []
        for info in infos:
            address = parse_ip_literal(str(info[4][0]))
            if address is not None:
                addresses.append(address)
        return addresses


_default_classifier = AddressClassifier()


def is_blocked_host(host: str) -> bool:
    """Check a host with the default DNS-backed classifier."""
    return _default_classifier.is_blocked_host(host)
