"""TLS policy: when certificate validation may be bypassed."""

import ssl

import structlog

from src.fetch.errors import SecurityViolationError
from src.settings import get_settings


logger = structlog.get_logger()


def is_production_environment() -> bool:
    """Check the deployment marker.

    Read from the environment on every call so policy changes apply
    to the next client build.
    """
    return get_settings().is_production


def ensure_tls_bypass_allowed() -> None:
    """Veto TLS bypass in production.

    Raises:
        SecurityViolationError: If running in a production deployment.
    """
    if is_production_environment():
        logger.error(
            "tls_bypass_rejected",
            component="tls",
            reason="production_environment",
        )
        msg = (
            "SSL certificate validation cannot be disabled in production "
            "environments"
        )
        raise SecurityViolationError(msg)


def insecure_ssl_context() -> ssl.SSLContext:
    """Build an SSL context that accepts any server certificate.

    Hostname verification is skipped as well.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
