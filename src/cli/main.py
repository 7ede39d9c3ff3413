"""CLI commands for safe feed fetching."""

import json
import logging
import sys
import uuid

import click
import structlog

from src.connector import ConnectorInputError, FeedConnector
from src.connector.models import DEFAULT_MAX_ITEMS
from src.fetch.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from src.fetch.metrics import FetchMetrics
from src.fetch.pool import reset_shared_client_pool
from src.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
)


logger = structlog.get_logger()

EXIT_SUCCESS = 0
EXIT_FETCH_FAILED = 1
EXIT_INVALID_INPUT = 2


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """feedguard: fetch RSS/Atom feeds safely."""


@cli.command()
@click.argument("url")
@click.option(
    "--max-items",
    type=int,
    default=DEFAULT_MAX_ITEMS,
    show_default=True,
    help="Maximum number of items to return.",
)
@click.option(
    "--auth-type",
    default=None,
    help="Authentication scheme: basic or bearer.",
)
@click.option(
    "--auth-token",
    envvar="FEEDGUARD_AUTH_TOKEN",
    default=None,
    help="Credential for --auth-type ('user:password' for basic).",
)
@click.option(
    "--ignore-tls",
    is_flag=True,
    help="Skip TLS certificate validation (refused in production).",
)
@click.option(
    "--newer-than",
    default=None,
    help="Only return items published at or after this ISO-8601 time.",
)
@click.option(
    "--exclude-guid",
    "exclude_guids",
    multiple=True,
    help="Drop items with this guid (repeatable).",
)
@click.option(
    "--user-agent",
    default=DEFAULT_USER_AGENT,
    show_default=True,
    help="User-Agent header to send.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=int,
    default=DEFAULT_TIMEOUT_SECONDS,
    show_default=True,
    help="Per-attempt timeout in seconds.",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def fetch(  # noqa: PLR0913
    url: str,
    max_items: int,
    auth_type: str | None,
    auth_token: str | None,
    ignore_tls: bool,
    newer_than: str | None,
    exclude_guids: tuple[str, ...],
    user_agent: str,
    timeout_seconds: int,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Fetch a feed and print it as JSON.

    Exits 0 on success, 1 when the fetch fails and 2 on invalid input.
    """
    configure_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        json_format=json_logs,
    )
    request_id = uuid.uuid4().hex
    bind_request_context(request_id)
    log = logger.bind(component="cli", command="fetch")

    variables = {
        "feedUrl": url,
        "maxItems": max_items,
        "authType": auth_type,
        "authToken": auth_token,
        "ignoreTls": ignore_tls,
        "newerThan": newer_than,
        "guidBlacklist": list(exclude_guids),
        "userAgent": user_agent,
        "timeoutSeconds": timeout_seconds,
    }

    try:
        output = FeedConnector().execute(variables)
    except ConnectorInputError as e:
        log.warning("invalid_input", error=e.message)
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(EXIT_INVALID_INPUT)
    finally:
        reset_shared_client_pool()
        clear_request_context()

    log.debug("fetch_metrics", **FetchMetrics.get_instance().to_dict())
    click.echo(json.dumps(output.to_json_dict(), indent=2, ensure_ascii=False))
    sys.exit(EXIT_SUCCESS if output.success else EXIT_FETCH_FAILED)


if __name__ == "__main__":
    cli()
