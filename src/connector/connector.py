"""Feed connector: validates the input envelope and runs a safe fetch."""

import threading
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from src.connector.models import ConnectorInputError, FeedConnectorInput, FeedOutput
from src.feed.decoder import FeedDecoder
from src.feed.models import FeedDocument
from src.fetch.executor import SafeFeedFetcher
from src.fetch.models import AuthType
from src.fetch.redact import redact_url_credentials


logger = structlog.get_logger()

ALLOWED_AUTH_TYPES = frozenset({AuthType.BASIC.value, AuthType.BEARER.value})


def parse_input(data: Mapping[str, Any]) -> FeedConnectorInput:
    """Bind raw connector variables to the input envelope.

    Args:
        data: Variables keyed by camelCase (or snake_case) names.

    Returns:
        Bound input envelope.

    Raises:
        ConnectorInputError: If a field has the wrong type or range.
    """
    try:
        return FeedConnectorInput.model_validate(dict(data))
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "input"
        msg = f"{field}: {first['msg']}"
        raise ConnectorInputError(msg) from e


def validate_input(connector_input: FeedConnectorInput) -> None:
    """Check the cross-field rules of the input envelope.

    Args:
        connector_input: Bound input envelope.

    Raises:
        ConnectorInputError: If a rule is violated.
    """
    if connector_input.feed_url is None or not connector_input.feed_url.strip():
        msg = "feedUrl is required"
        raise ConnectorInputError(msg)

    if connector_input.max_items is not None and connector_input.max_items < 0:
        msg = "maxItems must not be negative"
        raise ConnectorInputError(msg)

    auth_type = connector_input.auth_type
    if auth_type is not None and auth_type not in ALLOWED_AUTH_TYPES:
        msg = "authType must be 'basic' or 'bearer'"
        raise ConnectorInputError(msg)

    token = (
        connector_input.auth_token.get_secret_value()
        if connector_input.auth_token
        else ""
    )
    if auth_type is not None and not token.strip():
        msg = "authToken is required when authType is specified"
        raise ConnectorInputError(msg)


class FeedConnector:
    """Entry point that turns connector variables into a feed envelope.

    Fetch failures are reported in the envelope; only invalid input
    raises.
    """

    def __init__(self, fetcher: SafeFeedFetcher | None = None) -> None:
        """Initialize the connector.

        Args:
            fetcher: Safe fetcher to use. Defaults to one with the feed decoder.
        """
        self._fetcher = fetcher or SafeFeedFetcher(decoder=FeedDecoder())
        self._log = logger.bind(component="connector")

    def execute(
        self,
        connector_input: FeedConnectorInput | Mapping[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> FeedOutput:
        """Fetch and decode a feed.

        Args:
            connector_input: Input envelope or its raw variables.
            cancel_event: When set, interrupts a pending retry backoff.

        Returns:
            Output envelope.

        Raises:
            ConnectorInputError: If the input is invalid.
        """
        if not isinstance(connector_input, FeedConnectorInput):
            connector_input = parse_input(connector_input)
        validate_input(connector_input)

        request = connector_input.to_fetch_request()
        log = self._log.bind(url=redact_url_credentials(request.url))
        log.info("connector_started")

        result = self._fetcher.fetch(request, cancel_event=cancel_event)
        if not result.success:
            message = result.error.message if result.error else "Unknown error"
            log.warning("connector_failed", error=message)
            return FeedOutput.failure(message)

        if not isinstance(result.payload, FeedDocument):
            msg = "Fetcher returned no decoded feed"
            log.error("connector_failed", error=msg)
            return FeedOutput.failure(msg)

        output = FeedOutput.from_document(result.payload)
        log.info("connector_complete", items=output.total_items)
        return output
