"""Feed connector: input/output envelopes around the safe fetch core."""

from src.connector.connector import FeedConnector, parse_input, validate_input
from src.connector.models import ConnectorInputError, FeedConnectorInput, FeedOutput


__all__ = [
    "ConnectorInputError",
    "FeedConnector",
    "FeedConnectorInput",
    "FeedOutput",
    "parse_input",
    "validate_input",
]
