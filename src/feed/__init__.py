"""Feed decoding: syndication documents to structured items."""

from src.feed.decoder import FeedDecoder
from src.feed.filters import FeedFilters, parse_timestamp
from src.feed.models import FeedDocument, FeedEnclosure, FeedItem


__all__ = [
    "FeedDecoder",
    "FeedDocument",
    "FeedEnclosure",
    "FeedFilters",
    "FeedItem",
    "parse_timestamp",
]
