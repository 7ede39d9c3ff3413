"""RSS/Atom feed decoder."""

from datetime import UTC, datetime
from io import BytesIO
from time import struct_time

import feedparser  # type: ignore[import-untyped]
import structlog

from src.feed.filters import FeedFilters
from src.feed.models import FeedDocument, FeedEnclosure, FeedItem, format_instant
from src.fetch.errors import DecodeError
from src.fetch.models import FetchRequest


logger = structlog.get_logger()


def struct_to_datetime(value: struct_time | None) -> datetime | None:
    """Convert a feedparser UTC struct_time to an aware datetime."""
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=UTC)
    except (TypeError, ValueError):
        return None


class FeedDecoder:
    """Decodes RSS 0.9x/2.0, RDF and Atom documents using feedparser.

    Applies the request's max-items, guid blacklist and newer-than
    filters while converting entries.
    """

    def decode(
        self,
        body: bytes,
        encoding: str | None,
        request: FetchRequest,
    ) -> FeedDocument:
        """Decode a feed body.

        Args:
            body: Raw response bytes.
            encoding: Declared character encoding, if any.
            request: Originating request carrying the filters.

        Returns:
            Decoded feed.

        Raises:
            DecodeError: If the body is not a usable feed.
        """
        log = logger.bind(component="feed", host=request.host)
        response_headers = (
            {"content-type": f"application/xml; charset={encoding}"}
            if encoding
            else None
        )

        # A stream keeps feedparser from treating the body as a path or URL
        parsed = feedparser.parse(BytesIO(body), response_headers=response_headers)

        parse_warnings: list[str] = []
        if parsed.bozo and parsed.get("bozo_exception") is not None:
            parse_warnings.append(f"Feed parsing warning: {parsed.bozo_exception}")
            log.warning(
                "feed_parse_warning",
                bozo_exception=str(parsed.bozo_exception),
            )

        if not parsed.get("version") and not parsed.entries:
            reason = (
                str(parsed.bozo_exception)
                if parsed.get("bozo_exception") is not None
                else "document is not a recognized feed"
            )
            msg = f"Failed to parse feed: {reason}"
            raise DecodeError(msg)

        filters = FeedFilters.from_request(request)
        items = self._parse_entries(parsed.entries, filters)

        feed = parsed.feed
        document = FeedDocument(
            title=feed.get("title"),
            description=feed.get("subtitle") or feed.get("description"),
            link=feed.get("link"),
            language=feed.get("language"),
            items=items,
            parse_warnings=parse_warnings,
        )

        log.info(
            "feed_decoded",
            version=parsed.get("version") or "unknown",
            entries_total=len(parsed.entries),
            items_emitted=len(items),
        )
        return document

    def _parse_entries(
        self,
        entries: list[feedparser.FeedParserDict],
        filters: FeedFilters,
    ) -> list[FeedItem]:
        """Convert and filter feed entries.

        Args:
            entries: Feedparser entries in document order.
            filters: Filters to apply.

        Returns:
            Kept items.
        """
        cutoff = filters.newer_than_instant()
        items: list[FeedItem] = []

        for entry in entries:
            if filters.is_full(len(items)):
                break

            published = self._entry_datetime(entry)
            item = self._convert_entry(entry, published)

            if filters.is_blacklisted(item.guid):
                continue
            if filters.is_too_old(published, cutoff):
                continue

            items.append(item)

        return items

    def _entry_datetime(self, entry: feedparser.FeedParserDict) -> datetime | None:
        """Get the publication time, falling back to the update time."""
        return struct_to_datetime(entry.get("published_parsed")) or struct_to_datetime(
            entry.get("updated_parsed")
        )

    def _convert_entry(
        self,
        entry: feedparser.FeedParserDict,
        published: datetime | None,
    ) -> FeedItem:
        """Convert a single feedparser entry.

        Args:
            entry: Feedparser entry dict.
            published: Publication time, if known.

        Returns:
            The feed item.
        """
        categories = [
            tag.get("term") for tag in entry.get("tags", []) if tag.get("term")
        ]

        enclosures = [
            FeedEnclosure(
                url=enclosure.get("href") or enclosure.get("url"),
                type=enclosure.get("type"),
                length=self._parse_length(enclosure.get("length")),
            )
            for enclosure in entry.get("enclosures", [])
        ]

        contents = entry.get("content", [])
        content = "".join(part.get("value", "") for part in contents) or None

        return FeedItem(
            title=entry.get("title"),
            description=entry.get("summary") or entry.get("description"),
            link=entry.get("link"),
            guid=entry.get("id") or entry.get("link"),
            author=entry.get("author"),
            comments=entry.get("comments"),
            pub_date=format_instant(published) if published else None,
            categories=categories,
            enclosures=enclosures,
            content=content,
        )

    @staticmethod
    def _parse_length(value: str | int | None) -> int | None:
        """Parse an enclosure length attribute."""
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
