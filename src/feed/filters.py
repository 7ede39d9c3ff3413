"""Entry filters applied while decoding a feed."""

from datetime import UTC, datetime
from typing import Annotated

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.fetch.models import FetchRequest


logger = structlog.get_logger()

NEWER_THAN_KEY = "newer_than"
GUID_BLACKLIST_KEY = "guid_blacklist"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp.

    Args:
        value: Timestamp string; naive values are taken as UTC.

    Returns:
        Aware datetime, or None if blank or unparseable.
    """
    if value is None or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class FeedFilters(BaseModel):
    """Filters for feed entries.

    - max_items: Stop once this many entries were kept
    - guid_blacklist: Drop entries whose guid is listed
    - newer_than: Drop entries published before this instant
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_items: Annotated[int, Field(ge=0)] | None = None
    newer_than: str | None = None
    guid_blacklist: frozenset[str] = Field(default_factory=frozenset)

    @classmethod
    def from_request(cls, request: FetchRequest) -> "FeedFilters":
        """Build filters from a fetch request's pass-through fields."""
        blacklist = request.filters.get(GUID_BLACKLIST_KEY) or ()
        return cls(
            max_items=request.max_items,
            newer_than=request.filters.get(NEWER_THAN_KEY),
            guid_blacklist=frozenset(str(guid) for guid in blacklist),
        )

    def newer_than_instant(self) -> datetime | None:
        """Get the newer-than cutoff, ignoring unparseable values."""
        cutoff = parse_timestamp(self.newer_than)
        if cutoff is None and self.newer_than and self.newer_than.strip():
            logger.warning(
                "newer_than_unparseable",
                component="feed",
                newer_than=self.newer_than,
            )
        return cutoff

    def is_full(self, kept: int) -> bool:
        """Check whether the max-items limit has been reached."""
        return self.max_items is not None and kept >= self.max_items

    def is_blacklisted(self, guid: str | None) -> bool:
        """Check whether an entry guid is blacklisted."""
        return guid is not None and guid in self.guid_blacklist

    def is_too_old(self, published: datetime | None, cutoff: datetime | None) -> bool:
        """Check whether an entry predates the cutoff.

        Entries without a publication time are kept.
        """
        if cutoff is None or published is None:
            return False
        return published < cutoff
