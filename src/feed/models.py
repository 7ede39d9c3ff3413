"""Data models for decoded feeds."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


def format_instant(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Get the current time as ISO-8601 UTC."""
    return format_instant(datetime.now(UTC))


class FeedEnclosure(BaseModel):
    """A media attachment of a feed entry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str | None = None
    type: str | None = None
    length: int | None = None


class FeedItem(BaseModel):
    """A single feed entry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = None
    description: str | None = None
    link: str | None = None
    guid: str | None = None
    author: str | None = None
    comments: str | None = None
    pub_date: str | None = Field(
        default=None,
        serialization_alias="pubDate",
        description="Publication time, ISO-8601 UTC",
    )
    categories: list[str] = Field(default_factory=list)
    enclosures: list[FeedEnclosure] = Field(default_factory=list)
    content: str | None = None


class FeedDocument(BaseModel):
    """Decoded feed metadata and its filtered entries."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = None
    description: str | None = None
    link: str | None = None
    language: str | None = None
    items: list[FeedItem] = Field(default_factory=list)
    parse_warnings: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_items(self) -> int:
        """Number of entries kept after filtering."""
        return len(self.items)
