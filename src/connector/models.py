"""Request and response envelopes for the feed connector."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from src.feed.filters import GUID_BLACKLIST_KEY, NEWER_THAN_KEY
from src.feed.models import FeedDocument, FeedItem, utc_now_iso
from src.fetch.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from src.fetch.models import FetchRequest


DEFAULT_MAX_ITEMS = 10


class ConnectorInputError(ValueError):
    """Raised when the connector input envelope is invalid."""

    def __init__(self, message: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description of the invalid field.
        """
        self.message = message
        super().__init__(message)


class FeedConnectorInput(BaseModel):
    """Connector input envelope.

    Field aliases follow the camelCase JSON variables accepted by the
    connector (feedUrl, maxItems, authType, ...). Snake-case names are
    accepted as well.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    feed_url: str | None = Field(default=None, alias="feedUrl")
    max_items: int | None = Field(default=DEFAULT_MAX_ITEMS, alias="maxItems")
    auth_type: str | None = Field(default=None, alias="authType")
    auth_token: SecretStr | None = Field(default=None, alias="authToken")
    ignore_tls: bool = Field(default=False, alias="ignoreTls")
    newer_than: str | None = Field(default=None, alias="newerThan")
    guid_blacklist: list[str] = Field(default_factory=list, alias="guidBlacklist")
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = Field(
        default=DEFAULT_USER_AGENT, alias="userAgent"
    )
    timeout_seconds: Annotated[int, Field(ge=1, le=300)] = Field(
        default=DEFAULT_TIMEOUT_SECONDS, alias="timeoutSeconds"
    )

    @field_validator("auth_type")
    @classmethod
    def normalize_auth_type(cls, v: str | None) -> str | None:
        """Lower-case the auth kind; blank means no auth."""
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @field_validator("guid_blacklist", mode="before")
    @classmethod
    def default_blacklist(cls, v: list[str] | None) -> list[str]:
        """Treat an explicit null blacklist as empty."""
        return v if v is not None else []

    def to_fetch_request(self) -> FetchRequest:
        """Build the core fetch request.

        Returns:
            FetchRequest carrying the decoder filters as pass-through data.
        """
        return FetchRequest(
            url=(self.feed_url or "").strip(),
            max_items=self.max_items,
            auth_type=self.auth_type,
            auth_token=self.auth_token,
            tls_bypass=self.ignore_tls,
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds,
            filters={
                NEWER_THAN_KEY: self.newer_than,
                GUID_BLACKLIST_KEY: list(self.guid_blacklist),
            },
        )


class FeedOutput(BaseModel):
    """Connector output envelope.

    Serialize with `to_json_dict()` to get the camelCase field names.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    success: bool
    feed_title: str | None = Field(default=None, alias="feedTitle")
    feed_description: str | None = Field(default=None, alias="feedDescription")
    feed_link: str | None = Field(default=None, alias="feedLink")
    feed_language: str | None = Field(default=None, alias="feedLanguage")
    items: list[FeedItem] = Field(default_factory=list)
    total_items: int = Field(default=0, alias="totalItems")
    fetched_at: str = Field(default_factory=utc_now_iso, alias="fetchedAt")
    error: str | None = None

    @classmethod
    def from_document(cls, document: FeedDocument) -> "FeedOutput":
        """Build a successful envelope from a decoded feed."""
        return cls(
            success=True,
            feed_title=document.title,
            feed_description=document.description,
            feed_link=document.link,
            feed_language=document.language,
            items=document.items,
            total_items=document.total_items,
        )

    @classmethod
    def failure(cls, message: str) -> "FeedOutput":
        """Build a failed envelope."""
        return cls(success=False, error=message)

    def to_json_dict(self) -> dict[str, object]:
        """Dump the envelope with camelCase keys and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)
