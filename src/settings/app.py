"""Application settings powered by Pydantic BaseSettings."""

from typing import Annotated

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Deployment environment values that veto TLS bypass
PRODUCTION_ENVIRONMENTS = frozenset({"production", "prod"})


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rate_limit_per_minute: Annotated[int, Field(ge=1)] = Field(
        default=60,
        validation_alias="FEED_RATE_LIMIT_PER_MINUTE",
    )
    rate_limit_per_hour: Annotated[int, Field(ge=1)] = Field(
        default=1000,
        validation_alias="FEED_RATE_LIMIT_PER_HOUR",
    )
    environment: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_ENVIRONMENT", "ENVIRONMENT"),
    )
    client_pool_size: Annotated[int, Field(ge=1)] = Field(
        default=100,
        validation_alias="FEED_CLIENT_POOL_SIZE",
    )
    max_response_size_bytes: Annotated[int, Field(ge=1024)] = Field(
        default=10 * 1024 * 1024,
        validation_alias="FEED_MAX_RESPONSE_BYTES",
    )

    @property
    def is_production(self) -> bool:
        """Check whether the deployment marker names production."""
        if not self.environment:
            return False
        return self.environment.strip().lower() in PRODUCTION_ENVIRONMENTS


def get_settings() -> AppSettings:
    """Get a settings instance.

    Not cached: each call re-reads the environment.
    """
    return AppSettings()
