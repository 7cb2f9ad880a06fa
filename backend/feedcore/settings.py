"""Settings for the feed-serving core with observability configuration."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("feedcore-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    cors_allow_origins: str = _env_field("", "CORS_ALLOW_ORIGINS")

    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")

    # Merge engine: each partition contributes at most max(page_size + 1, floor) items
    feed_fetch_floor: int = _env_field(25, "FEED_FETCH_FLOOR")
    feed_fetch_timeout_seconds: float = _env_field(5.0, "FEED_FETCH_TIMEOUT_SECONDS")
    feed_page_size_default: int = _env_field(20, "FEED_PAGE_SIZE_DEFAULT")
    feed_page_size_max: int = _env_field(100, "FEED_PAGE_SIZE_MAX")
    feed_top_24h_hours: int = _env_field(24, "FEED_TOP_24H_HOURS")
    feed_top_7d_hours: int = _env_field(24 * 7, "FEED_TOP_7D_HOURS")

    # Cache domains (seconds; <= 0 disables time expiry)
    feed_cache_ttl_seconds: float = _env_field(30.0, "FEED_CACHE_TTL_SECONDS")
    comments_cache_ttl_seconds: float = _env_field(30.0, "COMMENTS_CACHE_TTL_SECONDS")
    reviews_cache_ttl_seconds: float = _env_field(30.0, "REVIEWS_CACHE_TTL_SECONDS")
    cache_posts_max_entries: int = _env_field(1000, "CACHE_POSTS_MAX_ENTRIES")
    cache_comments_max_entries: int = _env_field(1000, "CACHE_COMMENTS_MAX_ENTRIES")
    cache_reviews_max_entries: int = _env_field(500, "CACHE_REVIEWS_MAX_ENTRIES")

    reviews_limit_default: int = _env_field(25, "REVIEWS_LIMIT_DEFAULT")
    reviews_comments_per_item: int = _env_field(5, "REVIEWS_COMMENTS_PER_ITEM")
    comments_max_depth: int = _env_field(8, "COMMENTS_MAX_DEPTH")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development", "test")

    def cors_origins(self) -> tuple[str, ...]:
        return tuple(part.strip() for part in self.cors_allow_origins.split(",") if part.strip())

    @field_validator("obs_log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value):
        return str(value or "INFO").upper()

    @field_validator("feed_fetch_floor", "feed_page_size_max", mode="after")
    @classmethod
    def _positive(cls, value: int) -> int:
        return max(1, int(value))


settings = Settings()
