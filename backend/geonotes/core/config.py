"""Application configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with defaults matching the production deployment.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class CacheTunables:
    """TTLs, capacities and quotas consumed by the cache, limiter and presence services."""

    viewport_ttl: int = 600
    emoji_viewport_ttl: int = 180
    top_n_ttl: int = 300
    popular_ttl: int = 600
    session_ttl: int = 86400
    message_log_ttl: int = 86400
    message_log_capacity: int = 100
    message_max_length: int = 200
    private_room_ttl: int = 3600
    daily_quota: int = 10
    minute_quota: int = 5
    hour_quota: int = 30
    cooldown_seconds: int = 10
    duplicate_window_seconds: int = 600
    duplicate_threshold: int = 3
    fallback_default_ttl: int = 300
    scan_batch_size: int = 500
    backend_timeout: float = 5.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Cache backends (Upstash Redis) ==========
    upstash_redis_rest_urls: str = Field(
        default="",
        description="Comma-separated Upstash Redis REST URLs, one per redundant backend",
    )
    upstash_redis_rest_tokens: str = Field(
        default="",
        description="Comma-separated REST tokens, paired with the URLs by position",
    )

    # ========== Cache TTLs (seconds) ==========
    viewport_ttl: int = Field(default=600, ge=1)
    emoji_viewport_ttl: int = Field(default=180, ge=1)
    top_n_ttl: int = Field(default=300, ge=1)
    popular_ttl: int = Field(default=600, ge=1)
    fallback_default_ttl: int = Field(default=300, ge=1)

    # ========== Presence ==========
    session_ttl: int = Field(default=86400, ge=1)
    message_log_ttl: int = Field(default=86400, ge=1)
    message_log_capacity: int = Field(default=100, ge=1)
    message_max_length: int = Field(default=200, ge=1)
    private_room_ttl: int = Field(default=3600, ge=1)

    # ========== Rate Limiting ==========
    daily_quota: int = Field(default=10, ge=1)
    minute_quota: int = Field(default=5, ge=1)
    hour_quota: int = Field(default=30, ge=1)
    cooldown_seconds: int = Field(default=10, ge=1)
    duplicate_window_seconds: int = Field(default=600, ge=1)
    duplicate_threshold: int = Field(default=3, ge=1)

    # ========== Backend I/O ==========
    scan_batch_size: int = Field(default=500, ge=1, le=10000)
    backend_timeout: float = Field(default=5.0, gt=0, le=60)

    # ========== CORS ==========
    cors_origins_str: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated CORS origins",
    )

    # ========== Application ==========
    app_name: str = "GeoNotes"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # ========== Computed Properties ==========
    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def cache_backends(self) -> list[tuple[str, str]]:
        """Pair each configured REST URL with its token.

        A single token is reused for every URL. URLs without a token are skipped.
        """
        urls = [u for u in re.split(r"[\s,]+", self.upstash_redis_rest_urls) if u]
        tokens = [t for t in re.split(r"[\s,]+", self.upstash_redis_rest_tokens) if t]
        if not urls or not tokens:
            return []
        if len(tokens) == 1:
            tokens = tokens * len(urls)
        return list(zip(urls, tokens))

    @computed_field
    @property
    def redis_available(self) -> bool:
        """Check if at least one Redis backend is configured."""
        return bool(self.cache_backends)

    def tunables(self) -> CacheTunables:
        """Snapshot the service tunables as a plain dataclass."""
        return CacheTunables(
            viewport_ttl=self.viewport_ttl,
            emoji_viewport_ttl=self.emoji_viewport_ttl,
            top_n_ttl=self.top_n_ttl,
            popular_ttl=self.popular_ttl,
            session_ttl=self.session_ttl,
            message_log_ttl=self.message_log_ttl,
            message_log_capacity=self.message_log_capacity,
            message_max_length=self.message_max_length,
            private_room_ttl=self.private_room_ttl,
            daily_quota=self.daily_quota,
            minute_quota=self.minute_quota,
            hour_quota=self.hour_quota,
            cooldown_seconds=self.cooldown_seconds,
            duplicate_window_seconds=self.duplicate_window_seconds,
            duplicate_threshold=self.duplicate_threshold,
            fallback_default_ttl=self.fallback_default_ttl,
            scan_batch_size=self.scan_batch_size,
            backend_timeout=self.backend_timeout,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
