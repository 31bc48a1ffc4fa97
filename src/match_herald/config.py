"""
Configuration management for Match Herald.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation. Settings are
read once at startup and are not hot-reloaded.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """Web server configuration settings."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


class OriginConfig(BaseModel):
    """Match data provider configuration settings."""

    api_url: str = Field(
        default="https://api.henrikdev.xyz", description="Provider base URL"
    )
    api_key: str = Field(default="", description="Provider API key")
    timeout_seconds: float = Field(default=15.0, description="Request timeout")


class PollingConfig(BaseModel):
    """Polling configuration settings."""

    enabled: bool = Field(default=True, description="Enable the match poller")
    interval_seconds: float = Field(
        default=300.0, description="Fixed polling interval in seconds (5 minutes)"
    )
    initial_delay_seconds: float = Field(
        default=15.0, description="Delay before the first cycle after startup"
    )
    concurrency: int = Field(
        default=3, ge=1, description="Concurrent subject lookups per group"
    )
    match_mode: str = Field(
        default="competitive", description="Match mode filter for the poller"
    )
    match_count: int = Field(
        default=3, ge=1, description="Matches requested per subject lookup"
    )
    match_posts_feature: str = Field(
        default="match_posts", description="Group feature flag that enables posts"
    )


class RateLimitConfig(BaseModel):
    """Rate limiting configuration settings."""

    user_limit: int = Field(default=5, ge=1, description="Commands per user window")
    guild_limit: int = Field(
        default=20, ge=1, description="Commands per guild window"
    )
    command_window_seconds: float = Field(
        default=60.0, description="Command window length in seconds"
    )
    destination_limit: int = Field(
        default=5, ge=1, description="Notifications per destination window"
    )
    destination_window_seconds: float = Field(
        default=60.0, description="Destination window length in seconds"
    )


class CacheConfig(BaseModel):
    """Origin response cache configuration settings."""

    account_ttl: int = Field(default=600, description="Account lookup TTL")
    standing_ttl: int = Field(default=600, description="Rank standing TTL")
    matches_ttl: int = Field(default=120, description="Match list TTL")
    match_ttl: int = Field(default=3600, description="Single match TTL")
    max_entries: int | None = Field(
        default=None, description="Optional capacity bound (None for unbounded)"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Match data provider
    henrik_api_key: str = Field(default="", description="HenrikDev API key")
    henrik_api_url: str = Field(
        default="https://api.henrikdev.xyz", description="HenrikDev API URL"
    )
    origin_timeout_seconds: float = Field(
        default=15.0, description="Provider request timeout in seconds"
    )

    # Chat platform
    discord_bot_token: str = Field(default="", description="Discord bot token")
    discord_api_url: str = Field(
        default="https://discord.com/api/v10", description="Discord REST API URL"
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    # Storage
    storage_backend: str = Field(default="memory", description="Store backend")

    # Polling Configuration
    enable_polling: bool = Field(default=True, description="Enable match poller")
    poll_interval_seconds: float = Field(
        default=300.0, description="Polling interval in seconds"
    )
    poll_initial_delay_seconds: float = Field(
        default=15.0, description="Delay before the first polling cycle"
    )
    poll_concurrency: int = Field(
        default=3, description="Concurrent subject lookups per group"
    )
    poll_match_mode: str = Field(
        default="competitive", description="Match mode the poller announces"
    )
    poll_match_count: int = Field(
        default=3, description="Matches requested per subject lookup"
    )

    # Rate limiting
    destination_post_limit: int = Field(
        default=5, description="Notifications per destination window"
    )
    destination_window_seconds: float = Field(
        default=60.0, description="Destination window in seconds"
    )
    command_user_limit: int = Field(default=5, description="Commands per user")
    command_guild_limit: int = Field(default=20, description="Commands per guild")
    command_window_seconds: float = Field(
        default=60.0, description="Command window in seconds"
    )

    # Cache TTLs (seconds)
    cache_account_ttl: int = Field(default=600, description="Account TTL")
    cache_standing_ttl: int = Field(default=600, description="Standing TTL")
    cache_matches_ttl: int = Field(default=120, description="Match list TTL")
    cache_match_ttl: int = Field(default=3600, description="Single match TTL")
    cache_max_entries: int = Field(
        default=0, description="Cache capacity bound (0 for unbounded)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend."""
        if v.lower() not in {"memory"}:
            raise ValueError(f"Unsupported storage backend: {v}")
        return v.lower()

    @field_validator(
        "poll_concurrency",
        "poll_match_count",
        "destination_post_limit",
        "command_user_limit",
        "command_guild_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate counters that must be at least one."""
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator(
        "poll_interval_seconds",
        "destination_window_seconds",
        "command_window_seconds",
    )
    @classmethod
    def validate_window(cls, v: float) -> float:
        """Validate interval and window lengths."""
        if v <= 0:
            raise ValueError(f"Interval must be positive, got {v}")
        return v

    @field_validator("cache_max_entries")
    @classmethod
    def validate_cache_max_entries(cls, v: int) -> int:
        """Validate the cache capacity bound (0 for unbounded)."""
        if v < 0:
            raise ValueError(f"Cache capacity must be 0 or more, got {v}")
        return v

    @property
    def server_config(self) -> ServerConfig:
        """Get server configuration."""
        return ServerConfig(host=self.host, port=self.port, debug=self.debug)

    @property
    def origin_config(self) -> OriginConfig:
        """Get match data provider configuration."""
        return OriginConfig(
            api_url=self.henrik_api_url,
            api_key=self.henrik_api_key,
            timeout_seconds=self.origin_timeout_seconds,
        )

    @property
    def polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        return PollingConfig(
            enabled=self.enable_polling,
            interval_seconds=self.poll_interval_seconds,
            initial_delay_seconds=self.poll_initial_delay_seconds,
            concurrency=self.poll_concurrency,
            match_mode=self.poll_match_mode,
            match_count=self.poll_match_count,
        )

    @property
    def rate_limit_config(self) -> RateLimitConfig:
        """Get rate limiting configuration."""
        return RateLimitConfig(
            user_limit=self.command_user_limit,
            guild_limit=self.command_guild_limit,
            command_window_seconds=self.command_window_seconds,
            destination_limit=self.destination_post_limit,
            destination_window_seconds=self.destination_window_seconds,
        )

    @property
    def cache_config(self) -> CacheConfig:
        """Get cache configuration."""
        return CacheConfig(
            account_ttl=self.cache_account_ttl,
            standing_ttl=self.cache_standing_ttl,
            matches_ttl=self.cache_matches_ttl,
            match_ttl=self.cache_match_ttl,
            max_entries=self.cache_max_entries or None,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def __getattr__(name: str) -> Any:
    """Allow module-level access to settings attributes."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
