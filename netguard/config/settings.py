"""
Settings Module for NetGuard Monitor

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.

The ``Settings`` instance is the shared configuration handle: it is passed
by reference to every component, so values written at runtime are seen by
all readers on their next access. Runtime writers, one per field:

- ``telegram.chat_id``  written by BotGateway (chat auto-detection)
- ``panel.use_relay``   written by PanelClient (relay fallback)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class PanelSettings(BaseSettingsConfig):
    """
    Panel API Configuration Settings

    Where the node roster and realtime bandwidth counters are read from,
    and how to reach them when the direct route is blocked.
    """

    model_config = SettingsConfigDict(
        env_prefix="PANEL_",
        env_file=".env"
    )

    api_url: str = Field(
        default="",
        description="Panel base URL (e.g. https://panel.example.com)"
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Admin API bearer token"
    )
    nodes_path: str = Field(
        default="/api/nodes",
        description="Path of the node roster endpoint"
    )
    stats_path: str = Field(
        default="/api/bandwidth-stats/nodes/realtime",
        description="Path of the realtime bandwidth endpoint"
    )

    # Relay fallback
    use_relay: bool = Field(
        default=False,
        description="Route panel requests through the relay URL"
    )
    relay_url: str = Field(
        default="https://corsproxy.io/?",
        description="Relay prefix; the target URL is appended URL-encoded"
    )

    request_timeout: float = Field(
        default=15.0,
        ge=1.0,
        le=120.0,
        description="HTTP request timeout in seconds"
    )

    @field_validator("api_url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        """Trim whitespace around the panel URL."""
        return v.strip()

    @property
    def is_configured(self) -> bool:
        """Both the endpoint and the credential are present."""
        return bool(self.api_url) and bool(self.api_token.get_secret_value().strip())


class TelegramSettings(BaseSettingsConfig):
    """
    Telegram Bot Configuration Settings

    Token, default alert chat and polling cadence.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env"
    )

    bot_token: SecretStr = Field(
        default=SecretStr(""),
        description="Telegram Bot API token from @BotFather"
    )
    chat_id: Optional[str] = Field(
        default=None,
        description="Default chat for alerts (auto-detectable)"
    )
    parse_mode: str = Field(
        default="Markdown",
        description="Rich formatting mode for outgoing messages"
    )

    # Polling settings
    poll_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum updates fetched per poll"
    )
    poll_interval_connected: float = Field(
        default=2.0,
        gt=0,
        description="Delay between polls while connected (seconds)"
    )
    poll_interval_failed: float = Field(
        default=10.0,
        gt=0,
        description="Delay between polls while not connected (seconds)"
    )

    @field_validator("chat_id", mode="before")
    @classmethod
    def normalize_chat_id(cls, v: Any) -> Optional[str]:
        """Accept numeric chat ids and blank strings."""
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def token(self) -> str:
        return self.bot_token.get_secret_value().strip()


class ScanSettings(BaseSettingsConfig):
    """
    Scan Scheduler Configuration Settings

    Cadence, alert cooldown and report truncation limits.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCAN_",
        env_file=".env"
    )

    interval: float = Field(
        default=0,
        ge=0,
        description="Scan cadence in seconds (0 = manual only)"
    )
    live_interval: float = Field(
        default=1.0,
        gt=0,
        description="Fastest cadence"
    )
    eco_interval: float = Field(
        default=5.0,
        gt=0,
        description="Cadence used after network failures at the fastest one"
    )

    alert_cooldown: int = Field(
        default=300,  # 5 minutes
        ge=0,
        description="Minimum time between non-forced alerts (seconds)"
    )
    high_load_users: int = Field(
        default=50,
        ge=1,
        description="Online users above which a node counts as high load"
    )
    alert_node_limit: int = Field(
        default=5,
        ge=1,
        description="Nodes listed per alert before '...and N more'"
    )
    nodes_reply_limit: int = Field(
        default=15,
        ge=1,
        description="Nodes listed in a /nodes reply"
    )
    history_window: int = Field(
        default=3600,  # 1 hour
        ge=60,
        description="Rolling average window (seconds)"
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> "ScanSettings":
        """Validate interval relationships."""
        if self.live_interval > self.eco_interval:
            raise ValueError("live_interval cannot be greater than eco_interval")
        return self


class ProbeSettings(BaseSettingsConfig):
    """
    Probe Configuration Settings

    Reference resource and strategy parameters for bandwidth probes.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROBE_",
        env_file=".env"
    )

    test_url: str = Field(
        default="https://cdnjs.cloudflare.com/ajax/libs/react/18.2.0/umd/react.production.min.js",
        description="Fixed-size reference resource"
    )
    stress_concurrency: int = Field(
        default=4,
        ge=2,
        le=16,
        description="Parallel requests for the turbo strategy"
    )
    stability_iterations: int = Field(
        default=5,
        ge=2,
        le=50,
        description="Sequential requests for the stability strategy"
    )
    interval: float = Field(
        default=1.0,
        gt=0,
        description="Delay between probe cycles in watch mode (seconds)"
    )
    history_size: int = Field(
        default=30,
        ge=1,
        description="Samples kept by the probe monitor"
    )
    throttle_threshold_kbps: int = Field(
        default=100,
        ge=1,
        description="Speed below which a probe is considered throttled"
    )
    unstable_jitter_ms: int = Field(
        default=200,
        ge=1,
        description="Jitter above which a probe is considered unstable"
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1.0,
        description="HTTP request timeout in seconds"
    )


class EnrichmentSettings(BaseSettingsConfig):
    """
    Generative Analysis Configuration Settings

    The enrichment step is skipped entirely when no API key is set.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env"
    )

    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Gemini API key (optional)"
    )
    model: str = Field(
        default="gemini-2.0-flash",
        description="Model used for analysis"
    )
    endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language API base URL"
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1.0,
        description="HTTP request timeout in seconds"
    )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key.get_secret_value().strip())


class StorageSettings(BaseSettingsConfig):
    """
    Runtime State Storage Settings

    Holds the values that must survive a restart (message offset,
    alert rate-limiter timestamp, detected chat id).
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///data/netguard.db",
        description="SQLAlchemy async database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/netguard.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )

    # Error logging (separate file for errors)
    error_file_enabled: bool = Field(
        default=False,
        description="Enable separate error log file"
    )
    error_file_path: Path = Field(
        default=Path("logs/errors.log"),
        description="Error log file path"
    )

    json_enabled: bool = Field(
        default=False,
        description="Serialize file records as JSON"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    app_name: str = Field(
        default="NetGuard Monitor",
        description="Application name"
    )
    app_version: str = Field(
        default="1.2.0",
        description="Application version"
    )

    # Nested settings
    panel: PanelSettings = Field(default_factory=PanelSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.storage.echo = False
        elif self.environment == Environment.DEVELOPMENT:
            if self.logging.level == LogLevel.INFO:
                self.logging.level = LogLevel.DEBUG
        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump()

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "key" not in k.lower()
                        and "token" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
