"""
Configuration management for marketfeed.

Settings are read from ``MARKETFEED_*`` environment variables, an optional
``.env`` file, or a TOML file. Nested sections use ``__`` as the delimiter,
e.g. ``MARKETFEED_RETRY__MAX_ATTEMPTS=5``.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketfeed.core.exceptions import ConfigurationError


class PipelineConfig(BaseModel):
    """Worker pool sizing for the concurrent feed pipelines."""

    pool_size: int = Field(5, ge=1, description="Number of pipeline workers")
    queue_capacity: int = Field(10, ge=1, description="Bounded work queue capacity")
    shutdown_grace_seconds: float = Field(5.0, ge=0, description="Grace period before forced cancellation")


class RetryConfig(BaseModel):
    """Retry budget for upstream fetch calls."""

    max_attempts: int = Field(3, ge=1, description="Maximum fetch attempts")
    base_delay_ms: int = Field(1000, ge=0, description="Delay before the first retry")


class ValidationConfig(BaseModel):
    """Freshness rules for fetched snapshots."""

    max_data_age_minutes: int = Field(15, ge=0, description="Maximum accepted ETF data age")
    market_status_date_format: str = Field("%d-%b-%Y %H:%M", description="Trade date format")


class BatchConfig(BaseModel):
    """Equity price batch job settings."""

    batch_size: int = Field(50, ge=1, description="Identifiers per upstream call")
    identifier_prefix: str = Field("NSE_EQ|", description="Prefix applied to every identifier")
    max_attempts: int = Field(1, ge=1, description="Upstream attempts per batch")


class TopicConfig(BaseModel):
    """Broker topic names."""

    indices: str = "market-indices-update"
    etf: str = "etf-update"
    equity_prices: str = "equity-price-update"


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field("INFO", description="Log level")
    file_path: str | None = Field(None, description="Optional JSON log file")


class SchedulerConfig(BaseModel):
    """Intervals for the built-in periodic runner."""

    market_data_interval_seconds: float = Field(60.0, gt=0)
    equity_prices_interval_seconds: float = Field(300.0, gt=0)


class UpstreamConfig(BaseModel):
    """Upstream client wiring for the command line entry points."""

    client_factory: str | None = Field(None, description="'module:factory' returning a MarketDataClient")


class ApiConfig(BaseModel):
    """Read-only query surface settings."""

    default_index_key: str = "BROAD MARKET INDICES"


class MarketFeedConfig(BaseSettings):
    """Main marketfeed configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MARKETFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    topics: TopicConfig = Field(default_factory=TopicConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> MarketFeedConfig:
        """Load configuration from a TOML file."""
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
        return build_config(**config_data)


def build_config(**overrides: Any) -> MarketFeedConfig:
    """Build a configuration, converting validation failures to ``ConfigurationError``."""
    try:
        return MarketFeedConfig(**overrides)
    except ValidationError as exc:
        raise ConfigurationError("Invalid marketfeed configuration", {"errors": exc.errors()}) from exc


_config: MarketFeedConfig | None = None


def get_config() -> MarketFeedConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = build_config()
    return _config


def configure(config: MarketFeedConfig | None) -> None:
    """Override the process-wide configuration for application wiring or tests."""
    global _config
    _config = config
