"""Configuration management module."""

from marketfeed.core.config.settings import (
    ApiConfig,
    BatchConfig,
    LoggingConfig,
    MarketFeedConfig,
    PipelineConfig,
    RetryConfig,
    SchedulerConfig,
    TopicConfig,
    UpstreamConfig,
    ValidationConfig,
    build_config,
    configure,
    get_config,
)

__all__ = [
    "ApiConfig",
    "BatchConfig",
    "LoggingConfig",
    "MarketFeedConfig",
    "PipelineConfig",
    "RetryConfig",
    "SchedulerConfig",
    "TopicConfig",
    "UpstreamConfig",
    "ValidationConfig",
    "build_config",
    "configure",
    "get_config",
]
