"""Logging utilities for monitoring and debugging."""

from marketfeed.core.logging.config import LogConfig
from marketfeed.core.logging.logger import configure_logging, log_context, logger

__all__ = ["LogConfig", "configure_logging", "log_context", "logger"]
