"""Stable error codes attached to marketfeed errors."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes surfaced in logs and error payloads."""

    GENERAL = "GENERAL_ERROR"
    CONFIGURATION = "CONFIGURATION_ERROR"
    FETCH_FAILED = "FETCH_FAILED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    CANCELLED = "CANCELLED"
    BACKPRESSURE = "BACKPRESSURE"
    ALL_FEEDS_FAILED = "ALL_FEEDS_FAILED"
    NO_USABLE_DATA = "NO_USABLE_DATA"


__all__ = ["ErrorCode"]
