"""Exception handling module."""

from marketfeed.core.exceptions.base import (
    AggregateError,
    AllFeedsFailedError,
    BackpressureError,
    CancellationError,
    ConfigurationError,
    DataValidationError,
    FetchError,
    MarketFeedError,
    NoUsableDataError,
    ProcessingError,
    RetryExhaustedError,
    ValidationReason,
)
from marketfeed.core.exceptions.codes import ErrorCode

__all__ = [
    "AggregateError",
    "AllFeedsFailedError",
    "BackpressureError",
    "CancellationError",
    "ConfigurationError",
    "DataValidationError",
    "ErrorCode",
    "FetchError",
    "MarketFeedError",
    "NoUsableDataError",
    "ProcessingError",
    "RetryExhaustedError",
    "ValidationReason",
]
