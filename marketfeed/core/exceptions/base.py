"""Core exception hierarchy for the ingestion pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

from marketfeed.core.exceptions.codes import ErrorCode


class MarketFeedError(Exception):
    """Base class for every error raised by marketfeed."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.GENERAL,
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: Human readable message.
            error_code: Stable error code.
            details: Additional structured context.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Return a serializable payload representing the error."""

        return {
            "error": self.__class__.__name__,
            "code": self.error_code.value,
            "message": self.message,
            "details": dict(self.details),
        }


class ConfigurationError(MarketFeedError):
    """Raised when configuration values cannot be loaded or are invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION, details)


class FetchError(MarketFeedError):
    """A single upstream fetch attempt failed.

    ``data_type`` is the tag used when counting retries.
    """

    def __init__(
        self,
        message: str,
        data_type: str,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details["data_type"] = data_type
        super().__init__(message, ErrorCode.FETCH_FAILED, super_details)
        self.data_type = data_type


class ValidationReason(str, Enum):
    """Distinct reasons a fetched snapshot is rejected."""

    MISSING_SNAPSHOT = "missing_snapshot"
    EMPTY_PAYLOAD = "empty_payload"
    MISSING_MARKET_STATUS = "missing_market_status"
    MISSING_TRADE_DATE = "missing_trade_date"
    UNPARSABLE_TIMESTAMP = "unparsable_timestamp"
    STALE_DATA = "stale_data"


class DataValidationError(MarketFeedError):
    """A fetched snapshot failed shape or freshness validation."""

    def __init__(
        self,
        message: str,
        data_type: str,
        reason: ValidationReason,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details.update({"data_type": data_type, "reason": reason.value})
        super().__init__(message, ErrorCode.VALIDATION_FAILED, super_details)
        self.data_type = data_type
        self.reason = reason


class ProcessingError(MarketFeedError):
    """Mapping, persisting or publishing accepted data failed."""

    def __init__(
        self,
        message: str,
        data_type: str,
        stage: str,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details.update({"data_type": data_type, "stage": stage})
        super().__init__(message, ErrorCode.PROCESSING_FAILED, super_details)
        self.data_type = data_type
        self.stage = stage


class CancellationError(MarketFeedError):
    """An operation was aborted because shutdown was requested."""

    def __init__(self, message: str = "Operation cancelled by shutdown signal", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CANCELLED, details)


class BackpressureError(MarketFeedError):
    """The worker pool queue is full and the submission was rejected."""

    def __init__(self, message: str, capacity: int):
        super().__init__(message, ErrorCode.BACKPRESSURE, {"capacity": capacity})
        self.capacity = capacity


class AggregateError(MarketFeedError):
    """Wraps one or more underlying failures into a single error."""

    def __init__(
        self,
        message: str,
        errors: Sequence[BaseException],
        error_code: ErrorCode = ErrorCode.GENERAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, details)
        self.errors = tuple(errors)

    @property
    def last_error(self) -> BaseException | None:
        return self.errors[-1] if self.errors else None


class RetryExhaustedError(AggregateError):
    """Every retry attempt failed; wraps the last underlying failure."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"Operation failed after {attempts} attempts: {last_error}",
            [last_error],
            ErrorCode.RETRY_EXHAUSTED,
            {"attempts": attempts},
        )
        self.attempts = attempts
        self.__cause__ = last_error


class AllFeedsFailedError(AggregateError):
    """Both feed pipelines failed in the same run."""

    def __init__(self, failures: dict[str, BaseException | None]):
        errors = [error for error in failures.values() if error is not None]
        super().__init__(
            "Failed to process both indices and ETF data",
            errors,
            ErrorCode.ALL_FEEDS_FAILED,
            {"feeds": {name: str(error) for name, error in failures.items()}},
        )
        self.failures = dict(failures)


class NoUsableDataError(AggregateError):
    """A batch job finished without a single usable batch."""

    def __init__(self, batch_count: int, errors: Sequence[BaseException]):
        super().__init__(
            f"No usable data produced by any of {batch_count} batches",
            errors,
            ErrorCode.NO_USABLE_DATA,
            {"batch_count": batch_count},
        )
        self.batch_count = batch_count


__all__ = [
    "AggregateError",
    "AllFeedsFailedError",
    "BackpressureError",
    "CancellationError",
    "ConfigurationError",
    "DataValidationError",
    "FetchError",
    "MarketFeedError",
    "NoUsableDataError",
    "ProcessingError",
    "RetryExhaustedError",
    "ValidationReason",
]
