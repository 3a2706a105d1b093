"""Shape and freshness checks for fetched feed snapshots."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from marketfeed.core.exceptions import DataValidationError, ValidationReason
from marketfeed.core.models import FeedSnapshot

MARKET_STATUS_DATE_FORMAT = "%d-%b-%Y %H:%M"
DEFAULT_MAX_DATA_AGE_MINUTES = 15

Clock = Callable[[], datetime]


@dataclass(slots=True, frozen=True)
class ValidationResult:
    """Outcome of validating one snapshot, with the reason when rejected."""

    valid: bool
    reason: ValidationReason | None = None
    message: str = ""
    age_minutes: int | None = None

    def as_error(self, data_type: str) -> DataValidationError | None:
        """Return the rejection as a :class:`DataValidationError`, or ``None`` when valid."""

        if self.valid or self.reason is None:
            return None
        return DataValidationError(self.message, data_type, self.reason, {"age_minutes": self.age_minutes})


_VALID = ValidationResult(valid=True)


def _reject(reason: ValidationReason, message: str, age_minutes: int | None = None) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason, message=message, age_minutes=age_minutes)


def age_in_minutes(then: datetime, now: datetime) -> int:
    """Whole minutes elapsed from ``then`` to ``now``, truncated toward zero."""

    return int((now - then).total_seconds() / 60)


def check_indices(snapshot: FeedSnapshot | None) -> ValidationResult:
    """Reject a missing or empty indices snapshot. Index levels are never stale."""

    if snapshot is None:
        return _reject(ValidationReason.MISSING_SNAPSHOT, "No indices snapshot received")
    if not snapshot.records:
        logger.warning("Received empty indices response", data_type="indices")
        return _reject(ValidationReason.EMPTY_PAYLOAD, "Received empty indices response")
    return _VALID


def check_etf(
    snapshot: FeedSnapshot | None,
    *,
    max_data_age_minutes: int = DEFAULT_MAX_DATA_AGE_MINUTES,
    date_format: str = MARKET_STATUS_DATE_FORMAT,
    clock: Clock = datetime.now,
) -> ValidationResult:
    """Reject an ETF snapshot that is empty, lacks market status, or is stale.

    The trade date carries no timezone; it is compared against the local
    wall clock returned by ``clock``.
    """

    if snapshot is None:
        return _reject(ValidationReason.MISSING_SNAPSHOT, "No ETF snapshot received")
    if not snapshot.records:
        logger.warning("Received empty ETF response", data_type="etf")
        return _reject(ValidationReason.EMPTY_PAYLOAD, "Received empty ETF response")

    status = snapshot.market_status
    if status is None:
        logger.warning("ETF response missing market status", data_type="etf")
        return _reject(ValidationReason.MISSING_MARKET_STATUS, "ETF response missing market status")
    if not status.trade_date:
        logger.warning("ETF response missing trade date", data_type="etf")
        return _reject(ValidationReason.MISSING_TRADE_DATE, "ETF response missing trade date")

    try:
        trade_time = datetime.strptime(status.trade_date.strip(), date_format)
    except ValueError:
        logger.error("Failed to parse ETF trade date {!r}", status.trade_date, data_type="etf")
        return _reject(
            ValidationReason.UNPARSABLE_TIMESTAMP,
            f"Unparsable ETF trade date: {status.trade_date!r}",
        )

    minutes_old = age_in_minutes(trade_time, clock())
    if minutes_old > max_data_age_minutes:
        logger.warning("ETF data is too old: {} minutes", minutes_old, data_type="etf")
        return _reject(
            ValidationReason.STALE_DATA,
            f"ETF data is {minutes_old} minutes old (limit {max_data_age_minutes})",
            minutes_old,
        )
    return ValidationResult(valid=True, age_minutes=minutes_old)


def validate_indices(snapshot: FeedSnapshot | None) -> bool:
    return check_indices(snapshot).valid


def validate_etf(
    snapshot: FeedSnapshot | None,
    *,
    max_data_age_minutes: int = DEFAULT_MAX_DATA_AGE_MINUTES,
    clock: Clock = datetime.now,
) -> bool:
    return check_etf(snapshot, max_data_age_minutes=max_data_age_minutes, clock=clock).valid


__all__ = [
    "MARKET_STATUS_DATE_FORMAT",
    "ValidationResult",
    "age_in_minutes",
    "check_etf",
    "check_indices",
    "validate_etf",
    "validate_indices",
]
