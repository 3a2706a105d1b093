"""Data models flowing through the ingestion pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class FeedType(str, Enum):
    """Feeds fetched by the concurrent market data job."""

    INDICES = "indices"
    ETF = "etf"


EQUITY_PRICE_DATA_TYPE = "equity_price"


@dataclass(slots=True, frozen=True)
class MarketStatus:
    """Market status block attached to an upstream ETF payload."""

    trade_date: str | None
    market_status: str | None = None
    advances: int | None = None
    declines: int | None = None
    unchanged: int | None = None


@dataclass(slots=True, frozen=True)
class FeedSnapshot:
    """One fetched payload for a feed type."""

    feed_type: FeedType
    records: tuple[Mapping[str, Any], ...]
    fetched_at: datetime
    market_status: MarketStatus | None = None

    @classmethod
    def of(
        cls,
        feed_type: FeedType,
        records: Sequence[Mapping[str, Any]] | None,
        *,
        fetched_at: datetime | None = None,
        market_status: MarketStatus | None = None,
    ) -> FeedSnapshot:
        return cls(
            feed_type=feed_type,
            records=tuple(records or ()),
            fetched_at=fetched_at or datetime.now(),
            market_status=market_status,
        )


@dataclass(slots=True, frozen=True)
class MarketIndexRecord:
    """A single index level row mapped from the upstream indices feed."""

    key: str
    index: str
    index_symbol: str | None
    last: float | None
    variation: float | None = None
    percent_change: float | None = None
    open: float | None = None
    high: float | None = None
    low: float | None = None
    previous_close: float | None = None
    year_high: float | None = None
    year_low: float | None = None
    pe: float | None = None
    pb: float | None = None
    dy: float | None = None
    advances: int | None = None
    declines: int | None = None
    unchanged: int | None = None


@dataclass(slots=True, frozen=True)
class EtfQuoteRecord:
    """A single ETF quote mapped from the upstream ETF feed."""

    symbol: str
    asset: str | None
    open: float | None
    high: float | None
    low: float | None
    last_price: float | None
    change: float | None = None
    percent_change: float | None = None
    quantity: float | None = None
    traded_value: float | None = None
    nav: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None


@dataclass(slots=True, frozen=True)
class EquityPriceRecord:
    """One OHLC observation for an equity identifier."""

    identifier: str
    open: float
    high: float
    low: float
    close: float
    last_price: float | None = None
    volume: float | None = None
    timestamp: datetime | None = None


class FailureKind(str, Enum):
    """Classification of a failed feed pipeline."""

    FETCH = "fetch"
    VALIDATION = "validation"
    PROCESSING = "processing"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class ProcessingOutcome:
    """Result of running one feed pipeline."""

    feed_type: FeedType
    succeeded: bool
    record_count: int = 0
    failure_kind: FailureKind | None = None
    failure_reason: BaseException | None = None

    @classmethod
    def success(cls, feed_type: FeedType, record_count: int) -> ProcessingOutcome:
        return cls(feed_type=feed_type, succeeded=True, record_count=record_count)

    @classmethod
    def failure(cls, feed_type: FeedType, kind: FailureKind, reason: BaseException) -> ProcessingOutcome:
        return cls(feed_type=feed_type, succeeded=False, failure_kind=kind, failure_reason=reason)


@dataclass(slots=True, frozen=True)
class OverallResult:
    """Combined outcome of the indices and ETF pipelines."""

    indices: ProcessingOutcome
    etf: ProcessingOutcome

    @property
    def succeeded(self) -> bool:
        return self.indices.succeeded or self.etf.succeeded

    @property
    def partial(self) -> bool:
        return self.indices.succeeded != self.etf.succeeded

    @property
    def outcomes(self) -> tuple[ProcessingOutcome, ProcessingOutcome]:
        return (self.indices, self.etf)


@dataclass(slots=True)
class BatchJobResult:
    """Summary of one equity price batch job run."""

    identifier_count: int = 0
    batch_sizes: list[int] = field(default_factory=list)
    succeeded_batches: int = 0
    failed_batches: int = 0
    records_persisted: int = 0
    published: bool = False
    errors: list[BaseException] = field(default_factory=list)
    aggregate_error: BaseException | None = None

    @property
    def batch_count(self) -> int:
        return len(self.batch_sizes)

    @property
    def has_errors(self) -> bool:
        return self.failed_batches > 0


__all__ = [
    "EQUITY_PRICE_DATA_TYPE",
    "BatchJobResult",
    "EquityPriceRecord",
    "EtfQuoteRecord",
    "FailureKind",
    "FeedSnapshot",
    "FeedType",
    "MarketIndexRecord",
    "MarketStatus",
    "OverallResult",
    "ProcessingOutcome",
]
