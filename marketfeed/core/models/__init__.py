"""Domain models."""

from marketfeed.core.models.market import (
    EQUITY_PRICE_DATA_TYPE,
    BatchJobResult,
    EquityPriceRecord,
    EtfQuoteRecord,
    FailureKind,
    FeedSnapshot,
    FeedType,
    MarketIndexRecord,
    MarketStatus,
    OverallResult,
    ProcessingOutcome,
)

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
