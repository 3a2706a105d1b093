"""
marketfeed - market data ingestion pipeline.

Fetches index levels, ETF quotes and equity prices from an upstream exchange
API, validates them, persists accepted data and republishes it to a broker.
"""

from marketfeed.core.data.ingestion import BatchJobRunner, IngestionOrchestrator
from marketfeed.core.patterns import RetryExecutor, RetryPolicy, WorkerPool
from marketfeed.core.service import MarketDataService

__version__ = "0.1.0"

__all__ = [
    "BatchJobRunner",
    "IngestionOrchestrator",
    "MarketDataService",
    "RetryExecutor",
    "RetryPolicy",
    "WorkerPool",
    "__version__",
]
