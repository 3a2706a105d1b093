"""
Contracts for the collaborators the ingestion pipeline calls.

The pipeline owns no HTTP client, storage schema or broker transport; it
talks to them only through these interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from typing import Any

from marketfeed.core.models import EquityPriceRecord, FeedSnapshot, MarketIndexRecord


class MarketDataClient(ABC):
    """Upstream exchange API client."""

    @abstractmethod
    async def fetch_indices(self) -> FeedSnapshot:
        """Fetch the current snapshot of all index levels."""

    @abstractmethod
    async def fetch_etfs(self) -> FeedSnapshot:
        """Fetch the current ETF quotes together with the market status block."""

    @abstractmethod
    async def fetch_prices_for_batch(self, identifiers: Sequence[str]) -> Sequence[EquityPriceRecord]:
        """Fetch OHLC prices for one batch of normalized identifiers."""


class MarketDataRepository(ABC):
    """Persistence service for mapped records."""

    @abstractmethod
    def save(self, record: Any) -> None:
        """Persist a single record."""

    def save_all(self, records: Iterable[Any]) -> None:
        """Persist several records; defaults to one ``save`` per record."""
        for record in records:
            self.save(record)

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Return a context manager that commits on success and rolls back on error."""


class IdentifierLookup(ABC):
    """Source of the equity identifiers currently tracked."""

    @abstractmethod
    def list_distinct_identifiers(self) -> Sequence[str]:
        """Return every tracked identifier; duplicates are allowed."""


class IndexReadModel(ABC):
    """Read side used by the query surface."""

    @abstractmethod
    def latest_indices(self, key: str) -> list[MarketIndexRecord]:
        """Return the most recently persisted index rows for ``key``."""


class BrokerPublisher(ABC):
    """Downstream message broker."""

    @abstractmethod
    async def publish(self, topic: str, records: Sequence[Any]) -> None:
        """Publish ``records`` on ``topic``."""


__all__ = [
    "BrokerPublisher",
    "IdentifierLookup",
    "IndexReadModel",
    "MarketDataClient",
    "MarketDataRepository",
]
