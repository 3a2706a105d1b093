"""In-memory persistence, identifier lookup and broker adapters."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any

from loguru import logger

from marketfeed.core.interfaces import (
    BrokerPublisher,
    IdentifierLookup,
    IndexReadModel,
    MarketDataRepository,
)
from marketfeed.core.models import EquityPriceRecord, EtfQuoteRecord, MarketIndexRecord


class InMemoryMarketStore(MarketDataRepository, IdentifierLookup, IndexReadModel):
    """Thread-safe store keeping the latest rows per index key, ETF and equity.

    Writes made inside :meth:`transaction` are staged and applied together on
    commit; an exception discards them.
    """

    def __init__(self, identifiers: Iterable[str] = ()) -> None:
        self._lock = Lock()
        self._identifiers: list[str] = list(identifiers)
        self._indices: dict[str, list[MarketIndexRecord]] = {}
        self._etfs: dict[str, EtfQuoteRecord] = {}
        self._prices: dict[str, EquityPriceRecord] = {}
        self._price_history: list[EquityPriceRecord] = []
        self._staged: ContextVar[list[Any] | None] = ContextVar(f"market_store_tx_{id(self)}", default=None)
        self.commits = 0
        self.rollbacks = 0

    def track(self, *identifiers: str) -> None:
        with self._lock:
            self._identifiers.extend(identifiers)

    def list_distinct_identifiers(self) -> Sequence[str]:
        with self._lock:
            return list(dict.fromkeys(self._identifiers))

    def save(self, record: Any) -> None:
        self.save_all([record])

    def save_all(self, records: Iterable[Any]) -> None:
        batch = list(records)
        staged = self._staged.get()
        if staged is not None:
            staged.extend(batch)
            return
        self._apply(batch)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._staged.get() is not None:
            raise RuntimeError("nested transactions are not supported")
        staged: list[Any] = []
        token = self._staged.set(staged)
        try:
            yield
        except BaseException:
            self._staged.reset(token)
            with self._lock:
                self.rollbacks += 1
            logger.debug("Rolled back {} staged records", len(staged))
            raise
        self._staged.reset(token)
        self._apply(staged)
        with self._lock:
            self.commits += 1

    def latest_indices(self, key: str) -> list[MarketIndexRecord]:
        with self._lock:
            return list(self._indices.get(key, ()))

    def etf_quote(self, symbol: str) -> EtfQuoteRecord | None:
        with self._lock:
            return self._etfs.get(symbol)

    def equity_price(self, identifier: str) -> EquityPriceRecord | None:
        with self._lock:
            return self._prices.get(identifier)

    @property
    def price_history(self) -> list[EquityPriceRecord]:
        with self._lock:
            return list(self._price_history)

    def _apply(self, records: list[Any]) -> None:
        indices_by_key: dict[str, list[MarketIndexRecord]] = defaultdict(list)
        with self._lock:
            for record in records:
                if isinstance(record, MarketIndexRecord):
                    indices_by_key[record.key].append(record)
                elif isinstance(record, EtfQuoteRecord):
                    self._etfs[record.symbol] = record
                elif isinstance(record, EquityPriceRecord):
                    self._prices[record.identifier] = record
                    self._price_history.append(record)
                else:
                    raise TypeError(f"unsupported record type: {type(record).__name__}")
            self._indices.update(indices_by_key)


@dataclass(slots=True, frozen=True)
class PublishedMessage:
    topic: str
    records: tuple[Any, ...]
    published_at: datetime


class InMemoryBrokerPublisher(BrokerPublisher):
    """Broker stand-in that keeps every published message."""

    def __init__(self) -> None:
        self.messages: list[PublishedMessage] = []

    async def publish(self, topic: str, records: Sequence[Any]) -> None:
        self.messages.append(PublishedMessage(topic=topic, records=tuple(records), published_at=datetime.now()))
        logger.debug("Published {} records to {}", len(records), topic)

    def on_topic(self, topic: str) -> list[PublishedMessage]:
        return [message for message in self.messages if message.topic == topic]


__all__ = ["InMemoryBrokerPublisher", "InMemoryMarketStore", "PublishedMessage"]
