"""Pytest configuration and shared stubs for the marketfeed test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Any

import pytest
from loguru import logger
from prometheus_client import CollectorRegistry

from marketfeed.core.config import MarketFeedConfig, build_config, configure
from marketfeed.core.interfaces import MarketDataClient
from marketfeed.core.models import EquityPriceRecord, FeedSnapshot, FeedType, MarketStatus
from marketfeed.core.monitoring import MetricsCollector, configure_metrics_collector

NOW = datetime(2024, 3, 15, 10, 30)


def index_rows(count: int = 2, key: str = "BROAD MARKET INDICES") -> list[dict[str, Any]]:
    return [
        {"key": key, "index": f"NIFTY {n}", "indexSymbol": f"NIFTY{n}", "last": "22,100.50", "percentChange": 0.4}
        for n in range(count)
    ]


def etf_rows(count: int = 2) -> list[dict[str, Any]]:
    return [{"symbol": f"ETF{n}", "assets": "Gold", "ltP": "56.10", "chn": "-0.2", "qty": "1,200"} for n in range(count)]


def fresh_trade_date(minutes_ago: int = 0) -> str:
    return (datetime.now() - timedelta(minutes=minutes_ago)).strftime("%d-%b-%Y %H:%M")


def etf_snapshot(trade_date: str | None = None, rows: int = 2) -> FeedSnapshot:
    if trade_date is None:
        trade_date = fresh_trade_date()
    return FeedSnapshot.of(
        FeedType.ETF,
        etf_rows(rows),
        market_status=MarketStatus(trade_date=trade_date, market_status="Open", advances=30, declines=12),
    )


def price(identifier: str) -> EquityPriceRecord:
    return EquityPriceRecord(identifier=identifier, open=10.0, high=11.0, low=9.5, close=10.5)


class StubClient(MarketDataClient):
    """Scriptable upstream client.

    Each ``*_results`` list is consumed one entry per call; an exception entry
    is raised, anything else is returned. The last entry repeats.
    """

    def __init__(
        self,
        *,
        indices: list[Any] | None = None,
        etfs: list[Any] | None = None,
        prices: Callable[[Sequence[str]], Sequence[EquityPriceRecord]] | None = None,
    ) -> None:
        self.indices_results = indices if indices is not None else [FeedSnapshot.of(FeedType.INDICES, index_rows())]
        self.etf_results = etfs if etfs is not None else [etf_snapshot()]
        self.prices = prices or (lambda batch: [price(identifier) for identifier in batch])
        self.indices_calls = 0
        self.etf_calls = 0
        self.batches: list[list[str]] = []

    @staticmethod
    def _next(results: list[Any], call: int) -> Any:
        result = results[min(call, len(results) - 1)]
        if isinstance(result, BaseException):
            raise result
        return result

    async def fetch_indices(self) -> FeedSnapshot:
        self.indices_calls += 1
        return self._next(self.indices_results, self.indices_calls - 1)

    async def fetch_etfs(self) -> FeedSnapshot:
        self.etf_calls += 1
        return self._next(self.etf_results, self.etf_calls - 1)

    async def fetch_prices_for_batch(self, identifiers: Sequence[str]) -> Sequence[EquityPriceRecord]:
        self.batches.append(list(identifiers))
        return self.prices(identifiers)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> MetricsCollector:
    collector = MetricsCollector(registry=registry)
    configure_metrics_collector(collector)
    return collector


@pytest.fixture
def config() -> MarketFeedConfig:
    return build_config(retry={"max_attempts": 3, "base_delay_ms": 0})


@pytest.fixture(autouse=True)
def _reset_globals():
    yield
    configure_metrics_collector(None)
    configure(None)
    logger.remove()
