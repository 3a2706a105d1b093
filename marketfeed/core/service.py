"""Process-wide wiring of the ingestion pipeline and its periodic runner."""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

from loguru import logger

from marketfeed.core.config import MarketFeedConfig, get_config
from marketfeed.core.data.ingestion import BatchJobRunner, IngestionOrchestrator
from marketfeed.core.data.storage import InMemoryBrokerPublisher, InMemoryMarketStore
from marketfeed.core.exceptions import ConfigurationError, MarketFeedError
from marketfeed.core.interfaces import (
    BrokerPublisher,
    IdentifierLookup,
    IndexReadModel,
    MarketDataClient,
    MarketDataRepository,
)
from marketfeed.core.models import BatchJobResult, OverallResult
from marketfeed.core.monitoring import MetricsCollector, get_metrics_collector


class MarketDataService:
    """Owns the worker pool, metrics and both jobs for the process lifetime.

    Example:
        >>> async with MarketDataService(client) as service:
        ...     await service.run_market_data()
    """

    def __init__(
        self,
        client: MarketDataClient,
        *,
        repository: MarketDataRepository | None = None,
        lookup: IdentifierLookup | None = None,
        publisher: BrokerPublisher | None = None,
        config: MarketFeedConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config or get_config()
        self.metrics = metrics or get_metrics_collector()
        self.repository = repository or InMemoryMarketStore()
        self.publisher = publisher or InMemoryBrokerPublisher()
        if lookup is None:
            if not isinstance(self.repository, IdentifierLookup):
                raise ConfigurationError("an identifier lookup is required when the repository does not provide one")
            lookup = self.repository
        self.lookup = lookup
        self.cancel_event = asyncio.Event()

        self.orchestrator = IngestionOrchestrator(
            client,
            self.repository,
            self.publisher,
            config=self.config,
            metrics=self.metrics,
            cancel_event=self.cancel_event,
        )
        self.batch_runner = BatchJobRunner(
            client,
            self.repository,
            self.lookup,
            self.publisher,
            config=self.config,
            metrics=self.metrics,
            cancel_event=self.cancel_event,
        )

    @property
    def read_model(self) -> IndexReadModel | None:
        return self.repository if isinstance(self.repository, IndexReadModel) else None

    async def start(self) -> None:
        await self.orchestrator.start()
        logger.info("Market data service started")

    async def shutdown(self) -> None:
        self.cancel_event.set()
        await self.orchestrator.shutdown()
        logger.info("Market data service stopped")

    async def __aenter__(self) -> MarketDataService:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def run_market_data(self) -> OverallResult:
        """Run the indices and ETF pipelines once; raises when both fail."""
        return await self.orchestrator.run()

    async def run_equity_prices(self) -> BatchJobResult:
        """Run the equity price batch job once."""
        return await self.batch_runner.run()

    async def run_forever(self) -> None:
        """Run both jobs on their intervals until :meth:`shutdown` is called."""
        scheduler = self.config.scheduler
        await asyncio.gather(
            self._every(scheduler.market_data_interval_seconds, self.run_market_data, "market data"),
            self._every(scheduler.equity_prices_interval_seconds, self.run_equity_prices, "equity prices"),
        )

    async def _every(self, interval: float, job: Callable[[], Awaitable[Any]], name: str) -> None:
        while not self.cancel_event.is_set():
            try:
                await job()
            except MarketFeedError as exc:
                logger.error("Scheduled {} job failed: {}", name, exc, error_code=exc.error_code.value)
            except Exception:
                logger.exception("Unexpected error in scheduled {} job", name)
            try:
                await asyncio.wait_for(self.cancel_event.wait(), timeout=interval)
            except TimeoutError:
                continue


def load_client(factory_path: str) -> MarketDataClient:
    """Instantiate a client from a ``"package.module:factory"`` path."""

    module_name, _, attribute = factory_path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"client factory must look like 'module:factory', got {factory_path!r}")
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"cannot load client factory {factory_path!r}: {exc}") from exc
    client = factory()
    if not isinstance(client, MarketDataClient):
        raise ConfigurationError(f"{factory_path!r} did not return a MarketDataClient")
    return client


__all__ = ["MarketDataService", "load_client"]
