"""Sequential, batch-partitioned equity price job."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from functools import partial
from uuid import uuid4

from loguru import logger

from marketfeed.core.config import MarketFeedConfig, get_config
from marketfeed.core.exceptions import (
    CancellationError,
    FetchError,
    NoUsableDataError,
    RetryExhaustedError,
)
from marketfeed.core.interfaces import BrokerPublisher, IdentifierLookup, MarketDataClient, MarketDataRepository
from marketfeed.core.logging import log_context
from marketfeed.core.models import EQUITY_PRICE_DATA_TYPE, BatchJobResult, EquityPriceRecord
from marketfeed.core.monitoring import MetricsCollector, get_metrics_collector
from marketfeed.core.patterns import RetryExecutor, RetryPolicy


def normalize_identifiers(identifiers: Iterable[str], prefix: str) -> list[str]:
    """Prefix, deduplicate and sort identifiers so partitioning is deterministic."""

    cleaned = (identifier.strip() for identifier in identifiers if identifier)
    return sorted({f"{prefix}{identifier}" for identifier in cleaned if identifier})


def partition(items: Sequence[str], size: int) -> list[list[str]]:
    """Split ``items`` into consecutive chunks of ``size``; the last may be shorter."""

    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class BatchJobRunner:
    """Fetches equity prices batch by batch and publishes one aggregate event.

    Every batch is persisted as soon as it arrives. The aggregate event is
    published only when every batch of the run succeeded.
    """

    def __init__(
        self,
        client: MarketDataClient,
        repository: MarketDataRepository,
        lookup: IdentifierLookup,
        publisher: BrokerPublisher,
        *,
        config: MarketFeedConfig | None = None,
        metrics: MetricsCollector | None = None,
        retry_executor: RetryExecutor | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._lookup = lookup
        self._publisher = publisher
        self._config = config or get_config()
        self._metrics = metrics or get_metrics_collector()
        self._cancel_event = cancel_event or asyncio.Event()
        self._retry = retry_executor or RetryExecutor(self._metrics, cancel_event=self._cancel_event)
        self._policy = RetryPolicy(
            max_attempts=self._config.batch.max_attempts,
            base_delay=self._config.retry.base_delay_ms / 1000.0,
        )

    async def run(self) -> BatchJobResult:
        """Run one job; partial batch failures never raise."""

        with log_context(trace_id=uuid4().hex, data_type=EQUITY_PRICE_DATA_TYPE):
            logger.info("=== Starting equity price fetch and persist job ===")
            result = await self._run()
            logger.info("=== Completed equity price fetch and persist job ===")
            return result

    async def _run(self) -> BatchJobResult:
        result = BatchJobResult()

        try:
            identifiers = list(self._lookup.list_distinct_identifiers())
        except Exception as exc:
            logger.error("Failed to load identifiers: {}", exc)
            result.errors.append(exc)
            result.aggregate_error = NoUsableDataError(0, [exc])
            return result

        if not identifiers:
            logger.warning("No identifiers found; nothing to fetch")
            return result

        batch_config = self._config.batch
        normalized = normalize_identifiers(identifiers, batch_config.identifier_prefix)
        batches = partition(normalized, batch_config.batch_size)
        result.identifier_count = len(normalized)
        result.batch_sizes = [len(batch) for batch in batches]
        logger.info("Processing {} identifiers in {} batches", len(normalized), len(batches))

        collected: list[EquityPriceRecord] = []
        for number, batch in enumerate(batches, start=1):
            if self._cancel_event.is_set():
                logger.warning("Shutdown requested; skipping remaining {} batches", len(batches) - number + 1)
                result.errors.append(CancellationError("Equity price job cancelled"))
                result.failed_batches += len(batches) - number + 1
                break

            with log_context(batch=number):
                records = await self._process_batch(number, batch, result)
            if records:
                collected.extend(records)

        self._finish(result, collected)
        if collected and not result.has_errors:
            await self._publish(result, collected)
        else:
            logger.warning("Skipping aggregate publish due to errors or no data")
        return result

    async def _process_batch(
        self,
        number: int,
        batch: list[str],
        result: BatchJobResult,
    ) -> list[EquityPriceRecord] | None:
        try:
            prices = list(await self._retry.execute(partial(self._fetch_batch, batch), self._policy))
        except (RetryExhaustedError, CancellationError) as exc:
            logger.error("Error fetching batch {}: {}", number, exc)
            self._mark_failed(result, exc)
            return None

        if not prices:
            logger.warning("Received empty response for batch {}", number)
            self._mark_failed(result, FetchError(f"Empty response for batch {number}", EQUITY_PRICE_DATA_TYPE), "empty")
            return None

        try:
            with self._repository.transaction():
                self._repository.save_all(prices)
        except Exception as exc:
            logger.error("Error persisting batch {}: {}", number, exc)
            self._mark_failed(result, exc)
            return None

        result.succeeded_batches += 1
        result.records_persisted += len(prices)
        self._metrics.record_batch("succeeded")
        return prices

    async def _fetch_batch(self, batch: list[str]) -> Sequence[EquityPriceRecord]:
        try:
            return await self._client.fetch_prices_for_batch(batch)
        except Exception as exc:
            raise FetchError(f"Failed to fetch prices: {exc}", EQUITY_PRICE_DATA_TYPE) from exc

    def _mark_failed(self, result: BatchJobResult, error: BaseException, status: str = "failed") -> None:
        result.failed_batches += 1
        result.errors.append(error)
        self._metrics.record_batch(status)

    def _finish(self, result: BatchJobResult, collected: list[EquityPriceRecord]) -> None:
        if result.batch_count and not collected:
            result.aggregate_error = NoUsableDataError(result.batch_count, result.errors)
            logger.error("No usable data produced by any of {} batches", result.batch_count)

    async def _publish(self, result: BatchJobResult, records: list[EquityPriceRecord]) -> None:
        topic = self._config.topics.equity_prices
        logger.info("Publishing {} equity prices to {}", len(records), topic)
        try:
            await self._publisher.publish(topic, records)
        except Exception as exc:
            logger.error("Failed to publish equity prices: {}", exc)
            result.errors.append(exc)
            return
        result.published = True
        self._metrics.record_published(EQUITY_PRICE_DATA_TYPE, len(records))


__all__ = ["BatchJobRunner", "normalize_identifiers", "partition"]
