"""Concurrent fetch, validate, persist and publish for the indices and ETF feeds."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any
from uuid import uuid4

from loguru import logger

from marketfeed.core.config import MarketFeedConfig, get_config
from marketfeed.core.data.ingestion.mappers import map_etf_records, map_index_records
from marketfeed.core.data.ingestion.validator import ValidationResult, check_etf, check_indices
from marketfeed.core.exceptions import (
    AllFeedsFailedError,
    CancellationError,
    FetchError,
    ProcessingError,
    RetryExhaustedError,
)
from marketfeed.core.interfaces import BrokerPublisher, MarketDataClient, MarketDataRepository
from marketfeed.core.logging import log_context
from marketfeed.core.models import (
    FailureKind,
    FeedSnapshot,
    FeedType,
    OverallResult,
    ProcessingOutcome,
)
from marketfeed.core.monitoring import MetricsCollector, get_metrics_collector
from marketfeed.core.patterns import RetryExecutor, RetryPolicy, WorkerPool


@dataclass(frozen=True, slots=True)
class FeedDefinition:
    """Everything that differs between the two feed pipelines."""

    feed_type: FeedType
    fetch: Callable[[], Awaitable[FeedSnapshot]]
    check: Callable[[FeedSnapshot | None], ValidationResult]
    map_records: Callable[[Sequence[Mapping[str, Any]]], list[Any]]
    topic: str


class IngestionOrchestrator:
    """Runs the indices and ETF pipelines concurrently on a shared worker pool.

    Only the upstream fetch is retried. A run fails fatally only when both
    pipelines fail; a single failed feed is logged as partial success.
    """

    def __init__(
        self,
        client: MarketDataClient,
        repository: MarketDataRepository,
        publisher: BrokerPublisher,
        *,
        config: MarketFeedConfig | None = None,
        metrics: MetricsCollector | None = None,
        pool: WorkerPool | None = None,
        retry_executor: RetryExecutor | None = None,
        cancel_event: asyncio.Event | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config or get_config()
        self._repository = repository
        self._publisher = publisher
        self._metrics = metrics or get_metrics_collector()
        self._cancel_event = cancel_event or asyncio.Event()
        self._pool = pool or WorkerPool(
            self._config.pipeline.pool_size,
            self._config.pipeline.queue_capacity,
        )
        self._retry = retry_executor or RetryExecutor(self._metrics, cancel_event=self._cancel_event)
        self._policy = RetryPolicy.from_config(self._config.retry)
        self._closed = False

        validation = self._config.validation
        self.indices_feed = FeedDefinition(
            feed_type=FeedType.INDICES,
            fetch=client.fetch_indices,
            check=check_indices,
            map_records=map_index_records,
            topic=self._config.topics.indices,
        )
        self.etf_feed = FeedDefinition(
            feed_type=FeedType.ETF,
            fetch=client.fetch_etfs,
            check=partial(
                check_etf,
                max_data_age_minutes=validation.max_data_age_minutes,
                date_format=validation.market_status_date_format,
                clock=clock,
            ),
            map_records=map_etf_records,
            topic=self._config.topics.etf,
        )

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    async def start(self) -> None:
        """Start the worker pool. Safe to call more than once."""
        if self._closed:
            raise CancellationError("Ingestion orchestrator has been shut down")
        self._pool.start()

    async def shutdown(self, grace_period: float | None = None) -> None:
        """Signal cancellation to pending backoff waits and tear down the pool."""
        self._closed = True
        self._cancel_event.set()
        grace = self._config.pipeline.shutdown_grace_seconds if grace_period is None else grace_period
        await self._pool.shutdown(grace)

    async def run(self) -> OverallResult:
        """Run both feed pipelines and wait for both outcomes.

        Raises:
            AllFeedsFailedError: neither feed was processed.
        """
        if not self._pool.running:
            await self.start()

        trace_id = uuid4().hex
        with log_context(trace_id=trace_id):
            futures = [
                await self._pool.submit(self.run_feed, feed, trace_id)
                for feed in (self.indices_feed, self.etf_feed)
            ]
            results = await asyncio.gather(*futures, return_exceptions=True)

            indices, etf = (
                self._as_outcome(feed.feed_type, result)
                for feed, result in zip((self.indices_feed, self.etf_feed), results, strict=True)
            )
            overall = OverallResult(indices=indices, etf=etf)
            self._report_overall(overall)
            return overall

    async def run_feed(self, feed: FeedDefinition, trace_id: str | None = None) -> ProcessingOutcome:
        """Run one feed pipeline; every failure becomes a failed outcome."""

        data_type = feed.feed_type.value
        with log_context(trace_id=trace_id, data_type=data_type):
            try:
                with self._metrics.time_fetch(data_type):
                    snapshot = await self._retry.execute(partial(self._fetch_once, feed), self._policy)
            except CancellationError as exc:
                logger.warning("Fetching {} data cancelled: {}", data_type, exc)
                return ProcessingOutcome.failure(feed.feed_type, FailureKind.CANCELLED, exc)
            except RetryExhaustedError as exc:
                logger.error("Failed to fetch {} data after {} attempts: {}", data_type, exc.attempts, exc.last_error)
                self._metrics.increment_failure(data_type)
                return ProcessingOutcome.failure(feed.feed_type, FailureKind.FETCH, exc)

            error = feed.check(snapshot).as_error(data_type)
            if error is not None:
                logger.warning(
                    "Skipping invalid or stale {} data: {}",
                    data_type,
                    error.message,
                    error_code=error.error_code.value,
                )
                self._metrics.increment_failure(data_type)
                return ProcessingOutcome.failure(feed.feed_type, FailureKind.VALIDATION, error)

            try:
                with self._metrics.time_process(data_type):
                    record_count = await self._process(feed, snapshot)
            except ProcessingError as exc:
                logger.error("Failed to process {} data at {} stage: {}", data_type, exc.stage, exc.__cause__ or exc)
                self._metrics.increment_failure(data_type)
                return ProcessingOutcome.failure(feed.feed_type, FailureKind.PROCESSING, exc)

            self._metrics.increment_success(data_type)
            return ProcessingOutcome.success(feed.feed_type, record_count)

    async def _fetch_once(self, feed: FeedDefinition) -> FeedSnapshot:
        data_type = feed.feed_type.value
        logger.info("Fetching {} data...", data_type)
        try:
            return await feed.fetch()
        except Exception as exc:
            raise FetchError(f"Failed to fetch {data_type} data: {exc}", data_type) from exc

    async def _process(self, feed: FeedDefinition, snapshot: FeedSnapshot) -> int:
        data_type = feed.feed_type.value

        try:
            records = feed.map_records(snapshot.records)
        except Exception as exc:
            raise ProcessingError(f"Failed to map {data_type} data", data_type, "map") from exc

        try:
            with self._repository.transaction():
                self._repository.save_all(records)
        except Exception as exc:
            raise ProcessingError(f"Failed to save {data_type} data", data_type, "persist") from exc

        try:
            await self._publisher.publish(feed.topic, records)
        except Exception as exc:
            raise ProcessingError(f"Failed to publish {data_type} data", data_type, "publish") from exc

        self._metrics.record_published(data_type, len(records))
        status = snapshot.market_status
        if status is not None:
            logger.info(
                "Processed {} {} records. Market Status: {}, Advances: {}, Declines: {}",
                len(records),
                data_type,
                status.market_status or "N/A",
                status.advances,
                status.declines,
            )
        else:
            logger.info("Processed {} {} records", len(records), data_type)
        return len(records)

    @staticmethod
    def _as_outcome(feed_type: FeedType, result: ProcessingOutcome | BaseException) -> ProcessingOutcome:
        if isinstance(result, ProcessingOutcome):
            return result
        if isinstance(result, asyncio.CancelledError):
            error = CancellationError(f"{feed_type.value} pipeline cancelled")
            return ProcessingOutcome.failure(feed_type, FailureKind.CANCELLED, error)
        logger.opt(exception=result).error("Unexpected error in {} pipeline", feed_type.value)
        return ProcessingOutcome.failure(feed_type, FailureKind.PROCESSING, result)

    @staticmethod
    def _report_overall(overall: OverallResult) -> None:
        indices_ok, etf_ok = overall.indices.succeeded, overall.etf.succeeded
        if not indices_ok and not etf_ok:
            logger.error("Failed to process both indices and ETF data")
            raise AllFeedsFailedError(
                {
                    FeedType.INDICES.value: overall.indices.failure_reason,
                    FeedType.ETF.value: overall.etf.failure_reason,
                }
            )
        if not indices_ok:
            logger.warning("Indices data processing failed but ETF data was processed successfully")
        elif not etf_ok:
            logger.warning("ETF data processing failed but indices data was processed successfully")
        else:
            logger.info("Successfully processed both indices and ETF data")


__all__ = ["FeedDefinition", "IngestionOrchestrator"]
