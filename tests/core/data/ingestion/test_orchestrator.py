"""Tests for the concurrent indices and ETF pipelines."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

import pytest
from conftest import StubClient, etf_snapshot, fresh_trade_date, index_rows
from prometheus_client import CollectorRegistry

from marketfeed.core.config import MarketFeedConfig, build_config
from marketfeed.core.data.ingestion import IngestionOrchestrator
from marketfeed.core.data.storage import InMemoryBrokerPublisher, InMemoryMarketStore
from marketfeed.core.exceptions import (
    AllFeedsFailedError,
    CancellationError,
    DataValidationError,
    ProcessingError,
    RetryExhaustedError,
    ValidationReason,
)
from marketfeed.core.models import EtfQuoteRecord, FailureKind, FeedSnapshot, FeedType, OverallResult
from marketfeed.core.monitoring import MetricsCollector


class FailingPublisher(InMemoryBrokerPublisher):
    def __init__(self, failing_topics: set[str]) -> None:
        super().__init__()
        self.failing_topics = failing_topics
        self.attempts: list[str] = []

    async def publish(self, topic: str, records: Sequence[Any]) -> None:
        self.attempts.append(topic)
        if topic in self.failing_topics:
            raise ConnectionError("broker unavailable")
        await super().publish(topic, records)


class EtfRejectingStore(InMemoryMarketStore):
    def save_all(self, records: Iterable[Any]) -> None:
        batch = list(records)
        super().save_all(batch)
        if any(isinstance(record, EtfQuoteRecord) for record in batch):
            raise OSError("disk full")


def _sample(registry: CollectorRegistry, name: str, data_type: str) -> float | None:
    return registry.get_sample_value(name, {"data_type": data_type})


async def _run(orchestrator: IngestionOrchestrator) -> OverallResult:
    try:
        return await orchestrator.run()
    finally:
        await orchestrator.shutdown(0.5)


@pytest.fixture
def store() -> InMemoryMarketStore:
    return InMemoryMarketStore()


@pytest.fixture
def publisher() -> InMemoryBrokerPublisher:
    return InMemoryBrokerPublisher()


def _orchestrator(client, store, publisher, config, metrics) -> IngestionOrchestrator:
    return IngestionOrchestrator(client, store, publisher, config=config, metrics=metrics)


@pytest.mark.asyncio
async def test_both_feeds_processed(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
    registry: CollectorRegistry,
) -> None:
    client = StubClient()

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.succeeded and not result.partial
    assert result.indices.record_count == 2
    assert result.etf.record_count == 2
    assert len(store.latest_indices("BROAD MARKET INDICES")) == 2
    assert store.etf_quote("ETF0") is not None
    assert [m.topic for m in publisher.on_topic("market-indices-update")] == ["market-indices-update"]
    assert len(publisher.on_topic("etf-update")[0].records) == 2
    assert _sample(registry, "marketfeed_success_total", "indices") == 1.0
    assert _sample(registry, "marketfeed_success_total", "etf") == 1.0
    assert _sample(registry, "marketfeed_records_published_total", "etf") == 2.0
    assert _sample(registry, "marketfeed_fetch_seconds_count", "indices") == 1.0
    assert _sample(registry, "marketfeed_process_seconds_count", "etf") == 1.0


@pytest.mark.asyncio
async def test_transient_fetch_failure_is_retried(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
    registry: CollectorRegistry,
) -> None:
    snapshot = FeedSnapshot.of(FeedType.INDICES, index_rows())
    client = StubClient(indices=[TimeoutError("slow"), TimeoutError("slow"), snapshot])

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.indices.succeeded
    assert client.indices_calls == 3
    assert _sample(registry, "marketfeed_retry_total", "indices") == 2.0


@pytest.mark.asyncio
async def test_single_feed_failure_is_partial_success(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
    registry: CollectorRegistry,
) -> None:
    client = StubClient(indices=[ConnectionError("upstream down")])

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.succeeded and result.partial
    assert result.indices.failure_kind is FailureKind.FETCH
    assert isinstance(result.indices.failure_reason, RetryExhaustedError)
    assert client.indices_calls == 3
    assert result.etf.succeeded
    assert publisher.on_topic("market-indices-update") == []
    assert len(publisher.on_topic("etf-update")) == 1
    assert _sample(registry, "marketfeed_retry_total", "indices") == 3.0
    assert _sample(registry, "marketfeed_failure_total", "indices") == 1.0


@pytest.mark.asyncio
async def test_both_feeds_failing_raises(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(indices=[ConnectionError("down")], etfs=[ConnectionError("down")])

    with pytest.raises(AllFeedsFailedError) as exc_info:
        await _run(_orchestrator(client, store, publisher, config, metrics))

    assert set(exc_info.value.failures) == {"indices", "etf"}
    assert all(isinstance(error, RetryExhaustedError) for error in exc_info.value.errors)
    assert publisher.messages == []


@pytest.mark.asyncio
async def test_stale_etf_data_is_skipped_without_retry(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(etfs=[etf_snapshot(fresh_trade_date(minutes_ago=120))])

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.etf.failure_kind is FailureKind.VALIDATION
    assert isinstance(result.etf.failure_reason, DataValidationError)
    assert result.etf.failure_reason.reason is ValidationReason.STALE_DATA
    assert client.etf_calls == 1
    assert store.etf_quote("ETF0") is None
    assert publisher.on_topic("etf-update") == []
    assert result.indices.succeeded


@pytest.mark.asyncio
async def test_empty_indices_payload_is_a_validation_failure(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(indices=[FeedSnapshot.of(FeedType.INDICES, [])])

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.indices.failure_kind is FailureKind.VALIDATION
    assert client.indices_calls == 1


@pytest.mark.asyncio
async def test_publish_failure_is_not_retried(
    store: InMemoryMarketStore,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    publisher = FailingPublisher({"etf-update"})
    client = StubClient()

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.partial
    assert result.etf.failure_kind is FailureKind.PROCESSING
    assert isinstance(result.etf.failure_reason, ProcessingError)
    assert result.etf.failure_reason.stage == "publish"
    assert client.etf_calls == 1
    assert publisher.attempts.count("etf-update") == 1
    assert store.etf_quote("ETF0") is not None


@pytest.mark.asyncio
async def test_persist_failure_rolls_back(
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    store = EtfRejectingStore()
    client = StubClient()

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.etf.failure_kind is FailureKind.PROCESSING
    assert result.etf.failure_reason.stage == "persist"
    assert store.rollbacks == 1
    assert store.etf_quote("ETF0") is None
    assert publisher.on_topic("etf-update") == []


@pytest.mark.asyncio
async def test_unmappable_rows_fail_processing(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(indices=[FeedSnapshot.of(FeedType.INDICES, [{"index": "no key"}])])

    result = await _run(_orchestrator(client, store, publisher, config, metrics))

    assert result.indices.failure_kind is FailureKind.PROCESSING
    assert result.indices.failure_reason.stage == "map"


@pytest.mark.asyncio
async def test_repeated_runs_replace_index_rows(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    orchestrator = _orchestrator(StubClient(), store, publisher, config, metrics)
    try:
        first = await orchestrator.run()
        second = await orchestrator.run()
    finally:
        await orchestrator.shutdown(0.5)

    assert first.indices.record_count == second.indices.record_count == 2
    assert first.etf.record_count == second.etf.record_count == 2
    assert len(store.latest_indices("BROAD MARKET INDICES")) == 2
    assert len(publisher.on_topic("market-indices-update")) == 2


@pytest.mark.asyncio
async def test_start_after_shutdown_is_rejected(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    orchestrator = _orchestrator(StubClient(), store, publisher, config, metrics)
    await orchestrator.start()
    await orchestrator.shutdown(0.1)

    with pytest.raises(CancellationError):
        await orchestrator.start()


class LockstepClient(StubClient):
    """Each fetch waits until both feeds are fetching at the same time."""

    def __init__(self) -> None:
        super().__init__()
        self.barrier = asyncio.Barrier(2)

    async def fetch_indices(self) -> FeedSnapshot:
        await self.barrier.wait()
        return await super().fetch_indices()

    async def fetch_etfs(self) -> FeedSnapshot:
        await self.barrier.wait()
        return await super().fetch_etfs()


@pytest.mark.asyncio
async def test_feeds_are_fetched_concurrently(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    orchestrator = _orchestrator(LockstepClient(), store, publisher, config, metrics)
    try:
        result = await asyncio.wait_for(orchestrator.run(), 5)
    finally:
        await orchestrator.shutdown(0.5)

    assert result.succeeded and not result.partial


@pytest.mark.asyncio
async def test_shutdown_during_backoff_cancels_feed(
    store: InMemoryMarketStore,
    publisher: InMemoryBrokerPublisher,
    metrics: MetricsCollector,
) -> None:
    config = build_config(retry={"max_attempts": 3, "base_delay_ms": 30_000})
    client = StubClient(indices=[ConnectionError("upstream down")])
    orchestrator = _orchestrator(client, store, publisher, config, metrics)

    run = asyncio.create_task(orchestrator.run())
    while client.indices_calls < 1 or not publisher.on_topic("etf-update"):
        await asyncio.sleep(0.01)
    await orchestrator.shutdown(1.0)
    result = await asyncio.wait_for(run, 5)

    assert result.partial
    assert result.indices.failure_kind is FailureKind.CANCELLED
    assert isinstance(result.indices.failure_reason, CancellationError)
    assert client.indices_calls == 1
    assert result.etf.succeeded
