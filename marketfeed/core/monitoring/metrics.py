"""Prometheus metrics for the ingestion pipeline."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf"))


class MetricsCollector:
    """Counters and timers per feed type.

    Recording is best effort: a failing metric call is logged and dropped so
    that instrumentation never changes the outcome of a pipeline run.
    """

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.fetch_seconds = Histogram(
            "marketfeed_fetch_seconds",
            "Time taken to fetch data from the upstream API, retries included.",
            ("data_type",),
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.process_seconds = Histogram(
            "marketfeed_process_seconds",
            "Time taken to map, persist and publish accepted data.",
            ("data_type",),
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.success_total = Counter(
            "marketfeed_success_total",
            "Feed runs that were processed and published.",
            ("data_type",),
            registry=self.registry,
        )
        self.failure_total = Counter(
            "marketfeed_failure_total",
            "Feed runs that failed to fetch or process.",
            ("data_type",),
            registry=self.registry,
        )
        self.retry_total = Counter(
            "marketfeed_retry_total",
            "Failed upstream attempts, one per failed attempt.",
            ("data_type",),
            registry=self.registry,
        )
        self.batch_total = Counter(
            "marketfeed_batch_total",
            "Equity price batches grouped by outcome.",
            ("status",),
            registry=self.registry,
        )
        self.records_published_total = Counter(
            "marketfeed_records_published_total",
            "Records handed to the broker publisher.",
            ("data_type",),
            registry=self.registry,
        )

    def increment_retry(self, data_type: str) -> None:
        self._safe_inc(self.retry_total, data_type=data_type)

    def increment_success(self, data_type: str) -> None:
        self._safe_inc(self.success_total, data_type=data_type)

    def increment_failure(self, data_type: str) -> None:
        self._safe_inc(self.failure_total, data_type=data_type)

    def record_batch(self, status: str) -> None:
        """Count a batch outcome (``succeeded``, ``empty`` or ``failed``)."""

        self._safe_inc(self.batch_total, status=status)

    def record_published(self, data_type: str, count: int) -> None:
        self._safe_inc(self.records_published_total, amount=count, data_type=data_type)

    @contextmanager
    def time_fetch(self, data_type: str) -> Iterator[None]:
        """Record fetch duration whether the block succeeds or raises."""

        with self._timed(self.fetch_seconds, data_type):
            yield

    @contextmanager
    def time_process(self, data_type: str) -> Iterator[None]:
        """Record processing duration whether the block succeeds or raises."""

        with self._timed(self.process_seconds, data_type):
            yield

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)

    @contextmanager
    def _timed(self, histogram: Histogram, data_type: str) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            elapsed = perf_counter() - start
            try:
                histogram.labels(data_type=data_type).observe(elapsed)
            except Exception as exc:
                logger.debug("Dropped timer observation: {}", exc)

    @staticmethod
    def _safe_inc(counter: Counter, amount: float = 1, **labels: str) -> None:
        try:
            counter.labels(**labels).inc(amount)
        except Exception as exc:
            logger.debug("Dropped metric event: {}", exc)


_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the global metrics collector instance."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the global metrics collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector
