"""Resilience and concurrency patterns."""

from marketfeed.core.patterns.retry import RetryExecutor, RetryPolicy
from marketfeed.core.patterns.worker_pool import WorkerPool

__all__ = ["RetryExecutor", "RetryPolicy", "WorkerPool"]
