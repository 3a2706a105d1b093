"""Bounded asyncio worker pool shared by the feed pipelines."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from marketfeed.core.exceptions import BackpressureError, CancellationError

T = TypeVar("T")


@dataclass(slots=True)
class _Job:
    func: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...]
    future: asyncio.Future[Any]


class WorkerPool:
    """Fixed number of worker tasks draining a bounded queue.

    ``submit`` waits for queue space; ``submit_nowait`` rejects with
    :class:`BackpressureError` instead. Jobs are never dropped silently: a
    job still queued at shutdown has its future cancelled.
    """

    def __init__(self, size: int = 5, queue_capacity: int = 10, *, name: str = "market-data") -> None:
        if size < 1:
            raise ValueError("size must be at least 1")
        if queue_capacity < 1:
            raise ValueError("queue_capacity must be at least 1")
        self.size = size
        self.queue_capacity = queue_capacity
        self.name = name
        self._queue: asyncio.Queue[_Job] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._accepting = False

    @property
    def running(self) -> bool:
        return self._accepting

    def start(self) -> None:
        """Spawn the worker tasks; must be called from a running event loop."""

        if self._accepting:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_capacity)
        self._workers = [
            asyncio.create_task(self._worker(self._queue), name=f"{self.name}-{index}") for index in range(self.size)
        ]
        self._accepting = True
        logger.info(
            "Initialized {} worker pool with size: {}, queue capacity: {}",
            self.name,
            self.size,
            self.queue_capacity,
        )

    async def submit(self, func: Callable[..., Awaitable[T]], *args: Any) -> asyncio.Future[T]:
        """Queue ``func(*args)``, waiting while the queue is full."""

        queue = self._require_queue()
        job = self._make_job(func, args)
        await queue.put(job)
        return job.future

    def submit_nowait(self, func: Callable[..., Awaitable[T]], *args: Any) -> asyncio.Future[T]:
        """Queue ``func(*args)`` or raise :class:`BackpressureError` if full."""

        queue = self._require_queue()
        job = self._make_job(func, args)
        try:
            queue.put_nowait(job)
        except asyncio.QueueFull:
            raise BackpressureError(
                f"{self.name} work queue is full ({self.queue_capacity} pending jobs)",
                self.queue_capacity,
            ) from None
        return job.future

    async def shutdown(self, grace_period: float = 5.0) -> None:
        """Stop accepting work, drain within ``grace_period`` then cancel the rest."""

        if self._queue is None:
            return
        self._accepting = False
        queue = self._queue
        logger.info("Shutting down {} worker pool", self.name)

        try:
            await asyncio.wait_for(queue.join(), timeout=grace_period)
        except TimeoutError:
            logger.warning("{} worker pool did not drain within {}s; cancelling", self.name, grace_period)

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)

        while not queue.empty():
            job = queue.get_nowait()
            job.future.cancel()
            queue.task_done()

        self._workers = []
        self._queue = None

    def _require_queue(self) -> asyncio.Queue[_Job]:
        if not self._accepting or self._queue is None:
            raise CancellationError(f"{self.name} worker pool is not accepting work")
        return self._queue

    @staticmethod
    def _make_job(func: Callable[..., Awaitable[Any]], args: tuple[Any, ...]) -> _Job:
        return _Job(func=func, args=args, future=asyncio.get_running_loop().create_future())

    async def _worker(self, queue: asyncio.Queue[_Job]) -> None:
        while True:
            job = await queue.get()
            try:
                if job.future.cancelled():
                    continue
                try:
                    result = await job.func(*job.args)
                except asyncio.CancelledError:
                    job.future.cancel()
                    raise
                except Exception as exc:
                    if not job.future.done():
                        job.future.set_exception(exc)
                else:
                    if not job.future.done():
                        job.future.set_result(result)
            finally:
                queue.task_done()
