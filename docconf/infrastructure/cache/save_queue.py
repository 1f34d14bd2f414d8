"""Bounded-concurrency write-back queue.

Jobs persist (or remove) one document each. Jobs for different roots run in
parallel up to the concurrency limit with no ordering between them; jobs for
the same root run one at a time, in the order they were pushed. A failed job
is reported and dropped; it never blocks the drain.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from docconf.core.constants import DEFAULT_SAVE_CONCURRENCY
from docconf.domain.enums import QueueOperation
from docconf.domain.exceptions import PersistenceException

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SaveJob:
    """One unit of write-back work.

    For REMOVE jobs, document is the cached document captured before the
    mutation that emptied it; its storage id is read when the job runs.
    """

    operation: QueueOperation
    root: str
    document: dict[str, Any] | None = field(default=None, repr=False)
    started: bool = False


class SaveQueue:
    """asyncio worker pool consuming SaveJobs.

    Workers are started lazily on the first push (a running event loop is
    required) and stopped by aclose().
    """

    def __init__(
        self,
        worker: Callable[[SaveJob], Awaitable[None]],
        *,
        concurrency: int = DEFAULT_SAVE_CONCURRENCY,
        on_error: Callable[[PersistenceException], None] | None = None,
    ) -> None:
        self._worker = worker
        self._concurrency = concurrency
        self._on_error = on_error
        self._queue: asyncio.Queue[SaveJob] | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._tail: dict[str, SaveJob] = {}
        self._pending = 0

    @property
    def pending(self) -> int:
        """Jobs pushed but not yet finished."""
        return self._pending

    def push(self, job: SaveJob) -> bool:
        """Queue a job. Returns False if it was coalesced into a queued one.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        tail = self._tail.get(job.root)
        if tail is not None and not tail.started and tail.operation is job.operation:
            if job.document is not None:
                tail.document = job.document
            logger.debug("Coalesced %s for root %r", job.operation.value, job.root)
            return False
        queue = self._ensure_workers()
        queue.put_nowait(job)
        self._pending += 1
        self._tail[job.root] = job
        return True

    async def join(self) -> None:
        """Wait until every pushed job has been attempted."""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Cancel the workers. Jobs still queued are dropped.

        Dropped jobs are marked done, so a join() waiting on them returns.
        """
        tasks, self._tasks = self._tasks, []
        queue, self._queue = self._queue, None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if queue is not None:
            dropped = 0
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()
                dropped += 1
            if dropped:
                logger.warning("Dropped %d queued write-back jobs on close", dropped)
        self._pending = 0
        self._tail.clear()
        self._locks.clear()

    def _ensure_workers(self) -> asyncio.Queue[SaveJob]:
        if self._tasks and self._queue is not None:
            return self._queue
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[SaveJob] = asyncio.Queue()
        self._queue = queue
        self._tasks = [
            loop.create_task(self._run(queue), name=f"docconf-save-worker-{i}")
            for i in range(self._concurrency)
        ]
        return queue

    async def _run(self, queue: asyncio.Queue[SaveJob]) -> None:
        while True:
            job = await queue.get()
            try:
                lock = self._locks.setdefault(job.root, asyncio.Lock())
                async with lock:
                    job.started = True
                    if self._tail.get(job.root) is job:
                        del self._tail[job.root]
                    await self._worker(job)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._report(job, exc)
            finally:
                self._pending -= 1
                queue.task_done()

    def _report(self, job: SaveJob, exc: Exception) -> None:
        if isinstance(exc, PersistenceException):
            error = exc
        else:
            error = PersistenceException(job.operation.value, job.root, str(exc) or type(exc).__name__)
        logger.error(
            "Write-back %s failed for root %r: %s",
            job.operation.value,
            job.root,
            exc,
            exc_info=exc,
        )
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("Persistence error hook failed for root %r", job.root)
