# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""AdmissionQueue: FIFO gate in front of the inference backend.

Every backend call runs as a Job inside this queue. At most ``limit`` jobs
run at once (default 1: a local inference engine is usually
single-request-capacity); the rest wait in strict arrival order.

Each job moves PENDING -> RUNNING -> SETTLED. Settlement runs exactly once
per started job, in the task's done-callback, so a failing or cancelled job
always frees its slot and re-pumps the queue.

All state is mutated on the event loop thread between suspension points.
``_pump`` never awaits: the running count is incremented before the job's
task is created, so two pumps cannot both claim the last free slot.

Architecture layer: application service.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from localbridge.domain.errors import QueueFullError
from localbridge.domain.value_objects import QueueStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

JobFn = Callable[[], Awaitable[Any]]


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SETTLED = "settled"


@dataclass
class Job:
    """A queued unit of backend work and the future receiving its outcome."""

    fn: JobFn
    future: asyncio.Future[Any]
    state: JobState = JobState.PENDING
    task: asyncio.Task[Any] | None = field(default=None, repr=False)


def _coerce_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return 1
    return max(1, value)


class AdmissionQueue:
    """Bounded FIFO admission queue with a concurrency limit.

    Public API:
        enqueue(fn) -> Future: schedule a niladic coroutine function.
        run(fn): enqueue and await the job's own result.
        clear(): drop pending jobs (their futures stay unresolved).

    Example:
        queue = AdmissionQueue(limit=1)
        completion = await queue.run(lambda: backend.complete(request))
    """

    def __init__(self, limit: int = 1, max_queue_length: int | None = None) -> None:
        self._limit = _coerce_limit(limit)
        self._max_queue_length = (
            max_queue_length if max_queue_length and max_queue_length > 0 else None
        )
        self._pending: deque[Job] = deque()
        self._running = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def max_queue_length(self) -> int | None:
        return self._max_queue_length

    @property
    def size(self) -> int:
        """Number of pending (not yet running) jobs."""
        return len(self._pending)

    @property
    def running(self) -> int:
        """Number of jobs currently running."""
        return self._running

    inflight_count = running

    @property
    def is_empty(self) -> bool:
        return not self._pending and self._running == 0

    def stats(self) -> QueueStats:
        return QueueStats(
            pending=self.size,
            running=self._running,
            limit=self._limit,
            max_queue_length=self._max_queue_length,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, fn: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """Append a job and return a future settling with its outcome.

        Must be called from a coroutine running on the event loop.

        Raises:
            TypeError: ``fn`` is not callable (queue state unchanged).
            QueueFullError: Pending bound reached (job not appended).
        """
        if not callable(fn):
            raise TypeError("enqueue requires a callable returning an awaitable")

        if self._max_queue_length is not None and len(self._pending) >= self._max_queue_length:
            logger.warning(
                f"Admission queue full: {len(self._pending)} pending "
                f"(max {self._max_queue_length})"
            )
            raise QueueFullError(
                f"Queue is full ({self._max_queue_length} requests pending)"
            )

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._pending.append(Job(fn=fn, future=future))
        logger.debug(f"Job enqueued: pending={len(self._pending)}, running={self._running}")
        self._pump()
        return future

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Enqueue ``fn`` and wait for its result (or exception)."""
        return await self.enqueue(fn)

    def clear(self) -> int:
        """Discard all pending jobs without settling their futures.

        Running jobs are unaffected. Callers awaiting a discarded job's
        future must treat it as abandoned.

        Returns:
            Number of discarded jobs.
        """
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            logger.info(f"Admission queue cleared: {dropped} pending job(s) dropped")
        return dropped

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        """Start pending jobs while capacity remains. Never awaits."""
        loop = asyncio.get_running_loop()
        while self._running < self._limit and self._pending:
            job = self._pending.popleft()
            if job.future.done():
                # Caller went away (cancelled) while the job was waiting.
                job.state = JobState.SETTLED
                continue
            self._running += 1
            job.state = JobState.RUNNING
            job.task = loop.create_task(self._invoke(job))
            job.task.add_done_callback(lambda task, job=job: self._settle(job, task))
            job.future.add_done_callback(lambda future, job=job: self._on_caller_done(job))

    @staticmethod
    async def _invoke(job: Job) -> Any:
        return await job.fn()

    def _settle(self, job: Job, task: "asyncio.Task[Any]") -> None:
        """Forward the outcome to the job's caller, free the slot, re-pump.

        Runs as the task's done-callback, so it fires even when the task
        was cancelled before its first step.
        """
        if job.state is JobState.SETTLED:
            return
        job.state = JobState.SETTLED
        self._running -= 1

        if not job.future.done():
            if task.cancelled():
                job.future.cancel()
            elif task.exception() is not None:
                job.future.set_exception(task.exception())
            else:
                job.future.set_result(task.result())
        elif not task.cancelled():
            # Outcome no longer wanted; retrieve it to keep asyncio quiet.
            task.exception()

        logger.debug(f"Job settled: pending={len(self._pending)}, running={self._running}")
        self._pump()

    @staticmethod
    def _on_caller_done(job: Job) -> None:
        """Cancel a running job whose caller cancelled its future."""
        if job.future.cancelled() and job.task is not None and not job.task.done():
            job.task.cancel()
