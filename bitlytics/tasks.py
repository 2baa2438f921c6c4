"""In-process background queue for fire-and-forget work.

Redirect handlers hand click tracking to this queue and return immediately.
A small pool of worker tasks drains it on the same event loop.

Flow Diagram — submit() → worker
================================
::
    request handler                      worker task (xN)
    ───────────────                      ────────────────
    submit(job) ──put_nowait──▶ Queue ──get──▶ await job()
         │                                      │
         │ QueueFull                            │ exception
         ▼                                      ▼
    log + drop, return False              log, continue loop

Key Behaviours
===============
- ``submit`` never awaits and never raises; a full queue drops the job.
- Workers start lazily on the first submit inside a running loop.
- A job's failure is logged and counted; it never stops the worker.
- Jobs do not belong to any request: the request finishing or being
  cancelled has no effect on queued or running jobs.
- ``stop`` waits (bounded) for queued jobs, then cancels the workers.

Classes:
    BackgroundTaskQueue:  Bounded queue plus worker pool.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from prometheus_client import Counter, Gauge

__all__ = ["BackgroundTaskQueue", "Job"]

Job = Callable[[], Awaitable[None]]

BACKGROUND_JOBS_TOTAL = Counter(
    "bitlytics_background_jobs_total",
    "Background jobs by final status",
    ["queue", "status"],
)
BACKGROUND_QUEUE_DEPTH = Gauge(
    "bitlytics_background_queue_depth",
    "Jobs waiting in a background queue",
    ["queue"],
)


class BackgroundTaskQueue:
    """Bounded asyncio queue drained by a fixed pool of worker tasks."""

    def __init__(
        self,
        *,
        name: str = "background",
        maxsize: int = 10000,
        workers: int = 4,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert workers > 0, f"workers must be positive, got {workers!r}"
        self.name = name
        self._maxsize = maxsize
        self._worker_count = workers
        self._logger = logger or logging.getLogger("bitlytics.tasks")
        self._queue: asyncio.Queue[Job] | None = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self) -> None:
        if self._workers:
            return
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            loop.create_task(self._worker(index), name=f"{self.name}-worker-{index}")
            for index in range(self._worker_count)
        ]
        self._logger.info(f"Started {self._worker_count} workers for queue '{self.name}'")

    def submit(self, job: Job) -> bool:
        """Enqueue ``job`` without waiting. Returns False if it was dropped."""
        try:
            self.start()
            assert self._queue is not None
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            BACKGROUND_JOBS_TOTAL.labels(queue=self.name, status="dropped").inc()
            self._logger.warning(f"Queue '{self.name}' is full, dropping job")
            return False
        except RuntimeError as exc:
            # No running event loop.
            BACKGROUND_JOBS_TOTAL.labels(queue=self.name, status="dropped").inc()
            self._logger.error(f"Queue '{self.name}' cannot accept jobs: {exc}")
            return False

        BACKGROUND_JOBS_TOTAL.labels(queue=self.name, status="submitted").inc()
        BACKGROUND_QUEUE_DEPTH.labels(queue=self.name).set(self._queue.qsize())
        return True

    async def join(self) -> None:
        """Wait until every job submitted so far has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                f"Queue '{self.name}' still had {self.pending} jobs after {timeout}s, cancelling workers"
            )
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._logger.info(f"Stopped queue '{self.name}'")

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await job()
                BACKGROUND_JOBS_TOTAL.labels(queue=self.name, status="completed").inc()
            except Exception:
                BACKGROUND_JOBS_TOTAL.labels(queue=self.name, status="failed").inc()
                self._logger.exception(f"Background job failed in '{self.name}' worker {index}")
            finally:
                queue.task_done()
                BACKGROUND_QUEUE_DEPTH.labels(queue=self.name).set(queue.qsize())
