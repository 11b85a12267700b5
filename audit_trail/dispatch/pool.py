"""
Async Worker Pool
=================
Bounded queue of fire-and-forget jobs served by background worker tasks.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from ..exceptions import DispatchError
from ..metrics import AuditMetrics, MetricNames

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[object]]


class AsyncWorkerPool:
    """
    Fire-and-forget job runner.

    Workers start lazily on the first submit inside a running event loop.
    At most queue_size jobs wait at once; a full queue rejects the submit.
    Job failures are logged and counted, never raised to the submitter.

    Example:
        pool = AsyncWorkerPool(worker_count=4, queue_size=1000)
        pool.submit(lambda: store.save(record), name="persist")
        await pool.drain()
    """

    def __init__(
        self,
        worker_count: int = 4,
        queue_size: int = 1000,
        metrics: Optional[AuditMetrics] = None,
    ):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.worker_count = worker_count
        self.queue_size = queue_size
        self.metrics = metrics or AuditMetrics()
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._closed = False

    @property
    def pending(self) -> int:
        """Jobs waiting in the queue."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def started(self) -> bool:
        return bool(self._workers)

    def _ensure_started(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.queue_size)
        if not self._workers:
            self._workers = [
                asyncio.create_task(self._worker(i), name=f"audit-worker-{i}")
                for i in range(self.worker_count)
            ]
            logger.debug("audit_workers_started", workers=self.worker_count)
        return self._queue

    async def _run_job(self, job: Job, name: str) -> None:
        try:
            await job()
        except Exception as e:
            self.metrics.increment(MetricNames.DISPATCH_FAILURES)
            logger.error("async_audit_job_failed", job=name, error=str(e), exc_info=True)

    async def _worker(self, index: int) -> None:
        queue = self._queue
        while True:
            job, name = await queue.get()
            try:
                await self._run_job(job, name)
            finally:
                queue.task_done()
                self.metrics.set_gauge(MetricNames.QUEUE_DEPTH, queue.qsize())

    def submit(self, job: Job, name: str = "audit_job") -> None:
        """
        Schedule a job without waiting for it.

        Raises:
            DispatchError: If the pool has been shut down or the queue is full
        """
        if self._closed:
            raise DispatchError("Worker pool is shut down")

        queue = self._ensure_started()
        try:
            queue.put_nowait((job, name))
        except asyncio.QueueFull:
            logger.warning("audit_queue_full", job=name, queue_size=self.queue_size)
            raise DispatchError(f"Audit queue is full ({self.queue_size} pending jobs)")

        self.metrics.set_gauge(MetricNames.QUEUE_DEPTH, queue.qsize())

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None and self._workers:
            await self._queue.join()

    async def shutdown(self) -> None:
        """Drain outstanding jobs and stop the workers."""
        self._closed = True
        await self.drain()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.debug("audit_workers_stopped")
