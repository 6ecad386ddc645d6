"""In-process queue that runs handlers inline at enqueue time."""

import asyncio
from collections import OrderedDict
from typing import Any

from pydantic import BaseModel

from invoice_delivery.core.errors import ConfigurationError
from invoice_delivery.queue.base import Job, JobHandler, JobQueue, QueueClosedError
from invoice_delivery.utils.logger import logger

MAX_TRACKED_JOBS = 1000


class ImmediateJobQueue(JobQueue):
    """Executes each job inline and captures the result on the returned Job.

    Nothing is persisted and failed jobs are not retried. A job for a kind with no registered
    handler is rejected at enqueue time instead of being accepted and left unprocessed.
    """

    def __init__(self, max_tracked_jobs: int = MAX_TRACKED_JOBS):
        self._handlers: dict[str, JobHandler] = {}
        self._limits: dict[str, asyncio.Semaphore] = {}
        self._jobs: OrderedDict[str, Job] = OrderedDict()
        self._max_tracked_jobs = max_tracked_jobs
        self._closed = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def register_worker(self, kind: str, concurrency: int, handler: JobHandler) -> None:
        if kind in self._handlers:
            raise ConfigurationError(f"A worker is already registered for '{kind}'")
        if concurrency < 1:
            raise ConfigurationError("Worker concurrency must be at least 1")
        self._handlers[kind] = handler
        self._limits[kind] = asyncio.Semaphore(concurrency)
        logger.info(f"Registered immediate worker for '{kind}' (concurrency {concurrency})")

    async def enqueue(self, kind: str, payload: BaseModel | dict[str, Any]) -> Job:
        if self._closed:
            raise QueueClosedError("Queue is closed")
        handler = self._handlers.get(kind)
        if handler is None:
            raise ConfigurationError(
                f"No worker registered for job kind '{kind}'", code="no_worker"
            )

        job = Job(kind=kind, payload=self._payload_dict(payload))
        self._track(job)
        logger.info(f"Running job {job.id} ({kind}) inline")

        self._in_flight += 1
        self._idle.clear()
        try:
            async with self._limits[kind]:
                job.mark_running()
                try:
                    result = await handler(job)
                except Exception as e:
                    job.mark_failed(e)
                    logger.error(f"Job {job.id} ({kind}) failed: {e}")
                else:
                    job.mark_completed(result)
                    logger.info(f"Job {job.id} ({kind}) completed")
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()
        return job

    async def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def close(self, timeout: float | None = None) -> None:
        self._closed = True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Queue closed with {self._in_flight} job(s) still running")

    def _track(self, job: Job) -> None:
        self._jobs[job.id] = job
        while len(self._jobs) > self._max_tracked_jobs:
            self._jobs.popitem(last=False)
