"""Durable queue backed by arq (async Redis queue).

Producers enqueue through a shared Redis pool; a worker process runs handlers with retry and
backoff. Job state is mirrored to ``job:{id}`` keys so any process can report on it, and
permanently failed jobs are pushed to a dead-letter list for manual inspection.
"""

import asyncio
import contextlib
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.worker import Retry, Worker, func
from pydantic import BaseModel

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError
from invoice_delivery.queue.backoff import RetryPolicy
from invoice_delivery.queue.base import Job, JobHandler, JobQueue, JobStatus, QueueClosedError
from invoice_delivery.utils.logger import logger

RUN_JOB = "run_job"
JOB_STATE_TTL = 7 * 24 * 3600
DRAIN_REQUEUE_DELAY = 5

# Rendered bytes stay out of Redis state and dead-letter entries
_STATE_EXCLUDE = {"payload": {"artifact_content"}}


def job_state_key(job_id: str) -> str:
    return f"job:{job_id}"


class ArqJobQueue(JobQueue):
    def __init__(
        self,
        config: Settings | None = None,
        pool: ArqRedis | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.config = config or settings
        self.redis_settings = RedisSettings.from_dsn(self.config.redis_url)
        self.queue_name = self.config.queue_name
        self.dead_letter_key = f"{self.queue_name}:dead-letter"
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.config)
        self._pool = pool
        self._handlers: dict[str, JobHandler] = {}
        self._concurrency: dict[str, int] = {}
        self._worker: Worker | None = None
        self._closed = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def _redis(self) -> ArqRedis:
        if self._pool is None:
            self._pool = await create_pool(self.redis_settings, default_queue_name=self.queue_name)
        return self._pool

    def register_worker(self, kind: str, concurrency: int, handler: JobHandler) -> None:
        if kind in self._handlers:
            raise ConfigurationError(f"A worker is already registered for '{kind}'")
        if concurrency < 1:
            raise ConfigurationError("Worker concurrency must be at least 1")
        self._handlers[kind] = handler
        self._concurrency[kind] = concurrency
        logger.info(f"Registered arq worker for '{kind}' (concurrency {concurrency})")

    async def enqueue(self, kind: str, payload: BaseModel | dict[str, Any]) -> Job:
        if self._closed:
            raise QueueClosedError("Queue is closed")
        job = Job(kind=kind, payload=self._payload_dict(payload))
        redis = await self._redis()
        await self._save(redis, job)
        queued = await redis.enqueue_job(
            RUN_JOB, job.model_dump(), _job_id=job.id, _queue_name=self.queue_name
        )
        if queued is None:
            logger.warning(f"Job {job.id} was already queued")
        else:
            logger.info(f"Job {job.id} ({kind}) queued on {self.queue_name}")
        return job

    async def get(self, job_id: str) -> Job | None:
        redis = await self._redis()
        raw = await redis.get(job_state_key(job_id))
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    async def dead_letters(self, limit: int = 100) -> list[Job]:
        """Most recent permanently failed jobs, oldest first."""
        redis = await self._redis()
        entries = await redis.lrange(self.dead_letter_key, -limit, -1)
        return [Job.model_validate_json(entry) for entry in entries]

    def build_worker(self) -> Worker:
        if not self._handlers:
            raise ConfigurationError("No workers registered on the arq queue")
        return Worker(
            functions=[func(self._run_job, name=RUN_JOB, max_tries=self.retry_policy.max_tries)],
            redis_settings=self.redis_settings,
            queue_name=self.queue_name,
            max_jobs=max(self._concurrency.values()),
            job_timeout=self.config.queue_job_timeout,
            handle_signals=False,
        )

    async def run_worker(self) -> None:
        """Consume jobs until the worker is closed."""
        self._worker = self.build_worker()
        logger.info(
            f"Starting arq worker on {self.queue_name} "
            f"(max jobs {self._worker.max_jobs}, max tries {self.retry_policy.max_tries})"
        )
        await self._worker.async_run()

    async def close(self, timeout: float | None = None) -> None:
        self._closed = True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Drain timed out with {self._in_flight} job(s) still running")
        if self._worker is not None:
            # Jobs still running after the deadline are cancelled and requeued by arq
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker.close()
            self._worker = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
        logger.info("arq queue closed")

    async def _run_job(self, ctx: dict[str, Any], job_data: dict[str, Any]) -> Any:
        redis: ArqRedis = ctx["redis"]
        job_try: int = ctx.get("job_try", 1)
        job = Job.model_validate(job_data)

        if self._closed and job_try < self.retry_policy.max_tries:
            # Hand the job back to the broker for the next worker; a job on its last try runs here
            raise Retry(defer=DRAIN_REQUEUE_DELAY)

        job.attempts = job_try - 1
        job.mark_running()
        job.bind_progress(lambda current: self._save(redis, current))
        await self._save(redis, job)

        self._in_flight += 1
        self._idle.clear()
        try:
            handler = self._handlers.get(job.kind)
            if handler is None:
                raise ConfigurationError(f"No worker registered for job kind '{job.kind}'")
            result = await handler(job)
        except asyncio.CancelledError:
            if self._closed and job_try < self.retry_policy.max_tries:
                # Shutdown cancellation: arq runs the job again
                job.status = JobStatus.QUEUED
                await asyncio.shield(self._save(redis, job))
                logger.warning(f"Job {job.id} interrupted by shutdown, will run again")
            else:
                # Timed out or aborted: arq does not retry these
                error = TimeoutError(f"Job timed out or was aborted (limit {self.config.queue_job_timeout}s)")
                await asyncio.shield(self._fail_permanently(redis, job, error))
            raise
        except Exception as e:
            if self.retry_policy.should_retry(job_try, e):
                delay = self.retry_policy.delay_for(job_try)
                job.mark_failed(e, final=False)
                await self._save(redis, job)
                logger.warning(
                    f"Job {job.id} attempt {job_try}/{self.retry_policy.max_tries} failed: {e}; "
                    f"retrying in {delay:.0f}s"
                )
                raise Retry(defer=delay) from e

            await self._fail_permanently(redis, job, e)
            raise
        else:
            job.mark_completed(result)
            await self._save(redis, job)
            logger.info(f"Job {job.id} completed")
            return job.result
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def _fail_permanently(self, redis: ArqRedis, job: Job, error: BaseException) -> None:
        job.mark_failed(error)
        await self._save(redis, job)
        await redis.rpush(self.dead_letter_key, job.model_dump_json(exclude=_STATE_EXCLUDE))
        logger.error(
            f"Job {job.id} permanently failed after {job.attempts} attempt(s): {error}",
            exc_info=error,
        )

    async def _save(self, redis: ArqRedis, job: Job) -> None:
        await redis.set(
            job_state_key(job.id), job.model_dump_json(exclude=_STATE_EXCLUDE), ex=JOB_STATE_TTL
        )
