"""Job queue contract and backends."""

from invoice_delivery.queue.backoff import RetryPolicy, compute_retry_delay
from invoice_delivery.queue.base import Job, JobHandler, JobQueue, JobStatus, QueueClosedError
from invoice_delivery.queue.factory import create_job_queue
from invoice_delivery.queue.immediate import ImmediateJobQueue

__all__ = [
    "ImmediateJobQueue",
    "Job",
    "JobHandler",
    "JobQueue",
    "JobStatus",
    "QueueClosedError",
    "RetryPolicy",
    "compute_retry_delay",
    "create_job_queue",
]
