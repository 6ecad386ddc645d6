"""Queue backend selection."""

from invoice_delivery.config import Settings, settings
from invoice_delivery.queue.base import JobQueue
from invoice_delivery.utils.logger import logger


def create_job_queue(config: Settings | None = None) -> JobQueue:
    """Create the queue backend named by ``queue_backend``."""
    config = config or settings
    if config.queue_backend == "arq":
        from invoice_delivery.queue.arq_queue import ArqJobQueue

        logger.info(f"Using arq queue at {config.redis_url}")
        return ArqJobQueue(config)

    from invoice_delivery.queue.immediate import ImmediateJobQueue

    logger.info("Using immediate in-process queue")
    return ImmediateJobQueue()
