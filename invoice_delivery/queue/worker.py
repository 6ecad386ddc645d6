"""arq worker runner.

Run with: python -m invoice_delivery.queue.worker

Builds the service graph, registers the deliver-invoice handler and consumes jobs until SIGTERM
or SIGINT, then drains in-flight jobs for up to ``queue_drain_timeout`` seconds.
"""

import asyncio
import contextlib
import signal

from invoice_delivery.bootstrap import build_container
from invoice_delivery.config import Settings, settings
from invoice_delivery.queue.arq_queue import ArqJobQueue
from invoice_delivery.utils.logger import logger


async def run(config: Settings) -> None:
    queue = ArqJobQueue(config)
    container = build_container(config, queue=queue)
    container.register_delivery_worker()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    worker_task = asyncio.create_task(queue.run_worker())
    stop_task = asyncio.create_task(stop.wait())
    await asyncio.wait({worker_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

    if stop.is_set():
        logger.info(f"Shutdown requested, draining for up to {config.queue_drain_timeout}s")
    stop_task.cancel()
    await container.close()

    with contextlib.suppress(asyncio.CancelledError):
        await worker_task


def main() -> None:
    """Run the arq worker."""
    logger.info(f"Starting worker with Redis: {settings.redis_url}")
    logger.info(f"Concurrency: {settings.queue_concurrency}")
    logger.info(f"Job timeout: {settings.queue_job_timeout}s")
    asyncio.run(run(settings))
    logger.info("Worker stopped")


if __name__ == "__main__":
    main()
