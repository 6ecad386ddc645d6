"""Scheduler for periodic ledger maintenance."""

import asyncio

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from invoice_delivery.config import Settings, settings
from invoice_delivery.services.maintenance_service import LedgerMaintenanceService
from invoice_delivery.utils.logger import logger


class SchedulerService:
    """Service for managing scheduled tasks."""

    def __init__(self, maintenance_service: LedgerMaintenanceService, config: Settings | None = None):
        config = config or settings
        self.maintenance_service = maintenance_service
        self.interval_minutes = config.maintenance_interval_minutes
        self.timezone = pytz.timezone(config.scheduler_timezone)
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

    def start(self) -> None:
        """Start the scheduler and register the maintenance job."""
        self.scheduler.add_job(
            self._run_maintenance,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone=self.timezone),
            id="ledger_maintenance",
            name="Send Ledger Maintenance",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started - ledger maintenance every {self.interval_minutes} minutes")

    def shutdown(self) -> None:
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    async def _run_maintenance(self) -> None:
        """Run the maintenance job (called by scheduler)."""
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self.maintenance_service.run_maintenance)
        logger.info(f"Maintenance job completed: {result}")
