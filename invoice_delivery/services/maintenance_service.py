"""Ledger maintenance: close abandoned attempts and expired delivery leases."""

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from invoice_delivery.config import Settings, settings
from invoice_delivery.db.database import utcnow
from invoice_delivery.repositories import DeliveryLeaseStore, SendLedger
from invoice_delivery.utils.logger import logger


class LedgerMaintenanceService:
    """Keeps the send ledger and lease table consistent after worker crashes."""

    def __init__(
        self,
        ledger: SendLedger,
        leases: DeliveryLeaseStore,
        config: Settings | None = None,
    ):
        config = config or settings
        self.ledger = ledger
        self.leases = leases
        self.stale_after = timedelta(minutes=config.stale_attempt_minutes)

    def run_maintenance(self) -> dict:
        """
        Fail ``sending`` rows older than the stale threshold and purge expired leases.

        Returns:
            dict with maintenance statistics
        """
        cutoff = utcnow() - self.stale_after
        logger.info(f"Starting ledger maintenance (stale before {cutoff.isoformat()})")
        try:
            stale_attempts = self.ledger.fail_stale_attempts(self.stale_after)
            expired_leases = self.leases.purge_expired()
        except SQLAlchemyError as e:
            logger.error(f"Ledger maintenance failed: {e}")
            return {
                "status": "error",
                "error": str(e),
                "stale_attempts": 0,
                "expired_leases": 0,
            }

        if stale_attempts:
            logger.warning(f"Marked {stale_attempts} abandoned send attempt(s) as failed")
        logger.info(
            f"Ledger maintenance completed: {stale_attempts} stale attempts, "
            f"{expired_leases} expired leases"
        )
        return {
            "status": "completed",
            "stale_attempts": stale_attempts,
            "expired_leases": expired_leases,
            "cutoff": cutoff.isoformat(),
        }
