"""Artifact records and per-invoice delivery leases."""

from datetime import timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from invoice_delivery.db.database import utcnow
from invoice_delivery.db.tables import DeliveryLeaseRow, InvoiceFileRow
from invoice_delivery.models.invoice import ArtifactRecord
from invoice_delivery.utils.logger import logger


class ArtifactRepository:
    """Invoice documents accumulate over time; the newest one is current."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, record: ArtifactRecord) -> ArtifactRecord:
        row = InvoiceFileRow(
            invoice_id=record.invoice_id,
            file_name=record.file_name,
            file_path=record.file_path,
            retrieval_url=record.retrieval_url,
            file_size=record.file_size,
            file_hash=record.file_hash,
            storage_type=record.storage_type.value,
            access_token=record.access_token,
            generated_at=record.generated_at or utcnow(),
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            return ArtifactRecord.model_validate(row)

    def latest(self, invoice_id: int) -> ArtifactRecord | None:
        stmt = (
            select(InvoiceFileRow)
            .where(InvoiceFileRow.invoice_id == invoice_id)
            .order_by(InvoiceFileRow.generated_at.desc(), InvoiceFileRow.id.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return ArtifactRecord.model_validate(row) if row else None


class DeliveryLeaseStore:
    """Per-invoice advisory lock held while channels are dispatched.

    Each operation is a single statement, so correctness relies only on the database's
    single-row atomicity.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def acquire(self, invoice_id: int, holder: str, ttl: timedelta) -> bool:
        """Take the lease if it is free, expired, or already held by ``holder``."""
        now = utcnow()
        with self._session_factory() as session:
            try:
                session.add(
                    DeliveryLeaseRow(invoice_id=invoice_id, holder=holder, expires_at=now + ttl)
                )
                session.commit()
                return True
            except IntegrityError:
                session.rollback()

            result = session.execute(
                update(DeliveryLeaseRow)
                .where(
                    DeliveryLeaseRow.invoice_id == invoice_id,
                    or_(DeliveryLeaseRow.expires_at < now, DeliveryLeaseRow.holder == holder),
                )
                .values(holder=holder, expires_at=now + ttl)
            )
            session.commit()

        acquired = result.rowcount == 1
        if not acquired:
            logger.info(f"Delivery lease for invoice {invoice_id} is held by another job")
        return acquired

    def release(self, invoice_id: int, holder: str) -> None:
        with self._session_factory() as session:
            session.execute(
                delete(DeliveryLeaseRow).where(
                    DeliveryLeaseRow.invoice_id == invoice_id,
                    DeliveryLeaseRow.holder == holder,
                )
            )
            session.commit()

    def purge_expired(self) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(DeliveryLeaseRow).where(DeliveryLeaseRow.expires_at < utcnow())
            )
            session.commit()
        return result.rowcount
