"""Send ledger: append-only record of every delivery attempt."""

import json
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from invoice_delivery.db.database import utcnow
from invoice_delivery.db.tables import SendLogRow
from invoice_delivery.models.invoice import (
    AttemptStatus,
    Channel,
    DispatchReceipt,
    SendLogEntry,
    TriggerType,
)
from invoice_delivery.utils.logger import logger

_SUCCESS_STATUSES = (AttemptStatus.SENT.value, AttemptStatus.DELIVERED.value)


def _json_safe(value: Any) -> Any:
    """Provider responses are opaque; coerce anything non-JSON to strings for storage."""
    return json.loads(json.dumps(value, default=str))


class SendLedger:
    """Rows are inserted as ``sending`` and only ever move to ``sent`` or ``failed``."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def open_attempt(
        self,
        invoice_id: int,
        channel: Channel,
        recipient: str | None,
        provider: str | None,
        triggered_by: str | None,
        trigger_type: TriggerType | None,
    ) -> SendLogEntry:
        """Insert and commit the in-flight row before any provider is contacted."""
        now = utcnow()
        row = SendLogRow(
            invoice_id=invoice_id,
            send_type=channel.value,
            recipient=recipient,
            provider=provider,
            status=AttemptStatus.SENDING.value,
            triggered_by=triggered_by,
            trigger_type=trigger_type.value if trigger_type else None,
            queued_at=now,
            created_at=now,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            return SendLogEntry.model_validate(row)

    def mark_sent(self, log_id: int, receipt: DispatchReceipt) -> bool:
        """Transition ``sending -> sent``; returns False if the row was not in flight."""
        return self._transition(
            log_id,
            status=AttemptStatus.SENT.value,
            provider=receipt.provider,
            provider_message_id=receipt.provider_message_id,
            provider_response=_json_safe(receipt.raw_response),
            sent_at=utcnow(),
        )

    def mark_failed(self, log_id: int, error_message: str, error_code: str | None = None) -> bool:
        """Transition ``sending -> failed``; returns False if the row was not in flight."""
        return self._transition(
            log_id,
            status=AttemptStatus.FAILED.value,
            error_message=error_message,
            error_code=error_code,
            failed_at=utcnow(),
        )

    def _transition(self, log_id: int, **values: Any) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(SendLogRow)
                .where(SendLogRow.id == log_id, SendLogRow.status == AttemptStatus.SENDING.value)
                .values(**values)
            )
            session.commit()
        if result.rowcount != 1:
            logger.warning(f"Send log {log_id} was not in flight, {values['status']} not recorded")
            return False
        return True

    def get(self, log_id: int) -> SendLogEntry | None:
        with self._session_factory() as session:
            row = session.get(SendLogRow, log_id)
            return SendLogEntry.model_validate(row) if row else None

    def find_recent_success(
        self, invoice_id: int, channel: Channel, window: timedelta
    ) -> SendLogEntry | None:
        """Most recent successful attempt on ``channel`` within the lookback window."""
        cutoff = utcnow() - window
        stmt = (
            select(SendLogRow)
            .where(
                SendLogRow.invoice_id == invoice_id,
                SendLogRow.send_type == channel.value,
                SendLogRow.status.in_(_SUCCESS_STATUSES),
                SendLogRow.created_at > cutoff,
            )
            .order_by(SendLogRow.created_at.desc(), SendLogRow.id.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return SendLogEntry.model_validate(row) if row else None

    def list_for_invoice(self, invoice_id: int) -> list[SendLogEntry]:
        """All attempts for an invoice, newest first."""
        stmt = (
            select(SendLogRow)
            .where(SendLogRow.invoice_id == invoice_id)
            .order_by(SendLogRow.created_at.desc(), SendLogRow.id.desc())
        )
        with self._session_factory() as session:
            return [SendLogEntry.model_validate(row) for row in session.scalars(stmt)]

    def fail_stale_attempts(self, older_than: timedelta) -> int:
        """Close out ``sending`` rows abandoned by a crashed worker."""
        now = utcnow()
        with self._session_factory() as session:
            result = session.execute(
                update(SendLogRow)
                .where(
                    SendLogRow.status == AttemptStatus.SENDING.value,
                    SendLogRow.queued_at < now - older_than,
                )
                .values(
                    status=AttemptStatus.FAILED.value,
                    error_message="Attempt abandoned before the provider call completed",
                    error_code="stale_attempt",
                    failed_at=now,
                )
            )
            session.commit()
        return result.rowcount
