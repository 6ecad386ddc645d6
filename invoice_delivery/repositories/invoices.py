"""Invoice repository: single-row reads and writes keyed by invoice id."""

from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from invoice_delivery.core.errors import InvoiceNotFoundError, StorageError, ValidationError
from invoice_delivery.db.tables import InvoiceRow
from invoice_delivery.models.invoice import Invoice, InvoiceCreate
from invoice_delivery.utils.logger import logger


class InvoiceRepository:
    """Persists invoices; the delivery core only ever issues single-row updates."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def create(self, data: InvoiceCreate) -> Invoice:
        """Insert a new invoice in ``pending`` state."""
        row = InvoiceRow(
            invoice_number=data.invoice_number,
            customer_name=data.customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            grand_total=data.grand_total,
            discount=data.discount,
            shipping=data.shipping,
            balance_due=data.balance_due,
            currency=data.currency,
            invoice_date=data.invoice_date,
            due_date=data.due_date,
            items=[item.model_dump(mode="json") for item in data.items],
            payment_link=data.payment_link,
            send_status="pending",
        )
        with self._session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ValidationError(
                    f"Invoice number {data.invoice_number} already exists",
                    code="duplicate_invoice_number",
                ) from e
            logger.info(f"Invoice {row.id} ({row.invoice_number}) created")
            return Invoice.model_validate(row)

    def get(self, invoice_id: int) -> Invoice:
        with self._session_factory() as session:
            row = session.get(InvoiceRow, invoice_id)
            if row is None:
                raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
            return Invoice.model_validate(row)

    def update(self, invoice_id: int, **fields: Any) -> None:
        """Apply a single-statement update to one invoice row."""
        values = {key: getattr(value, "value", value) for key, value in fields.items()}
        try:
            with self._session_factory() as session:
                result = session.execute(
                    update(InvoiceRow).where(InvoiceRow.id == invoice_id).values(**values)
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update invoice {invoice_id}: {e}")
            raise StorageError(f"Invoice update failed: {e}") from e

        if result.rowcount == 0:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
