"""Settings and customer preference providers."""

import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from invoice_delivery.db.tables import CustomerPreferenceRow, InvoiceSettingsRow
from invoice_delivery.models.settings import CustomerPreferences, DeliverySettings
from invoice_delivery.utils.logger import logger

SETTINGS_ROW_ID = 1


class SettingsProvider:
    """Reads the invoice settings row as an immutable snapshot."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self) -> DeliverySettings:
        with self._session_factory() as session:
            row = session.get(InvoiceSettingsRow, SETTINGS_ROW_ID)
            if row is None:
                logger.warning("No invoice settings row found, using built-in defaults")
                return DeliverySettings()

            # NULL columns fall back to the model defaults
            values = {
                name: getattr(row, name)
                for name in DeliverySettings.model_fields
                if getattr(row, name, None) is not None
            }
            return DeliverySettings(**values)

    def ensure_defaults(self, **overrides) -> DeliverySettings:
        """Insert the default settings row if none exists and return the current snapshot."""
        with self._session_factory() as session:
            if session.get(InvoiceSettingsRow, SETTINGS_ROW_ID) is None:
                defaults = DeliverySettings(**overrides).model_dump()
                session.add(InvoiceSettingsRow(id=SETTINGS_ROW_ID, **defaults))
                session.commit()
                logger.info("Default invoice settings inserted")
        return self.get()

    def save(self, snapshot: DeliverySettings) -> None:
        """Replace the settings row with ``snapshot``."""
        with self._session_factory() as session:
            session.merge(InvoiceSettingsRow(id=SETTINGS_ROW_ID, **snapshot.model_dump()))
            session.commit()


class PreferencesProvider:
    """Per-customer consent lookups keyed by email address."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, email: str | None) -> CustomerPreferences | None:
        if not email:
            return None
        with self._session_factory() as session:
            row = session.get(CustomerPreferenceRow, email.strip().lower())
            return CustomerPreferences.model_validate(row) if row else None

    def upsert(
        self,
        email: str,
        email_unsubscribed: bool | None = None,
        sms_opt_in: bool | None = None,
    ) -> CustomerPreferences:
        key = email.strip().lower()
        with self._session_factory() as session:
            row = session.get(CustomerPreferenceRow, key)
            if row is None:
                row = CustomerPreferenceRow(
                    customer_email=key,
                    email_unsubscribed=False,
                    sms_opt_in=False,
                    unsubscribe_token=secrets.token_urlsafe(24),
                )
                session.add(row)
            if email_unsubscribed is not None:
                row.email_unsubscribed = email_unsubscribed
            if sms_opt_in is not None:
                row.sms_opt_in = sms_opt_in
            session.commit()
            return CustomerPreferences.model_validate(row)

    def unsubscribe(self, token: str) -> CustomerPreferences | None:
        """Opt the customer holding ``token`` out of invoice email; None for an unknown token."""
        if not token:
            return None
        with self._session_factory() as session:
            row = session.scalars(
                select(CustomerPreferenceRow).where(CustomerPreferenceRow.unsubscribe_token == token)
            ).first()
            if row is None:
                return None
            row.email_unsubscribed = True
            session.commit()
            logger.info(f"Customer {row.customer_email} unsubscribed from invoice email")
            return CustomerPreferences.model_validate(row)
