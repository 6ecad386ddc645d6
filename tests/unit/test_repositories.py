"""Unit tests for the repositories and ledger maintenance on SQLite."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from invoice_delivery.core.errors import InvoiceNotFoundError, ValidationError
from invoice_delivery.db.database import utcnow
from invoice_delivery.db.tables import DeliveryLeaseRow, SendLogRow
from invoice_delivery.models.invoice import (
    ArtifactRecord,
    AttemptStatus,
    Channel,
    DispatchReceipt,
    SendStatus,
    StorageKind,
    TriggerType,
)
from invoice_delivery.models.settings import DeliverySettings
from invoice_delivery.services.maintenance_service import LedgerMaintenanceService


@pytest.fixture
def stored_invoice(container, invoice_data):
    return container.invoices.create(invoice_data)


def _backdate(container, log_id: int, minutes: int) -> None:
    past = utcnow() - timedelta(minutes=minutes)
    with container.session_factory() as session:
        session.execute(
            update(SendLogRow).where(SendLogRow.id == log_id).values(created_at=past, queued_at=past)
        )
        session.commit()


class TestInvoiceRepository:
    def test_create_and_get(self, container, invoice_data):
        created = container.invoices.create(invoice_data)
        loaded = container.invoices.get(created.id)

        assert loaded.invoice_number == "INV-1001"
        assert loaded.send_status is SendStatus.PENDING
        assert loaded.grand_total == Decimal("120.00")
        assert loaded.items[0].unit_price == Decimal("120.00")
        assert loaded.email_sent is False

    def test_duplicate_number(self, container, invoice_data):
        container.invoices.create(invoice_data)
        with pytest.raises(ValidationError) as exc_info:
            container.invoices.create(invoice_data)
        assert exc_info.value.code == "duplicate_invoice_number"

    def test_update(self, container, stored_invoice):
        sent_at = utcnow()
        container.invoices.update(stored_invoice.id, send_status=SendStatus.SENT, email_sent=True, email_sent_at=sent_at)

        loaded = container.invoices.get(stored_invoice.id)
        assert loaded.send_status is SendStatus.SENT
        assert loaded.email_sent is True
        assert loaded.email_sent_at == sent_at

    def test_missing_invoice(self, container):
        with pytest.raises(InvoiceNotFoundError):
            container.invoices.get(999)
        with pytest.raises(InvoiceNotFoundError):
            container.invoices.update(999, send_status=SendStatus.SENT)


class TestSendLedger:
    """Test cases for SendLedger."""

    def test_attempt_lifecycle(self, container, stored_invoice):
        """Test rows open as sending and move to sent exactly once."""
        ledger = container.ledger
        entry = ledger.open_attempt(
            stored_invoice.id, Channel.EMAIL, "dana@example.com", "sendgrid", "api", TriggerType.AUTO
        )
        assert entry.status is AttemptStatus.SENDING
        assert entry.queued_at is not None

        receipt = DispatchReceipt(provider="sendgrid", provider_message_id="sg-1", raw_response={"status_code": 202})
        assert ledger.mark_sent(entry.id, receipt) is True
        assert ledger.mark_failed(entry.id, "late failure") is False

        sent = ledger.get(entry.id)
        assert sent.status is AttemptStatus.SENT
        assert sent.provider_message_id == "sg-1"
        assert sent.provider_response == {"status_code": 202}
        assert sent.sent_at is not None
        assert sent.failed_at is None

    def test_mark_failed(self, container, stored_invoice):
        entry = container.ledger.open_attempt(stored_invoice.id, Channel.SMS, "+1", "twilio", "api", None)
        assert container.ledger.mark_failed(entry.id, "Invalid phone number", "invalid_phone") is True

        failed = container.ledger.get(entry.id)
        assert failed.status is AttemptStatus.FAILED
        assert failed.error_code == "invalid_phone"
        assert failed.failed_at is not None

    def test_find_recent_success(self, container, stored_invoice):
        ledger = container.ledger
        window = timedelta(minutes=60)
        assert ledger.find_recent_success(stored_invoice.id, Channel.EMAIL, window) is None

        failed = ledger.open_attempt(stored_invoice.id, Channel.EMAIL, "dana@example.com", "sendgrid", "api", None)
        ledger.mark_failed(failed.id, "boom")
        assert ledger.find_recent_success(stored_invoice.id, Channel.EMAIL, window) is None

        sent = ledger.open_attempt(stored_invoice.id, Channel.EMAIL, "dana@example.com", "sendgrid", "api", None)
        ledger.mark_sent(sent.id, DispatchReceipt(provider="sendgrid"))
        assert ledger.find_recent_success(stored_invoice.id, Channel.EMAIL, window).id == sent.id
        assert ledger.find_recent_success(stored_invoice.id, Channel.SMS, window) is None

        _backdate(container, sent.id, minutes=61)
        assert ledger.find_recent_success(stored_invoice.id, Channel.EMAIL, window) is None

    def test_list_newest_first(self, container, stored_invoice):
        ledger = container.ledger
        first = ledger.open_attempt(stored_invoice.id, Channel.EMAIL, "a@example.com", "sendgrid", "api", None)
        second = ledger.open_attempt(stored_invoice.id, Channel.SMS, "+1", "twilio", "api", None)
        _backdate(container, first.id, minutes=5)

        assert [entry.id for entry in ledger.list_for_invoice(stored_invoice.id)] == [second.id, first.id]


class TestDeliveryLeaseStore:
    def test_acquire_and_release(self, container, stored_invoice):
        leases = container.leases
        ttl = timedelta(minutes=10)

        assert leases.acquire(stored_invoice.id, "job-a", ttl) is True
        assert leases.acquire(stored_invoice.id, "job-b", ttl) is False
        assert leases.acquire(stored_invoice.id, "job-a", ttl) is True

        leases.release(stored_invoice.id, "job-b")
        assert leases.acquire(stored_invoice.id, "job-b", ttl) is False

        leases.release(stored_invoice.id, "job-a")
        assert leases.acquire(stored_invoice.id, "job-b", ttl) is True

    def test_expired_lease_can_be_taken(self, container, stored_invoice):
        leases = container.leases
        assert leases.acquire(stored_invoice.id, "crashed-job", timedelta(seconds=-1)) is True
        assert leases.acquire(stored_invoice.id, "job-b", timedelta(minutes=10)) is True


class TestArtifactRepository:
    def test_latest(self, container, stored_invoice):
        def record(name: str, minutes_ago: int) -> ArtifactRecord:
            return ArtifactRecord(
                invoice_id=stored_invoice.id,
                file_name=name,
                file_path=f"/tmp/{name}",
                file_size=10,
                file_hash="abc",
                storage_type=StorageKind.LOCAL,
                generated_at=utcnow() - timedelta(minutes=minutes_ago),
            )

        assert container.artifacts.latest(stored_invoice.id) is None
        container.artifacts.add(record("new.pdf", 1))
        container.artifacts.add(record("old.pdf", 30))

        latest = container.artifacts.latest(stored_invoice.id)
        assert latest.file_name == "new.pdf"
        assert latest.storage_type is StorageKind.LOCAL


class TestSettingsProviders:
    def test_defaults_inserted_once(self, container):
        snapshot = container.settings_provider.get()
        assert snapshot.email_enabled is True
        assert snapshot.sms_enabled is False
        assert snapshot.auto_send_on_create is True

        again = container.settings_provider.ensure_defaults(company_name="Ignored Ltd")
        assert again.company_name == snapshot.company_name

    def test_save(self, container):
        container.settings_provider.save(DeliverySettings(company_name="Acme Ltd", sms_enabled=True))
        snapshot = container.settings_provider.get()
        assert snapshot.company_name == "Acme Ltd"
        assert snapshot.sms_enabled is True
        assert snapshot.company.name == "Acme Ltd"

    def test_preferences(self, container):
        prefs = container.preferences
        assert prefs.get("dana@example.com") is None

        created = prefs.upsert("Dana@Example.com", sms_opt_in=True)
        assert created.customer_email == "dana@example.com"
        assert created.sms_opt_in is True
        assert created.unsubscribe_token

        unsubscribed = prefs.unsubscribe(created.unsubscribe_token)
        assert unsubscribed.email_unsubscribed is True
        assert prefs.get("DANA@example.com").email_unsubscribed is True
        assert prefs.unsubscribe("unknown-token") is None


class TestLedgerMaintenanceService:
    def test_run_maintenance(self, container, stored_invoice, config):
        """Test abandoned in-flight attempts fail and expired leases are purged."""
        ledger = container.ledger
        stale = ledger.open_attempt(stored_invoice.id, Channel.EMAIL, "dana@example.com", "sendgrid", "api", None)
        fresh = ledger.open_attempt(stored_invoice.id, Channel.SMS, "+1", "twilio", "api", None)
        _backdate(container, stale.id, minutes=config.stale_attempt_minutes + 5)
        container.leases.acquire(stored_invoice.id, "crashed-job", timedelta(seconds=-1))

        result = LedgerMaintenanceService(ledger, container.leases, config).run_maintenance()

        assert result["status"] == "completed"
        assert result["stale_attempts"] == 1
        assert result["expired_leases"] == 1
        assert ledger.get(stale.id).status is AttemptStatus.FAILED
        assert ledger.get(stale.id).error_code == "stale_attempt"
        assert ledger.get(fresh.id).status is AttemptStatus.SENDING
        with container.session_factory() as session:
            assert session.get(DeliveryLeaseRow, stored_invoice.id) is None
