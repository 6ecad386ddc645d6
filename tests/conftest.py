"""Shared test fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from invoice_delivery.bootstrap import ServiceContainer, build_container
from invoice_delivery.config import Settings
from invoice_delivery.core.errors import DeliveryError
from invoice_delivery.delivery.email_dispatcher import EmailDispatcher
from invoice_delivery.delivery.sms_dispatcher import SmsDispatcher
from invoice_delivery.models.invoice import DispatchReceipt, Invoice, InvoiceCreate, LineItem
from invoice_delivery.models.settings import DeliverySettings
from invoice_delivery.queue.immediate import ImmediateJobQueue
from invoice_delivery.services.email_service import EmailMessage, EmailProvider, EmailTransport
from invoice_delivery.services.sms_service import SmsMessage, SmsProvider, SmsTransport


class RecordingEmailTransport(EmailTransport):
    """Keeps sent messages in memory; raises ``error`` instead when set."""

    provider = EmailProvider.SENDGRID

    def __init__(self, error: DeliveryError | None = None):
        self.error = error
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        message_id = f"email-{len(self.sent)}"
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=message_id,
            raw_response={"message_id": message_id},
        )


class RecordingSmsTransport(SmsTransport):
    provider = SmsProvider.TWILIO

    def __init__(self, error: DeliveryError | None = None):
        super().__init__(timeout=1)
        self.error = error
        self.sent: list[SmsMessage] = []

    async def send(self, message: SmsMessage) -> DispatchReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return DispatchReceipt(provider=self.provider.value, provider_message_id=f"SM{len(self.sent)}")


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        storage_type="local",
        storage_local_path=str(tmp_path / "artifacts"),
        queue_backend="immediate",
        app_url="http://testserver",
        signed_url_secret="test-secret",
        sendgrid_api_key="SG.test",
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_phone_number="+15005550006",
        idempotency_window_minutes=60,
    )


@pytest.fixture
def email_transport() -> RecordingEmailTransport:
    return RecordingEmailTransport()


@pytest.fixture
def sms_transport() -> RecordingSmsTransport:
    return RecordingSmsTransport()


@pytest.fixture
def container(config, email_transport, sms_transport) -> ServiceContainer:
    """Service graph on a temporary SQLite database; providers are replaced by recorders."""
    services = build_container(config, queue=ImmediateJobQueue())

    def email_factory(snapshot: DeliverySettings) -> EmailDispatcher:
        return EmailDispatcher(
            email_transport,
            from_email=snapshot.email_from or config.email_from,
            from_name=snapshot.company_name,
            subject_template=snapshot.email_subject_template,
            body_template=snapshot.email_body_template,
        )

    def sms_factory(snapshot: DeliverySettings) -> SmsDispatcher:
        return SmsDispatcher(sms_transport, template=snapshot.sms_template)

    services.orchestrator.email_dispatcher_factory = email_factory
    services.orchestrator.sms_dispatcher_factory = sms_factory
    yield services
    services.engine.dispose()


@pytest.fixture
def line_items() -> list[LineItem]:
    return [LineItem(description="Consulting", quantity=Decimal("1"), unit_price=Decimal("120.00"))]


@pytest.fixture
def invoice_data(line_items) -> InvoiceCreate:
    return InvoiceCreate(
        invoice_number="INV-1001",
        customer_name="Dana Levi",
        customer_email="dana@example.com",
        items=line_items,
        grand_total=Decimal("120.00"),
        currency="USD",
        invoice_date=date(2024, 1, 15),
        due_date=date(2024, 2, 14),
    )


@pytest.fixture
def invoice(line_items) -> Invoice:
    return Invoice(
        id=1,
        invoice_number="INV-1001",
        customer_name="Dana Levi",
        customer_email="dana@example.com",
        customer_phone="+1 415 555 0100",
        items=line_items,
        grand_total=Decimal("120.00"),
        currency="USD",
        invoice_date=date(2024, 1, 15),
        due_date=date(2024, 2, 14),
    )
