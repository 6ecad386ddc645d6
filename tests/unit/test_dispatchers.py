"""Unit tests for the email and SMS dispatchers."""

import pytest

from invoice_delivery.core.errors import ConfigurationError, ValidationError
from invoice_delivery.delivery.abstractions import MessageContent
from invoice_delivery.delivery.email_dispatcher import EmailDispatcher
from invoice_delivery.delivery.sms_dispatcher import SmsDispatcher
from invoice_delivery.models.invoice import Channel, CompanyInfo
from invoice_delivery.models.settings import DeliverySettings
from invoice_delivery.services.email_service import SendGridTransport, SmtpTransport
from invoice_delivery.services.sms_service import TwilioTransport

LINK = "http://testserver/api/v1/invoices/1/pdf?token=abc.123.sig"


@pytest.fixture
def content(invoice) -> MessageContent:
    return MessageContent(
        invoice=invoice,
        company=CompanyInfo(name="Acme & Sons", email="billing@acme.test"),
        invoice_link=LINK,
        unsubscribe_link="http://testserver/api/v1/unsubscribe?token=u1",
        artifact=b"%PDF-1.7",
        artifact_file_name="invoice-INV-1001.pdf",
    )


class TestEmailDispatcher:
    """Test cases for EmailDispatcher."""

    def test_compose(self, content, email_transport):
        dispatcher = EmailDispatcher(email_transport, from_email="billing@acme.test", from_name="Acme")

        message = dispatcher.compose(" dana@example.com ", content)

        assert dispatcher.channel is Channel.EMAIL
        assert message.to_email == "dana@example.com"
        assert message.subject == "Invoice INV-1001 from Acme & Sons"
        assert "Acme &amp; Sons" in message.html_body
        assert f'href="{LINK}"' in message.html_body
        assert "Unsubscribe" in message.html_body
        assert "Acme & Sons" in message.text_body
        assert message.attachment.filename == "invoice-INV-1001.pdf"
        assert message.attachment.content == b"%PDF-1.7"

    def test_compose_without_document(self, content, email_transport):
        """Test a degraded run sends the email without attachment or link."""
        dispatcher = EmailDispatcher(email_transport, from_email="billing@acme.test")
        degraded = content.model_copy(update={"artifact": None, "invoice_link": None, "artifact_file_name": None})

        message = dispatcher.compose("dana@example.com", degraded)

        assert message.attachment is None
        assert "View Invoice Online" not in message.html_body

    def test_custom_templates(self, content, email_transport):
        dispatcher = EmailDispatcher(
            email_transport,
            from_email="billing@acme.test",
            subject_template="  Your {{company_name}}\n invoice  ",
            body_template="<p>Pay {{amount_due}}</p>",
        )

        message = dispatcher.compose("dana@example.com", content)

        assert message.subject == "Your Acme & Sons invoice"
        assert message.html_body == "<p>Pay $120.00</p>"
        assert message.text_body == "Pay $120.00"

    def test_invalid_recipient(self, content, email_transport):
        dispatcher = EmailDispatcher(email_transport, from_email="billing@acme.test")
        with pytest.raises(ValidationError) as exc_info:
            dispatcher.compose("not-an-email", content)
        assert exc_info.value.code == "invalid_email"

    def test_broken_template_rejected_at_construction(self, email_transport):
        with pytest.raises(ConfigurationError):
            EmailDispatcher(email_transport, from_email="a@b.co", body_template="{{#if x}}")

    async def test_send(self, content, email_transport):
        dispatcher = EmailDispatcher(email_transport, from_email="billing@acme.test")

        receipt = await dispatcher.send(dispatcher.compose("dana@example.com", content))

        assert receipt.provider_message_id == "email-1"
        assert len(email_transport.sent) == 1
        assert dispatcher.provider_name == "sendgrid"

    def test_initialize_from_snapshot(self, config):
        snapshot = DeliverySettings(company_name="Acme Ltd", email_provider="SendGrid", email_from="invoices@acme.test")

        dispatcher = EmailDispatcher.initialize(snapshot, config)

        assert isinstance(dispatcher._transport, SendGridTransport)
        assert dispatcher.from_email == "invoices@acme.test"
        assert dispatcher.from_name == "Acme Ltd"

    def test_initialize_smtp(self, config):
        config = config.model_copy(update={"smtp_host": "smtp.acme.test"})
        dispatcher = EmailDispatcher.initialize(DeliverySettings(email_provider="smtp"), config)
        assert isinstance(dispatcher._transport, SmtpTransport)
        assert dispatcher.from_email == config.email_from

    def test_initialize_unknown_provider(self, config):
        with pytest.raises(ConfigurationError) as exc_info:
            EmailDispatcher.initialize(DeliverySettings(email_provider="postmark"), config)
        assert exc_info.value.code == "unknown_provider"

    def test_initialize_missing_credentials(self, config):
        config = config.model_copy(update={"sendgrid_api_key": None})
        with pytest.raises(ConfigurationError):
            EmailDispatcher.initialize(DeliverySettings(email_provider="sendgrid"), config)


class TestSmsDispatcher:
    """Test cases for SmsDispatcher."""

    def test_compose(self, content, sms_transport):
        dispatcher = SmsDispatcher(sms_transport)

        message = dispatcher.compose("(415) 555-0100", content)

        assert dispatcher.channel is Channel.SMS
        assert message.to_phone == "+14155550100"
        assert message.body == f"Hi Dana Levi, invoice INV-1001 ($120.00) is ready. View: {LINK}"

    def test_compose_without_link(self, content, sms_transport):
        dispatcher = SmsDispatcher(sms_transport)
        message = dispatcher.compose("+14155550100", content.model_copy(update={"invoice_link": None}))
        assert message.body == "Hi Dana Levi, invoice INV-1001 ($120.00) is ready."

    def test_malformed_number(self, content, sms_transport):
        """Test a malformed number fails before any provider call."""
        dispatcher = SmsDispatcher(sms_transport)

        with pytest.raises(ValidationError) as exc_info:
            dispatcher.compose("call me", content)
        assert exc_info.value.code == "invalid_phone"
        assert sms_transport.sent == []

    def test_default_country_code(self, content, sms_transport):
        dispatcher = SmsDispatcher(sms_transport, default_country_code="972")
        assert dispatcher.compose("050-123-4567", content).to_phone == "+972501234567"

    def test_initialize_uses_settings_sender(self, config):
        snapshot = DeliverySettings(sms_enabled=True, sms_provider="twilio", sms_from="+15550009999")

        dispatcher = SmsDispatcher.initialize(snapshot, config)

        assert isinstance(dispatcher._transport, TwilioTransport)
        assert dispatcher._transport.from_number == "+15550009999"
        assert dispatcher.provider_name == "twilio"

    def test_initialize_unknown_provider(self, config):
        with pytest.raises(ConfigurationError) as exc_info:
            SmsDispatcher.initialize(DeliverySettings(sms_provider="pigeon"), config)
        assert exc_info.value.code == "unknown_provider"
