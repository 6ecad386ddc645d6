"""Unit tests for email transports."""

import base64
import smtplib
from email import message_from_bytes
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from invoice_delivery.core.errors import ConfigurationError, DispatchError
from invoice_delivery.services.email_service import (
    EmailAttachment,
    EmailMessage,
    EmailProvider,
    MailgunTransport,
    SendGridTransport,
    SesTransport,
    SmtpTransport,
    _ascii_fallback_filename,
    build_mime_message,
    create_email_transport,
)


@pytest.fixture
def message() -> EmailMessage:
    return EmailMessage(
        to_email="dana@example.com",
        subject="Invoice INV-1001 from Acme Ltd",
        html_body="<p>Hello</p>",
        text_body="Hello",
        from_email="billing@acme.test",
        from_name="Acme Ltd",
        reply_to="support@acme.test",
        attachment=EmailAttachment(filename="invoice-INV-1001.pdf", content=b"%PDF-1.7 test"),
    )


def _response(status_code: int = 202, json_body=None, headers=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.raise_for_status = MagicMock()
    response.json.return_value = json_body or {}
    return response


class TestSendGridTransport:
    """Test cases for SendGridTransport."""

    @patch("invoice_delivery.services.email_service.httpx.AsyncClient")
    async def test_send_success(self, mock_client, message):
        """Test JSON payload with the base64 attachment and the message id header."""
        post = AsyncMock(return_value=_response(headers={"X-Message-Id": "sg-123"}))
        mock_client.return_value.__aenter__.return_value.post = post

        transport = SendGridTransport("SG.key", "https://sendgrid.test/v3/mail/send", timeout=5)
        receipt = await transport.send(message)

        assert receipt.provider == "sendgrid"
        assert receipt.provider_message_id == "sg-123"
        assert receipt.raw_response == {"status_code": 202, "message_id": "sg-123"}

        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        assert url == "https://sendgrid.test/v3/mail/send"
        assert headers["Authorization"] == "Bearer SG.key"
        assert payload["personalizations"] == [{"to": [{"email": "dana@example.com"}]}]
        assert payload["from"] == {"email": "billing@acme.test", "name": "Acme Ltd"}
        assert payload["reply_to"] == {"email": "support@acme.test"}
        assert payload["tracking_settings"]["open_tracking"] == {"enable": False}
        attachment = payload["attachments"][0]
        assert attachment["filename"] == "invoice-INV-1001.pdf"
        assert base64.b64decode(attachment["content"]) == b"%PDF-1.7 test"

    @patch("invoice_delivery.services.email_service.httpx.AsyncClient")
    async def test_send_http_error(self, mock_client, message):
        """Test provider rejection becomes a DispatchError tagged with the status."""
        request = httpx.Request("POST", "https://sendgrid.test")
        rejected = httpx.Response(401, text="unauthorized", request=request)
        response = _response(status_code=401)
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "401", request=request, response=rejected
        )
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=response)

        transport = SendGridTransport("SG.key", "https://sendgrid.test", timeout=5)
        with pytest.raises(DispatchError) as exc_info:
            await transport.send(message)
        assert exc_info.value.code == "http_401"
        assert exc_info.value.retryable is True

    @patch("invoice_delivery.services.email_service.httpx.AsyncClient")
    async def test_send_network_error(self, mock_client, message):
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(
            side_effect=httpx.ConnectError("connection refused")
        )

        transport = SendGridTransport("SG.key", "https://sendgrid.test", timeout=5)
        with pytest.raises(DispatchError) as exc_info:
            await transport.send(message)
        assert exc_info.value.code == "network"


class TestMailgunTransport:
    @patch("invoice_delivery.services.email_service.httpx.AsyncClient")
    async def test_send_success(self, mock_client, message):
        post = AsyncMock(return_value=_response(200, json_body={"id": "<mg-1@acme.test>", "message": "Queued"}))
        mock_client.return_value.__aenter__.return_value.post = post

        transport = MailgunTransport("key-1", "mg.acme.test", "api.eu.mailgun.net", timeout=5)
        receipt = await transport.send(message)

        assert receipt.provider_message_id == "<mg-1@acme.test>"
        assert post.call_args.args[0] == "https://api.eu.mailgun.net/v3/mg.acme.test/messages"
        assert post.call_args.kwargs["auth"] == ("api", "key-1")
        assert post.call_args.kwargs["data"]["h:Reply-To"] == "support@acme.test"
        name, (filename, content, content_type) = post.call_args.kwargs["files"][0]
        assert name == "attachment"
        assert filename == "invoice-INV-1001.pdf"
        assert content_type == "application/pdf"


class TestSesTransport:
    async def test_send_raw_email(self, message):
        """Test SES receives the raw MIME message including the attachment."""
        ses_client = MagicMock()
        ses_client.send_raw_email.return_value = {"MessageId": "ses-1"}

        receipt = await SesTransport(ses_client).send(message)

        assert receipt.provider == "ses"
        assert receipt.provider_message_id == "ses-1"
        kwargs = ses_client.send_raw_email.call_args.kwargs
        assert kwargs["Destinations"] == ["dana@example.com"]
        raw = message_from_bytes(kwargs["RawMessage"]["Data"])
        assert raw["Subject"] == "Invoice INV-1001 from Acme Ltd"
        assert raw.get_content_type() == "multipart/mixed"
        assert b"invoice-INV-1001.pdf" in kwargs["RawMessage"]["Data"]

    async def test_client_error(self, message):
        ses_client = MagicMock()
        ses_client.send_raw_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified"}},
            "SendRawEmail",
        )

        with pytest.raises(DispatchError) as exc_info:
            await SesTransport(ses_client).send(message)
        assert exc_info.value.code == "ses_error"


class TestSmtpTransport:
    """Test cases for SmtpTransport."""

    @patch("invoice_delivery.services.email_service.smtplib.SMTP")
    async def test_send_starttls(self, mock_smtp, message):
        mock_server = MagicMock()
        mock_smtp.return_value = mock_server

        transport = SmtpTransport("smtp.test.com", 587, "user", "pass", use_tls=True, timeout=10)
        receipt = await transport.send(message)

        mock_smtp.assert_called_once_with("smtp.test.com", 587, timeout=10)
        mock_server.starttls.assert_called_once()
        mock_server.login.assert_called_once_with("user", "pass")
        mock_server.send_message.assert_called_once()
        mock_server.quit.assert_called_once()
        sent = mock_server.send_message.call_args.args[0]
        assert sent["Message-ID"] == receipt.provider_message_id
        assert receipt.provider_message_id.endswith("@acme.test>")

    @patch("invoice_delivery.services.email_service.smtplib.SMTP_SSL")
    async def test_send_implicit_tls(self, mock_smtp_ssl, message):
        mock_server = MagicMock()
        mock_smtp_ssl.return_value = mock_server

        transport = SmtpTransport("smtp.test.com", 465, None, None, use_tls=False, timeout=10)
        await transport.send(message)

        mock_server.login.assert_not_called()
        mock_server.send_message.assert_called_once()

    @patch("invoice_delivery.services.email_service.smtplib.SMTP")
    async def test_authentication_failure(self, mock_smtp, message):
        """Test bad credentials surface as a non-retryable configuration error."""
        mock_server = MagicMock()
        mock_server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        mock_smtp.return_value = mock_server

        transport = SmtpTransport("smtp.test.com", 587, "user", "wrong", use_tls=True, timeout=10)
        with pytest.raises(ConfigurationError) as exc_info:
            await transport.send(message)
        assert exc_info.value.code == "smtp_auth"
        assert exc_info.value.retryable is False
        mock_server.quit.assert_called_once()

    @patch("invoice_delivery.services.email_service.smtplib.SMTP")
    async def test_connection_failure(self, mock_smtp, message):
        mock_smtp.side_effect = ConnectionRefusedError("refused")

        transport = SmtpTransport("smtp.test.com", 587, None, None, use_tls=True, timeout=10)
        with pytest.raises(DispatchError) as exc_info:
            await transport.send(message)
        assert exc_info.value.code == "network"


class TestMimeMessage:
    def test_unicode_attachment_name(self, message):
        """Test non-ASCII names get an ASCII fallback plus an RFC 5987 parameter."""
        message.attachment = EmailAttachment(filename="חשבונית-1001.pdf", content=b"%PDF")
        mime = build_mime_message(message)

        disposition = mime.get_payload()[-1]["Content-Disposition"]
        assert "filename*=UTF-8''" in disposition
        assert 'filename="' in disposition

    def test_ascii_fallback_filename(self):
        assert _ascii_fallback_filename("invoice 1001.pdf") == "invoice_1001.pdf"
        assert _ascii_fallback_filename("חשבונית.pdf") == "document.pdf"


class TestCreateEmailTransport:
    def test_sendgrid(self, config):
        transport = create_email_transport(EmailProvider.SENDGRID, config)
        assert isinstance(transport, SendGridTransport)
        assert transport.api_key == "SG.test"

    @pytest.mark.parametrize(
        "provider,missing",
        [
            (EmailProvider.SENDGRID, {"sendgrid_api_key": None}),
            (EmailProvider.MAILGUN, {"mailgun_api_key": "key-1", "mailgun_domain": None}),
            (EmailProvider.SES, {"ses_access_key": None}),
            (EmailProvider.SMTP, {"smtp_host": " "}),
        ],
    )
    def test_missing_credentials(self, config, provider, missing):
        """Test each provider refuses to initialize without its credentials."""
        with pytest.raises(ConfigurationError):
            create_email_transport(provider, config.model_copy(update=missing))

    def test_smtp(self, config):
        transport = create_email_transport(
            EmailProvider.SMTP, config.model_copy(update={"smtp_host": "smtp.test.com"})
        )
        assert isinstance(transport, SmtpTransport)
        assert transport.port == 587
