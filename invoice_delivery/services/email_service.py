"""Email transports: SendGrid, Mailgun, Amazon SES and SMTP."""

import asyncio
import base64
import re
import smtplib
from abc import ABC, abstractmethod
from email import policy
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from enum import Enum
from typing import Any, assert_never
from urllib.parse import quote

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError, DispatchError
from invoice_delivery.models.invoice import DispatchReceipt
from invoice_delivery.utils.logger import logger

_RFC5987_SAFE = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"


class EmailProvider(str, Enum):
    """Supported email providers."""

    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    SES = "ses"
    SMTP = "smtp"


class EmailAttachment(BaseModel):
    """File attached to an outgoing email."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"


class EmailMessage(BaseModel):
    """Rendered, provider-neutral email."""

    to_email: str
    subject: str
    html_body: str
    text_body: str
    from_email: str
    from_name: str | None = None
    reply_to: str | None = None
    attachment: EmailAttachment | None = None

    @property
    def sender(self) -> str:
        return formataddr((self.from_name or "", self.from_email))


def _ascii_fallback_filename(filename: str) -> str:
    """ASCII-only filename for the legacy ``filename=`` parameter.

    The RFC 5987 ``filename*=`` parameter carries the real Unicode name.
    """
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", filename).strip()
    base_match = re.match(r"^(.*)\.([a-zA-Z0-9]+)$", safe)
    if base_match:
        base, ext = base_match.groups()
    else:
        base, ext = safe, ""

    if not base or all(c in "_." for c in base):
        return f"document.{ext}" if ext else "document.pdf"

    return safe if ext else f"{safe}.pdf"


def _content_disposition(filename: str) -> str:
    """``attachment; filename="ascii.pdf"; filename*=UTF-8''encoded.pdf`` per RFC 6266."""
    encoded_name = quote(filename.encode("utf-8"), safe=_RFC5987_SAFE)
    return f"attachment; filename=\"{_ascii_fallback_filename(filename)}\"; filename*=UTF-8''{encoded_name}"


def build_mime_message(message: EmailMessage, message_id: str | None = None) -> MIMEMultipart:
    """Assemble a multipart/mixed MIME message with text and HTML alternatives."""
    msg = MIMEMultipart(policy=policy.SMTP)
    msg["From"] = message.sender
    msg["To"] = message.to_email
    msg["Subject"] = message.subject
    if message.reply_to:
        msg["Reply-To"] = message.reply_to
    if message_id:
        msg["Message-ID"] = message_id

    alt = MIMEMultipart("alternative", policy=policy.SMTP)
    alt.attach(MIMEText(message.text_body, "plain", "utf-8"))
    alt.attach(MIMEText(message.html_body, "html", "utf-8"))
    msg.attach(alt)

    if message.attachment:
        _, sub_type = message.attachment.content_type.split("/", 1)
        attachment = MIMEApplication(message.attachment.content, _subtype=sub_type)
        attachment["Content-Disposition"] = _content_disposition(message.attachment.filename)
        msg.attach(attachment)
    return msg


def _http_error(provider: EmailProvider, error: httpx.HTTPError) -> DispatchError:
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        detail = error.response.text[:500]
        logger.error(f"{provider.value} rejected email: status {status}: {detail}")
        return DispatchError(f"{provider.value} returned status {status}: {detail}", code=f"http_{status}")
    logger.error(f"{provider.value} request failed: {error}")
    return DispatchError(f"{provider.value} request failed: {error}", code="network")


class EmailTransport(ABC):
    """One upstream email capability."""

    provider: EmailProvider

    @abstractmethod
    async def send(self, message: EmailMessage) -> DispatchReceipt:
        """Transmit ``message`` and return the provider's receipt.

        Raises:
            DispatchError: If the provider fails or rejects the message.
        """


class SendGridTransport(EmailTransport):
    provider = EmailProvider.SENDGRID

    def __init__(self, api_key: str, api_url: str, timeout: float, tracking: bool = False):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.tracking = tracking

    def _payload(self, message: EmailMessage) -> dict[str, Any]:
        sender: dict[str, str] = {"email": message.from_email}
        if message.from_name:
            sender["name"] = message.from_name
        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": message.to_email}]}],
            "from": sender,
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text_body},
                {"type": "text/html", "value": message.html_body},
            ],
            "tracking_settings": {
                "click_tracking": {"enable": self.tracking},
                "open_tracking": {"enable": self.tracking},
            },
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        if message.attachment:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(message.attachment.content).decode("ascii"),
                    "filename": message.attachment.filename,
                    "type": message.attachment.content_type,
                    "disposition": "attachment",
                }
            ]
        return payload

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, json=self._payload(message), headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise _http_error(self.provider, e) from e

        message_id = response.headers.get("X-Message-Id")
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=message_id,
            raw_response={"status_code": response.status_code, "message_id": message_id},
        )


class MailgunTransport(EmailTransport):
    provider = EmailProvider.MAILGUN

    def __init__(self, api_key: str, domain: str, host: str, timeout: float):
        self.api_key = api_key
        self.api_url = f"https://{host}/v3/{domain}/messages"
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        data = {
            "from": message.sender,
            "to": message.to_email,
            "subject": message.subject,
            "text": message.text_body,
            "html": message.html_body,
        }
        if message.reply_to:
            data["h:Reply-To"] = message.reply_to
        files = None
        if message.attachment:
            files = [
                (
                    "attachment",
                    (
                        message.attachment.filename,
                        message.attachment.content,
                        message.attachment.content_type,
                    ),
                )
            ]

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url, data=data, files=files, auth=("api", self.api_key)
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise _http_error(self.provider, e) from e

        body = response.json()
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=body.get("id"),
            raw_response=body,
        )


class SesTransport(EmailTransport):
    provider = EmailProvider.SES

    def __init__(self, ses_client):
        self.ses_client = ses_client

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        raw = build_mime_message(message).as_bytes()
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.ses_client.send_raw_email(
                    Source=message.sender,
                    Destinations=[message.to_email],
                    RawMessage={"Data": raw},
                ),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SES send failed: {e}")
            raise DispatchError(f"SES send failed: {e}", code="ses_error") from e

        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=response.get("MessageId"),
            raw_response={"MessageId": response.get("MessageId")},
        )


class SmtpTransport(EmailTransport):
    provider = EmailProvider.SMTP

    def __init__(
        self,
        host: str,
        port: int,
        user: str | None,
        password: str | None,
        use_tls: bool,
        timeout: float,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        domain = message.from_email.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        msg = build_mime_message(message, message_id=message_id)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_smtp_sync, msg)
        logger.info(f"Email sent via SMTP to {message.to_email}")
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=message_id,
            raw_response={"host": self.host, "message_id": message_id},
        )

    def _send_smtp_sync(self, msg: MIMEMultipart) -> None:
        try:
            if self.use_tls:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
                server.starttls()
            else:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)

            try:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
            finally:
                server.quit()
        except smtplib.SMTPAuthenticationError as e:
            raise ConfigurationError(
                "SMTP authentication failed. Check SMTP_USER and SMTP_PASSWORD", code="smtp_auth"
            ) from e
        except smtplib.SMTPException as e:
            raise DispatchError(f"SMTP error: {e}", code="smtp_error") from e
        except OSError as e:
            raise DispatchError(
                f"SMTP connection failed to {self.host}:{self.port}: {e}", code="network"
            ) from e


def create_email_transport(provider: EmailProvider, config: Settings | None = None) -> EmailTransport:
    """Bind ``provider`` to its credentials.

    Raises:
        ConfigurationError: If the provider's credentials are not configured.
    """
    config = config or settings
    timeout = config.provider_timeout_seconds
    match provider:
        case EmailProvider.SENDGRID:
            if not config.sendgrid_api_key:
                raise ConfigurationError("SendGrid selected but SENDGRID_API_KEY is not set")
            return SendGridTransport(
                config.sendgrid_api_key, config.sendgrid_api_url, timeout, config.email_tracking
            )
        case EmailProvider.MAILGUN:
            if not config.mailgun_api_key or not config.mailgun_domain:
                raise ConfigurationError(
                    "Mailgun selected but MAILGUN_API_KEY or MAILGUN_DOMAIN is not set"
                )
            return MailgunTransport(
                config.mailgun_api_key, config.mailgun_domain, config.mailgun_host, timeout
            )
        case EmailProvider.SES:
            if not config.ses_access_key or not config.ses_secret_key:
                raise ConfigurationError("SES selected but SES_ACCESS_KEY or SES_SECRET_KEY is not set")
            client = boto3.client(
                "ses",
                region_name=config.ses_region,
                aws_access_key_id=config.ses_access_key,
                aws_secret_access_key=config.ses_secret_key,
                config=Config(connect_timeout=timeout, read_timeout=timeout),
            )
            return SesTransport(client)
        case EmailProvider.SMTP:
            if not config.smtp_host or not config.smtp_host.strip():
                raise ConfigurationError("SMTP selected but SMTP_HOST is not set")
            return SmtpTransport(
                config.smtp_host,
                config.smtp_port,
                config.smtp_user,
                config.smtp_password,
                config.smtp_use_tls,
                timeout,
            )
        case _:
            assert_never(provider)
