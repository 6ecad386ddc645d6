"""Email dispatcher: renders invoice email and sends it through the configured provider."""

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError, ValidationError
from invoice_delivery.delivery.abstractions import IChannelDispatcher, MessageContent
from invoice_delivery.delivery.templates import (
    DEFAULT_EMAIL_BODY_TEMPLATE,
    DEFAULT_EMAIL_SUBJECT_TEMPLATE,
    build_template_context,
)
from invoice_delivery.models.invoice import Channel, DispatchReceipt
from invoice_delivery.models.settings import DeliverySettings
from invoice_delivery.services.email_service import (
    EmailAttachment,
    EmailMessage,
    EmailProvider,
    EmailTransport,
    create_email_transport,
)
from invoice_delivery.utils.logger import logger
from invoice_delivery.utils.templating import Template, html_to_text
from invoice_delivery.utils.validators import validate_email


class EmailDispatcher(IChannelDispatcher):
    """Sends the invoice by email, attaching the document when one was stored."""

    channel = Channel.EMAIL

    def __init__(
        self,
        transport: EmailTransport,
        from_email: str,
        from_name: str | None = None,
        reply_to: str | None = None,
        subject_template: str | None = None,
        body_template: str | None = None,
    ):
        self._transport = transport
        self.from_email = from_email
        self.from_name = from_name
        self.reply_to = reply_to
        # Parsed up front so a broken template is a configuration error, not a send failure
        self._subject = Template(subject_template or DEFAULT_EMAIL_SUBJECT_TEMPLATE)
        self._body = Template(body_template or DEFAULT_EMAIL_BODY_TEMPLATE)

    @classmethod
    def initialize(cls, snapshot: DeliverySettings, config: Settings | None = None) -> "EmailDispatcher":
        """Bind the provider selected in ``snapshot`` to its credentials.

        Raises:
            ConfigurationError: If the provider is unknown or its credentials are missing.
        """
        config = config or settings
        try:
            provider = EmailProvider((snapshot.email_provider or "").lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown email provider: {snapshot.email_provider}", code="unknown_provider"
            ) from e

        transport = create_email_transport(provider, config)
        logger.info(f"Email dispatcher initialized with provider {provider.value}")
        return cls(
            transport,
            from_email=snapshot.email_from or config.email_from,
            from_name=snapshot.email_from_name or snapshot.company_name or config.email_from_name,
            reply_to=snapshot.email_reply_to or config.email_reply_to,
            subject_template=snapshot.email_subject_template,
            body_template=snapshot.email_body_template,
        )

    @property
    def provider_name(self) -> str:
        return self._transport.provider.value

    def compose(self, recipient: str, content: MessageContent) -> EmailMessage:
        address = (recipient or "").strip()
        if not validate_email(address):
            raise ValidationError(f"Invalid email address: {recipient}", code="invalid_email")

        context = build_template_context(
            content.invoice,
            content.company,
            invoice_link=content.invoice_link,
            unsubscribe_link=content.unsubscribe_link,
        )
        html_body = self._body.render(context, escape_html=True)
        attachment = None
        if content.artifact:
            attachment = EmailAttachment(
                filename=content.artifact_file_name or f"invoice-{content.invoice.invoice_number}.pdf",
                content=content.artifact,
            )

        return EmailMessage(
            to_email=address,
            subject=" ".join(self._subject.render(context).split()),
            html_body=html_body,
            text_body=html_to_text(html_body),
            from_email=self.from_email,
            from_name=self.from_name,
            reply_to=self.reply_to,
            attachment=attachment,
        )

    async def send(self, message: EmailMessage) -> DispatchReceipt:
        logger.info(f"Sending email to {message.to_email} via {self.provider_name}")
        receipt = await self._transport.send(message)
        logger.info(f"Email accepted by {self.provider_name}: {receipt.provider_message_id}")
        return receipt
