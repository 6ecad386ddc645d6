"""Delivery orchestrator: the five-stage deliver-invoice pipeline.

1. Load settings and customer preferences (progress 10)
2. Render and store the invoice document (25)
3. Mint the retrieval token and record the artifact (40)
4. Email dispatch; failure fails the job (70)
5. SMS dispatch; failure is logged and tolerated (100)

Render and storage failures degrade the run: messages go out without attachment or link.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import DeliveryError, DispatchError, StageResult, StorageError
from invoice_delivery.core.security import AccessTokenCodec, artifact_resource_id
from invoice_delivery.db.database import utcnow
from invoice_delivery.delivery.abstractions import IChannelDispatcher, MessageContent
from invoice_delivery.delivery.email_dispatcher import EmailDispatcher
from invoice_delivery.delivery.sms_dispatcher import SmsDispatcher
from invoice_delivery.models.delivery import (
    ChannelOutcome,
    ChannelResult,
    DeliveryOutcome,
    DeliveryPayload,
)
from invoice_delivery.models.invoice import ArtifactRecord, Channel, Invoice, SendStatus
from invoice_delivery.models.settings import CustomerPreferences, DeliverySettings
from invoice_delivery.queue.base import Job
from invoice_delivery.repositories import (
    ArtifactRepository,
    DeliveryLeaseStore,
    InvoiceRepository,
    PreferencesProvider,
    SendLedger,
    SettingsProvider,
)
from invoice_delivery.services.invoice_totals import check_consistency
from invoice_delivery.services.pdf_renderer import InvoicePdfRenderer
from invoice_delivery.services.storage_service import ArtifactStore, StoredArtifact
from invoice_delivery.utils.logger import logger

DispatcherFactory = Callable[[DeliverySettings], IChannelDispatcher]


@dataclass(frozen=True)
class PreparedArtifact:
    stored: StoredArtifact
    content: bytes


class DeliveryOrchestrator:
    """Runs one deliver-invoice job to a terminal outcome."""

    def __init__(
        self,
        invoices: InvoiceRepository,
        settings_provider: SettingsProvider,
        ledger: SendLedger,
        artifacts: ArtifactRepository,
        leases: DeliveryLeaseStore,
        store: ArtifactStore,
        token_codec: AccessTokenCodec,
        renderer: InvoicePdfRenderer | None = None,
        preferences: PreferencesProvider | None = None,
        email_dispatcher_factory: DispatcherFactory | None = None,
        sms_dispatcher_factory: DispatcherFactory | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.invoices = invoices
        self.settings_provider = settings_provider
        self.ledger = ledger
        self.artifacts = artifacts
        self.leases = leases
        self.store = store
        self.token_codec = token_codec
        self.renderer = renderer or InvoicePdfRenderer()
        self.preferences = preferences
        self.email_dispatcher_factory = email_dispatcher_factory or (
            lambda snapshot: EmailDispatcher.initialize(snapshot, self.config)
        )
        self.sms_dispatcher_factory = sms_dispatcher_factory or (
            lambda snapshot: SmsDispatcher.initialize(snapshot, self.config)
        )

    @property
    def idempotency_window(self) -> timedelta:
        return timedelta(minutes=self.config.idempotency_window_minutes)

    async def process_delivery_job(self, job: Job) -> DeliveryOutcome:
        """Deliver one invoice.

        Raises:
            DeliveryError: If email dispatch fails or the invoice cannot be loaded.
        """
        payload = DeliveryPayload.model_validate(job.payload)
        invoice = payload.invoice or self.invoices.get(payload.invoice_id)
        outcome = DeliveryOutcome(invoice_id=invoice.id)
        logger.info(
            f"Job {job.id}: delivering invoice {invoice.invoice_number} ({payload.trigger_type.value})"
        )

        # Stage 1
        snapshot = self.settings_provider.get()
        prefs = self._load_preferences(invoice.customer_email)
        if prefs is not None and prefs.email_unsubscribed:
            logger.warning(f"Customer {invoice.customer_email} has unsubscribed")
            outcome.skipped = True
            outcome.reason = "unsubscribed"
            await job.report_progress(100)
            return outcome
        await job.report_progress(10)

        # Stage 2
        stored = await self._prepare_artifact(invoice, snapshot, payload)
        await job.report_progress(25)

        # Stage 3
        invoice_link = None
        if stored.ok:
            invoice_link = self._record_artifact(invoice, snapshot, stored)
        if invoice_link is None:
            outcome.degraded = True
            error = stored.error or StorageError("Artifact record could not be saved")
            outcome.degraded_reason = f"{error.kind.value}: {error.message}"
            logger.warning(
                f"Invoice {invoice.invoice_number}: continuing without document "
                f"({outcome.degraded_reason})"
            )
        else:
            outcome.file_name = stored.value.stored.file_name
            outcome.artifact_hash = stored.value.stored.file_hash
        await job.report_progress(40)

        content = MessageContent(
            invoice=invoice,
            company=snapshot.company,
            invoice_link=invoice_link,
            unsubscribe_link=self._unsubscribe_link(prefs),
            artifact=stored.value.content if invoice_link else None,
            artifact_file_name=outcome.file_name,
        )

        holder = job.id
        lease_ttl = timedelta(seconds=self.config.delivery_lease_seconds)
        if not self.leases.acquire(invoice.id, holder, lease_ttl):
            outcome.skipped = True
            outcome.reason = "in_progress"
            await job.report_progress(100)
            return outcome

        try:
            # Stage 4
            if snapshot.email_enabled and invoice.customer_email:
                try:
                    outcome.channels[Channel.EMAIL] = await self._deliver_channel(
                        Channel.EMAIL, self.email_dispatcher_factory, snapshot,
                        invoice, invoice.customer_email, content, payload,
                    )
                except Exception:
                    self.invoices.update(invoice.id, send_status=SendStatus.FAILED)
                    raise
            await job.report_progress(70)

            # Stage 5
            if snapshot.sms_enabled and invoice.customer_phone and prefs is not None and prefs.sms_opt_in:
                try:
                    outcome.channels[Channel.SMS] = await self._deliver_channel(
                        Channel.SMS, self.sms_dispatcher_factory, snapshot,
                        invoice, invoice.customer_phone, content, payload,
                    )
                except Exception as e:
                    # SMS failures stay with the SMS channel
                    logger.error(
                        f"SMS delivery failed for invoice {invoice.invoice_number}: {e}",
                        exc_info=not isinstance(e, DeliveryError),
                    )
                    error = e if isinstance(e, DeliveryError) else DispatchError(str(e), code="unexpected")
                    outcome.channels[Channel.SMS] = ChannelOutcome(
                        status=ChannelResult.FAILED, error_kind=error.kind.value, error_code=error.code
                    )

            self.invoices.update(invoice.id, send_status=SendStatus.SENT)
        finally:
            self.leases.release(invoice.id, holder)

        await job.report_progress(100)
        logger.info(f"Job {job.id}: invoice {invoice.invoice_number} delivered")
        return outcome

    def _load_preferences(self, email: str | None) -> CustomerPreferences | None:
        if self.preferences is None or not email:
            return None
        try:
            return self.preferences.get(email)
        except SQLAlchemyError as e:
            logger.warning(f"Customer preferences unavailable for {email}: {e}")
            return None

    async def _prepare_artifact(
        self, invoice: Invoice, snapshot: DeliverySettings, payload: DeliveryPayload
    ) -> StageResult[PreparedArtifact]:
        try:
            if payload.artifact_content:
                content = payload.artifact_content
                file_name = payload.artifact_file_name or f"invoice-{invoice.invoice_number}.pdf"
            else:
                check_consistency(invoice)
                loop = asyncio.get_running_loop()
                document = await loop.run_in_executor(None, self.renderer.render, invoice, snapshot.company)
                content, file_name = document.content, document.file_name
            stored = await self.store.store(content, file_name)
        except DeliveryError as e:
            logger.error(f"Artifact stage failed for invoice {invoice.invoice_number}: {e}")
            return StageResult.failure(e)

        return StageResult.success(PreparedArtifact(stored=stored, content=content))

    def _record_artifact(
        self, invoice: Invoice, snapshot: DeliverySettings, stored: StageResult[PreparedArtifact]
    ) -> str | None:
        """Mint the retrieval token, persist the artifact record and return the customer link."""
        artifact = stored.value.stored
        resource_id = artifact_resource_id(invoice.id)
        token = self.token_codec.mint(resource_id, timedelta(days=snapshot.signed_url_expiry_days))
        try:
            self.artifacts.add(
                ArtifactRecord(
                    invoice_id=invoice.id,
                    file_name=artifact.file_name,
                    file_path=artifact.file_path,
                    retrieval_url=artifact.retrieval_url,
                    file_size=artifact.file_size,
                    file_hash=artifact.file_hash,
                    storage_type=artifact.storage_type,
                    access_token=token,
                    generated_at=utcnow(),
                )
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to record artifact for invoice {invoice.invoice_number}: {e}")
            return None
        return f"{self.config.app_url.rstrip('/')}{resource_id}?token={token}"

    def _unsubscribe_link(self, prefs: CustomerPreferences | None) -> str | None:
        if prefs is None or not prefs.unsubscribe_token:
            return None
        return f"{self.config.app_url.rstrip('/')}/api/v1/unsubscribe?token={prefs.unsubscribe_token}"

    async def _deliver_channel(
        self,
        channel: Channel,
        factory: DispatcherFactory,
        snapshot: DeliverySettings,
        invoice: Invoice,
        recipient: str,
        content: MessageContent,
        payload: DeliveryPayload,
    ) -> ChannelOutcome:
        provider = snapshot.email_provider if channel is Channel.EMAIL else snapshot.sms_provider
        try:
            previous = self.ledger.find_recent_success(invoice.id, channel, self.idempotency_window)
            if previous is None:
                entry = self.ledger.open_attempt(
                    invoice.id, channel, recipient, provider, payload.triggered_by, payload.trigger_type
                )
        except SQLAlchemyError as e:
            logger.error(f"Send ledger unavailable for invoice {invoice.invoice_number}: {e}")
            raise StorageError(f"Send ledger unavailable: {e}", code="ledger") from e

        if previous is not None:
            logger.info(
                f"Invoice {invoice.invoice_number}: {channel.value} already sent "
                f"(send log {previous.id}), skipping"
            )
            return ChannelOutcome(
                status=ChannelResult.DUPLICATE,
                send_log_id=previous.id,
                provider_message_id=previous.provider_message_id,
            )

        try:
            dispatcher = factory(snapshot)
            message = dispatcher.compose(recipient, content)
            receipt = await dispatcher.send(message)
        except DeliveryError as e:
            self.ledger.mark_failed(entry.id, e.message, e.code)
            raise
        except Exception as e:
            self.ledger.mark_failed(entry.id, str(e), "unexpected")
            raise DispatchError(f"{channel.value} dispatch failed: {e}", code="unexpected") from e

        sent_at = utcnow()
        try:
            self.ledger.mark_sent(entry.id, receipt)
            if channel is Channel.EMAIL:
                self.invoices.update(invoice.id, email_sent=True, email_sent_at=sent_at)
            else:
                self.invoices.update(invoice.id, sms_sent=True, sms_sent_at=sent_at)
        except SQLAlchemyError as e:
            logger.error(
                f"Invoice {invoice.invoice_number}: {channel.value} {receipt.provider_message_id} "
                f"was sent but could not be recorded: {e}"
            )
            raise StorageError(f"Failed to record {channel.value} send: {e}", code="ledger") from e
        return ChannelOutcome(
            status=ChannelResult.SENT,
            send_log_id=entry.id,
            provider_message_id=receipt.provider_message_id,
        )
