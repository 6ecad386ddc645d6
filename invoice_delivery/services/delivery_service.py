"""Operations the HTTP layer needs: create, send, status and document retrieval."""

from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import AccessDeniedError, InvoiceNotFoundError
from invoice_delivery.core.security import AccessTokenCodec, artifact_resource_id
from invoice_delivery.models.delivery import DELIVER_INVOICE, DeliveryPayload
from invoice_delivery.models.invoice import (
    Channel,
    Invoice,
    InvoiceCreate,
    SendLogEntry,
    SendStatus,
    StorageKind,
    TriggerType,
)
from invoice_delivery.queue.base import Job, JobQueue
from invoice_delivery.repositories import (
    ArtifactRepository,
    InvoiceRepository,
    PreferencesProvider,
    SendLedger,
    SettingsProvider,
)
from invoice_delivery.services.invoice_totals import check_consistency
from invoice_delivery.services.storage_service import ArtifactStore, LocalArtifactStore
from invoice_delivery.utils.logger import logger


class CreateInvoiceResult(BaseModel):
    invoice: Invoice
    job: Optional[Job] = None


class SendRequestResult(BaseModel):
    """Outcome of a send request: either a queued job or the prior send it duplicates."""

    invoice_id: int
    queued: bool
    duplicate: bool = False
    message: str
    job: Optional[Job] = None
    previous_send: Optional[SendLogEntry] = None


class InvoiceStatusReport(BaseModel):
    invoice_id: int
    invoice_number: str
    send_status: SendStatus
    email_sent: bool
    email_sent_at: Optional[datetime] = None
    sms_sent: bool
    sms_sent_at: Optional[datetime] = None
    logs: List[SendLogEntry]


class ArtifactAccess(BaseModel):
    """Bytes for local artifacts, a fresh presigned URL for remote ones."""

    file_name: str
    content: Optional[bytes] = None
    redirect_url: Optional[str] = None


class DeliveryService:
    """API-boundary service; the only place jobs are enqueued."""

    def __init__(
        self,
        invoices: InvoiceRepository,
        settings_provider: SettingsProvider,
        ledger: SendLedger,
        artifacts: ArtifactRepository,
        store: ArtifactStore,
        token_codec: AccessTokenCodec,
        queue: JobQueue,
        preferences: PreferencesProvider | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.invoices = invoices
        self.settings_provider = settings_provider
        self.ledger = ledger
        self.artifacts = artifacts
        self.store = store
        self.token_codec = token_codec
        self.queue = queue
        self.preferences = preferences

    async def create_invoice(self, data: InvoiceCreate, triggered_by: str = "api") -> CreateInvoiceResult:
        """Persist the invoice and enqueue an automatic delivery when auto-send is on."""
        invoice = self.invoices.create(data)
        check_consistency(invoice)

        snapshot = self.settings_provider.get()
        if not snapshot.auto_send_on_create:
            logger.info(f"Auto-send disabled, invoice {invoice.invoice_number} left pending")
            return CreateInvoiceResult(invoice=invoice)

        job = await self._enqueue(invoice, triggered_by, TriggerType.AUTO)
        return CreateInvoiceResult(invoice=self.invoices.get(invoice.id), job=job)

    async def request_send(self, invoice_id: int, triggered_by: str = "api") -> SendRequestResult:
        """Enqueue a manual delivery unless email already went out within the lookback window."""
        invoice = self.invoices.get(invoice_id)
        window = timedelta(minutes=self.config.idempotency_window_minutes)
        previous = self.ledger.find_recent_success(invoice.id, Channel.EMAIL, window)
        if previous is not None:
            logger.info(f"Invoice {invoice.invoice_number} was emailed at {previous.created_at}, not resending")
            return SendRequestResult(
                invoice_id=invoice.id,
                queued=False,
                duplicate=True,
                message="Invoice was already sent recently",
                previous_send=previous,
            )

        job = await self._enqueue(invoice, triggered_by, TriggerType.MANUAL)
        return SendRequestResult(
            invoice_id=invoice.id, queued=True, message="Invoice queued for sending", job=job
        )

    def get_status(self, invoice_id: int) -> InvoiceStatusReport:
        invoice = self.invoices.get(invoice_id)
        return InvoiceStatusReport(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            send_status=invoice.send_status,
            email_sent=invoice.email_sent,
            email_sent_at=invoice.email_sent_at,
            sms_sent=invoice.sms_sent,
            sms_sent_at=invoice.sms_sent_at,
            logs=self.ledger.list_for_invoice(invoice.id),
        )

    async def open_artifact(self, invoice_id: int, token: str) -> ArtifactAccess:
        """Verify the retrieval token and locate the latest document.

        Raises:
            AccessDeniedError: If the token is invalid, expired or for another invoice.
            InvoiceNotFoundError: If no document was ever stored for the invoice.
        """
        if not self.token_codec.verify(token, artifact_resource_id(invoice_id)):
            logger.warning(f"Rejected document access for invoice {invoice_id}")
            raise AccessDeniedError("Invalid or expired token")

        record = self.artifacts.latest(invoice_id)
        if record is None:
            raise InvoiceNotFoundError(f"No document stored for invoice {invoice_id}")

        if record.storage_type is StorageKind.REMOTE:
            url = self.store.retrieval_url(record.file_path) or record.retrieval_url
            return ArtifactAccess(file_name=record.file_name, redirect_url=url)

        reader = self.store if isinstance(self.store, LocalArtifactStore) else LocalArtifactStore()
        content = await reader.read(record.file_path)
        return ArtifactAccess(file_name=record.file_name, content=content)

    async def get_job(self, job_id: str) -> Job | None:
        return await self.queue.get(job_id)

    def unsubscribe(self, token: str) -> bool:
        if self.preferences is None:
            return False
        return self.preferences.unsubscribe(token) is not None

    async def _enqueue(self, invoice: Invoice, triggered_by: str, trigger_type: TriggerType) -> Job:
        payload = DeliveryPayload(
            invoice_id=invoice.id,
            invoice=invoice,
            triggered_by=triggered_by,
            trigger_type=trigger_type,
        )
        job = await self.queue.enqueue(DELIVER_INVOICE, payload)
        logger.info(f"Invoice {invoice.invoice_number}: {trigger_type.value} delivery job {job.id}")
        return job
