"""Builds the service graph shared by the API process and the worker."""

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.security import AccessTokenCodec
from invoice_delivery.db.database import create_db_engine, create_session_factory, init_db
from invoice_delivery.delivery.orchestrator import DeliveryOrchestrator
from invoice_delivery.models.delivery import DELIVER_INVOICE
from invoice_delivery.queue.base import JobQueue
from invoice_delivery.queue.factory import create_job_queue
from invoice_delivery.repositories import (
    ArtifactRepository,
    DeliveryLeaseStore,
    InvoiceRepository,
    PreferencesProvider,
    SendLedger,
    SettingsProvider,
)
from invoice_delivery.services.delivery_service import DeliveryService
from invoice_delivery.services.maintenance_service import LedgerMaintenanceService
from invoice_delivery.services.pdf_renderer import InvoicePdfRenderer
from invoice_delivery.services.storage_service import ArtifactStore, create_artifact_store
from invoice_delivery.utils.logger import logger


@dataclass
class ServiceContainer:
    config: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    invoices: InvoiceRepository
    settings_provider: SettingsProvider
    preferences: PreferencesProvider
    ledger: SendLedger
    artifacts: ArtifactRepository
    leases: DeliveryLeaseStore
    store: ArtifactStore
    token_codec: AccessTokenCodec
    queue: JobQueue
    orchestrator: DeliveryOrchestrator
    delivery_service: DeliveryService
    maintenance: LedgerMaintenanceService

    def register_delivery_worker(self) -> None:
        self.queue.register_worker(
            DELIVER_INVOICE, self.config.queue_concurrency, self.orchestrator.process_delivery_job
        )

    async def close(self) -> None:
        await self.queue.close(self.config.queue_drain_timeout)
        self.engine.dispose()


def build_container(
    config: Settings | None = None,
    queue: JobQueue | None = None,
    store: ArtifactStore | None = None,
) -> ServiceContainer:
    """Create tables and default settings, then wire every component explicitly."""
    config = config or settings
    config.ensure_directories()

    engine = create_db_engine(config.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    invoices = InvoiceRepository(session_factory)
    settings_provider = SettingsProvider(session_factory)
    settings_provider.ensure_defaults()
    preferences = PreferencesProvider(session_factory)
    ledger = SendLedger(session_factory)
    artifacts = ArtifactRepository(session_factory)
    leases = DeliveryLeaseStore(session_factory)
    store = store or create_artifact_store(config)
    token_codec = AccessTokenCodec(config.signed_url_secret)
    queue = queue or create_job_queue(config)

    orchestrator = DeliveryOrchestrator(
        invoices=invoices,
        settings_provider=settings_provider,
        ledger=ledger,
        artifacts=artifacts,
        leases=leases,
        store=store,
        token_codec=token_codec,
        renderer=InvoicePdfRenderer(),
        preferences=preferences,
        config=config,
    )
    delivery_service = DeliveryService(
        invoices=invoices,
        settings_provider=settings_provider,
        ledger=ledger,
        artifacts=artifacts,
        store=store,
        token_codec=token_codec,
        queue=queue,
        preferences=preferences,
        config=config,
    )
    logger.info(f"Service graph ready (queue={config.queue_backend}, storage={config.storage_type})")
    return ServiceContainer(
        config=config,
        engine=engine,
        session_factory=session_factory,
        invoices=invoices,
        settings_provider=settings_provider,
        preferences=preferences,
        ledger=ledger,
        artifacts=artifacts,
        leases=leases,
        store=store,
        token_codec=token_codec,
        queue=queue,
        orchestrator=orchestrator,
        delivery_service=delivery_service,
        maintenance=LedgerMaintenanceService(ledger, leases, config),
    )
