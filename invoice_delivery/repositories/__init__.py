"""Repositories over the delivery tables."""

from invoice_delivery.repositories.artifacts import ArtifactRepository, DeliveryLeaseStore
from invoice_delivery.repositories.invoices import InvoiceRepository
from invoice_delivery.repositories.ledger import SendLedger
from invoice_delivery.repositories.settings import PreferencesProvider, SettingsProvider

__all__ = [
    "ArtifactRepository",
    "DeliveryLeaseStore",
    "InvoiceRepository",
    "PreferencesProvider",
    "SendLedger",
    "SettingsProvider",
]
