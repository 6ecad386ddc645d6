"""Invoice totals computed from line items."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from pydantic import BaseModel

from invoice_delivery.models.invoice import InvoiceBase, LineItem
from invoice_delivery.utils.logger import logger

CENT = Decimal("0.01")
RECONCILE_TOLERANCE = Decimal("0.01")


class InvoiceTotals(BaseModel):
    """Derived monetary totals for an invoice."""

    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    shipping: Decimal
    total: Decimal


def compute_totals(
    items: Iterable[LineItem],
    discount: Decimal = Decimal("0"),
    shipping: Decimal = Decimal("0"),
) -> InvoiceTotals:
    """Sum of line totals, plus per-line tax, minus discount, plus shipping."""
    subtotal = Decimal("0")
    tax = Decimal("0")
    for item in items:
        line_total = item.line_total
        subtotal += line_total
        tax += line_total * item.tax_percent / Decimal("100")

    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    tax = tax.quantize(CENT, rounding=ROUND_HALF_UP)
    total = (subtotal + tax - discount + shipping).quantize(CENT, rounding=ROUND_HALF_UP)
    return InvoiceTotals(
        subtotal=subtotal, tax=tax, discount=discount, shipping=shipping, total=total
    )


def check_consistency(invoice: InvoiceBase) -> bool:
    """Log a warning when the persisted grand total does not reconcile with the items.

    The persisted total is still what gets rendered and sent.
    """
    totals = compute_totals(invoice.items, invoice.discount, invoice.shipping)
    if abs(totals.total - invoice.grand_total) > RECONCILE_TOLERANCE:
        logger.warning(
            f"Total mismatch on invoice {invoice.invoice_number}: "
            f"calculated {totals.total}, provided {invoice.grand_total}"
        )
        return False
    return True
