"""Invoice PDF rendering with PyMuPDF."""

import fitz
from pydantic import BaseModel

from invoice_delivery.core.errors import RenderError
from invoice_delivery.core.security import compute_hash
from invoice_delivery.delivery.templates import format_currency, format_date
from invoice_delivery.models.invoice import CompanyInfo, Invoice
from invoice_delivery.services.invoice_totals import compute_totals
from invoice_delivery.utils.logger import logger

# A4 in points
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 50
ROW_HEIGHT = 22
TABLE_BOTTOM = PAGE_HEIGHT - 160

BRAND = (0.145, 0.388, 0.922)
DARK = (0.067, 0.094, 0.153)
MUTED = (0.4, 0.4, 0.4)
RULE = (0.898, 0.906, 0.922)


class RenderedDocument(BaseModel):
    """Rendered invoice bytes and their digest."""

    content: bytes
    content_hash: str
    file_name: str


def document_file_name(invoice_number: str) -> str:
    return f"invoice-{invoice_number}.pdf"


class InvoicePdfRenderer:
    """Stateless renderer: same invoice data in, same layout out."""

    def render(self, invoice: Invoice, company: CompanyInfo) -> RenderedDocument:
        """Render ``invoice`` as a paginated A4 document.

        Raises:
            RenderError: If the document cannot be produced.
        """
        try:
            logger.info(f"Rendering PDF for invoice {invoice.invoice_number}")
            doc = fitz.open()
            try:
                page = self._new_page(doc, company, invoice)
                y = self._add_customer_info(page, invoice)
                page, y = self._add_items_table(doc, page, y, invoice, company)
                self._add_totals(doc, page, y, invoice, company)
                self._add_footers(doc, invoice)
                content = doc.tobytes(garbage=3, deflate=True)
            finally:
                doc.close()
        except Exception as e:
            logger.error(f"PDF generation failed for invoice {invoice.invoice_number}: {e}")
            raise RenderError(f"PDF generation failed: {e}") from e

        file_name = document_file_name(invoice.invoice_number)
        logger.info(f"PDF generated: {file_name} ({len(content)} bytes)")
        return RenderedDocument(
            content=content, content_hash=compute_hash(content), file_name=file_name
        )

    def _new_page(self, doc: fitz.Document, company: CompanyInfo, invoice: Invoice) -> fitz.Page:
        page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        page.insert_text((MARGIN, 70), company.name, fontsize=22, color=BRAND)
        if company.email:
            page.insert_text((MARGIN, 92), company.email, fontsize=9, color=MUTED)
        if company.address:
            page.insert_text((MARGIN, 104), company.address, fontsize=9, color=MUTED)

        x = 380
        page.insert_text((x, 70), "INVOICE", fontsize=16, color=DARK)
        page.insert_text((x, 92), f"Invoice #: {invoice.invoice_number}", fontsize=9, color=MUTED)
        page.insert_text((x, 106), f"Date: {format_date(invoice.invoice_date)}", fontsize=9, color=MUTED)
        page.insert_text((x, 120), f"Due Date: {format_date(invoice.due_date)}", fontsize=9, color=MUTED)

        page.draw_line((MARGIN, 135), (PAGE_WIDTH - MARGIN, 135), color=RULE, width=1)
        return page

    def _add_customer_info(self, page: fitz.Page, invoice: Invoice) -> float:
        y = 165
        page.insert_text((MARGIN, y), "Bill To:", fontsize=11, color=DARK)
        lines = [invoice.customer_name, invoice.customer_email or "", invoice.customer_phone or ""]
        for line in filter(None, lines):
            y += 15
            page.insert_text((MARGIN, y), line, fontsize=9, color=MUTED)
        return y + 35

    def _table_header(self, page: fitz.Page, y: float) -> float:
        columns = (("#", MARGIN), ("Description", 80), ("Qty", 330), ("Price", 390), ("Amount", 475))
        for label, x in columns:
            page.insert_text((x, y), label, fontsize=10, color=DARK)
        page.draw_line((MARGIN, y + 6), (PAGE_WIDTH - MARGIN, y + 6), color=RULE, width=1)
        return y + ROW_HEIGHT

    def _add_items_table(
        self,
        doc: fitz.Document,
        page: fitz.Page,
        y: float,
        invoice: Invoice,
        company: CompanyInfo,
    ) -> tuple[fitz.Page, float]:
        y = self._table_header(page, y)
        for index, item in enumerate(invoice.items, start=1):
            if y > TABLE_BOTTOM:
                page = self._new_page(doc, company, invoice)
                y = self._table_header(page, 165)

            description = item.description if len(item.description) <= 45 else item.description[:42] + "..."
            page.insert_text((MARGIN, y), str(index), fontsize=9, color=MUTED)
            page.insert_text((80, y), description, fontsize=9, color=MUTED)
            page.insert_text((330, y), f"{item.quantity:.2f}", fontsize=9, color=MUTED)
            page.insert_text((390, y), format_currency(item.unit_price, invoice.currency), fontsize=9, color=MUTED)
            page.insert_text((475, y), format_currency(item.line_total, invoice.currency), fontsize=9, color=MUTED)
            y += ROW_HEIGHT
        return page, y + 10

    def _add_totals(
        self,
        doc: fitz.Document,
        page: fitz.Page,
        y: float,
        invoice: Invoice,
        company: CompanyInfo,
    ) -> None:
        if y > PAGE_HEIGHT - 200:
            page = self._new_page(doc, company, invoice)
            y = 165

        totals = compute_totals(invoice.items, invoice.discount, invoice.shipping)
        rows = [("Subtotal:", totals.subtotal), ("Tax:", totals.tax)]
        if invoice.discount:
            rows.append(("Discount:", -invoice.discount))
        if invoice.shipping:
            rows.append(("Shipping:", invoice.shipping))

        label_x, value_x = 380, 475
        for label, amount in rows:
            page.insert_text((label_x, y), label, fontsize=10, color=MUTED)
            page.insert_text((value_x, y), format_currency(amount, invoice.currency), fontsize=10, color=MUTED)
            y += 18

        page.draw_line((label_x, y - 8), (PAGE_WIDTH - MARGIN, y - 8), color=RULE, width=1)
        y += 8
        # The persisted total is authoritative for what the customer sees
        page.insert_text((label_x, y), "Total:", fontsize=12, color=DARK)
        page.insert_text((value_x, y), format_currency(invoice.grand_total, invoice.currency), fontsize=12, color=DARK)
        y += 26
        page.insert_text((label_x, y), "Amount Due:", fontsize=13, color=BRAND)
        page.insert_text((value_x, y), format_currency(invoice.amount_due, invoice.currency), fontsize=13, color=BRAND)

    def _add_footers(self, doc: fitz.Document, invoice: Invoice) -> None:
        page_count = doc.page_count
        for number in range(page_count):
            page = doc[number]
            footer = f"Invoice {invoice.invoice_number} - page {number + 1} of {page_count}"
            page.insert_text((MARGIN, PAGE_HEIGHT - 40), "Thank you for your business!", fontsize=9, color=MUTED)
            page.insert_text((MARGIN, PAGE_HEIGHT - 26), footer, fontsize=8, color=MUTED)
