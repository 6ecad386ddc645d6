"""Default message templates and the data they are rendered with."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from invoice_delivery.models.invoice import CompanyInfo, Invoice

DEFAULT_EMAIL_SUBJECT_TEMPLATE = "Invoice {{invoice_number}} from {{company_name}}"

DEFAULT_EMAIL_BODY_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <h2>Invoice {{invoice_number}}</h2>
  <p>Dear {{customer_name}},</p>
  <p>Thank you for your business! Please find the details of your invoice below.</p>
  <p>
    <strong>Invoice Number:</strong> {{invoice_number}}<br>
    <strong>Date:</strong> {{invoice_date}}<br>
    <strong>Due Date:</strong> {{due_date}}<br>
    <strong>Amount Due:</strong> {{amount_due}}
  </p>
  {{#invoice_link}}
  <p><a href="{{invoice_link}}">View Invoice Online</a></p>
  {{/invoice_link}}
  {{#payment_link}}
  <p><a href="{{payment_link}}">Pay Now</a></p>
  {{/payment_link}}
  <p>Best regards,<br>{{company_name}}</p>
  <p style="font-size: 12px; color: #666;">
    {{company_address}}<br>
    {{company_phone}} {{company_email}}
  </p>
  {{#unsubscribe_link}}
  <p style="font-size: 12px;"><a href="{{unsubscribe_link}}">Unsubscribe</a></p>
  {{/unsubscribe_link}}
</body>
</html>"""

DEFAULT_SMS_TEMPLATE = (
    "Hi {{customer_name}}, invoice {{invoice_number}} ({{amount_due}}) is ready."
    "{{#invoice_link}} View: {{invoice_link}}{{/invoice_link}}"
)

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "ILS": "₪",
}

_ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def format_currency(amount: Decimal | float | int, currency: str | None = "USD") -> str:
    """Format an amount the way an en-US locale would, e.g. ``$1,234.50``."""
    code = (currency or "USD").upper()
    places = Decimal("1") if code in _ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    value = Decimal(str(amount)).quantize(places, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,.0f}" if code in _ZERO_DECIMAL_CURRENCIES else f"{abs(value):,.2f}"
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{digits}"
    return f"{sign}{code} {digits}"


def format_date(value: date | None) -> str:
    """Format a date as ``January 5, 2024``; empty for missing dates."""
    if value is None:
        return ""
    return f"{value:%B} {value.day}, {value.year}"


def build_template_context(
    invoice: Invoice,
    company: CompanyInfo,
    invoice_link: str | None = None,
    unsubscribe_link: str | None = None,
) -> dict[str, Any]:
    """Fixed set of named fields available to every template."""
    return {
        "customer_name": invoice.customer_name,
        "company_name": company.name,
        "invoice_number": invoice.invoice_number,
        "invoice_date": format_date(invoice.invoice_date),
        "due_date": format_date(invoice.due_date),
        "amount_due": format_currency(invoice.amount_due, invoice.currency),
        "invoice_link": invoice_link or "",
        "payment_link": invoice.payment_link or "",
        "unsubscribe_link": unsubscribe_link or "",
        "company_address": company.address,
        "company_phone": company.phone,
        "company_email": company.email,
    }
