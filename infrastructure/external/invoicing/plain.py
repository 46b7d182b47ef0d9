"""
Plain invoice generator: builds the invoice from the order's pricing and
renders it as minimal HTML and text bodies for email.
"""
from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Callable, Optional

from application.ports.invoicing import Invoice, InvoiceLine
from domain.order.entity import Order
from domain.user.entity import User


def format_money(amount: int, currency: str) -> str:
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    return f"{sign}${amount // 100}.{amount % 100:02d} {currency}"


class PlainInvoiceService:
    """InvoiceService without external rendering dependencies."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(self, order: Order, user: User, payment_reference: Optional[str]) -> Invoice:
        pricing = order.pricing
        lines = [InvoiceLine("Base fare", pricing.base_fare)]
        if pricing.distance_surcharge:
            lines.append(InvoiceLine("Distance surcharge", pricing.distance_surcharge))
        for label, amount in (
            ("Courier fee", pricing.fees.courier_fee),
            ("Carbon offset fee", pricing.fees.carbon_fee),
            ("Service fee", pricing.fees.service_fee),
        ):
            if amount:
                lines.append(InvoiceLine(label, amount))
        if pricing.coupon_discount:
            label = f"Coupon {order.coupon.code}" if order.coupon else "Discount"
            lines.append(InvoiceLine(label, -pricing.coupon_discount))

        return Invoice(
            invoice_number=f"INV-{order.order_id}",
            order_id=order.order_id,
            issued_at=self._clock(),
            customer_name=user.name,
            customer_email=user.email,
            currency=pricing.currency,
            lines=tuple(lines),
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            total=pricing.total,
            payment_reference=payment_reference,
        )

    def render_text(self, invoice: Invoice) -> str:
        rows = [
            f"Invoice {invoice.invoice_number}",
            f"Order: {invoice.order_id}",
            f"Issued: {invoice.issued_at:%Y-%m-%d %H:%M} UTC",
            f"Billed to: {invoice.customer_name} <{invoice.customer_email}>",
            "",
        ]
        rows += [f"{line.label}: {format_money(line.amount, invoice.currency)}" for line in invoice.lines]
        rows += [
            "",
            f"Subtotal: {format_money(invoice.subtotal, invoice.currency)}",
            f"GST: {format_money(invoice.tax, invoice.currency)}",
            f"Total: {format_money(invoice.total, invoice.currency)}",
        ]
        if invoice.payment_reference:
            rows.append(f"Payment reference: {invoice.payment_reference}")
        return "\n".join(rows)

    def render_html(self, invoice: Invoice) -> str:
        cur = invoice.currency
        body_rows = "".join(
            f"<tr><td>{escape(line.label)}</td><td>{escape(format_money(line.amount, cur))}</td></tr>"
            for line in invoice.lines
        )
        reference = (
            f"<p>Payment reference: {escape(invoice.payment_reference)}</p>"
            if invoice.payment_reference else ""
        )
        return (
            "<html><body>"
            f"<h2>Invoice {escape(invoice.invoice_number)}</h2>"
            f"<p>Order {escape(invoice.order_id)}<br>"
            f"Billed to {escape(invoice.customer_name)} &lt;{escape(invoice.customer_email)}&gt;</p>"
            f"<table>{body_rows}"
            f"<tr><td>Subtotal</td><td>{escape(format_money(invoice.subtotal, cur))}</td></tr>"
            f"<tr><td>GST</td><td>{escape(format_money(invoice.tax, cur))}</td></tr>"
            f"<tr><th>Total</th><th>{escape(format_money(invoice.total, cur))}</th></tr>"
            "</table>"
            f"{reference}"
            "</body></html>"
        )
