"""
Invoice and email ports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Sequence, runtime_checkable

from domain.order.entity import Order
from domain.user.entity import User


@dataclass(frozen=True)
class InvoiceLine:
    label: str
    amount: int  # minor units, negative for discounts


@dataclass(frozen=True)
class Invoice:
    invoice_number: str
    order_id: str
    issued_at: datetime
    customer_name: str
    customer_email: str
    currency: str
    lines: Sequence[InvoiceLine] = field(default_factory=tuple)
    subtotal: int = 0
    tax: int = 0
    total: int = 0
    payment_reference: Optional[str] = None


@runtime_checkable
class InvoiceService(Protocol):
    def generate(self, order: Order, user: User, payment_reference: Optional[str]) -> Invoice: ...

    def render_html(self, invoice: Invoice) -> str: ...

    def render_text(self, invoice: Invoice) -> str: ...


@runtime_checkable
class EmailSender(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        bcc: Optional[str] = None,
    ) -> None: ...
