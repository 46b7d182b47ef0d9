"""
Payment domain entity - local mirror of a Stripe PaymentIntent
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.order.entity import ensure_utc


class PaymentStatus(str, Enum):
    """PaymentIntent lifecycle as observed through webhooks"""
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# Forward-only table. Webhooks arrive out of order; a late "processing"
# must not overwrite "succeeded".
FORWARD_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.REQUIRES_PAYMENT_METHOD: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    }),
    PaymentStatus.FAILED: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.CANCELED,
    }),
    PaymentStatus.SUCCEEDED: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
}


def sources_for(target: PaymentStatus) -> frozenset[PaymentStatus]:
    """Statuses from which ``target`` may be entered."""
    target = PaymentStatus(target)
    return frozenset(src for src, targets in FORWARD_TRANSITIONS.items() if target in targets)


@dataclass
class Payment:
    """
    Payment mirror

    Business rules:
    1. stripe_reference (PaymentIntent id) is unique
    2. amount is a positive integer in minor units
    3. status only moves forward along FORWARD_TRANSITIONS
    """

    id: Optional[int]
    order_id: str
    stripe_reference: str
    amount: int
    currency: str
    status: PaymentStatus
    customer_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.stripe_reference:
            raise DomainValidationException("Payment reference is required", field="stripe_reference")
        if self.amount <= 0:
            raise DomainValidationException(f"Payment amount must be positive: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.status = PaymentStatus(self.status)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def can_advance_to(self, target: PaymentStatus) -> bool:
        return PaymentStatus(target) in FORWARD_TRANSITIONS[self.status]

    def advance_to(self, target: PaymentStatus, reason: Optional[str] = None) -> bool:
        """Apply ``target`` if it moves forward. Returns False for stale updates."""
        if not self.can_advance_to(target):
            return False
        self.status = PaymentStatus(target)
        if self.status == PaymentStatus.FAILED:
            self.failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)
        return True
