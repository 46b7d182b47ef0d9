"""
Payment repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """Payment mirror store"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """Insert a payment mirror"""
        pass

    @abstractmethod
    async def get_by_stripe_reference(self, stripe_reference: str) -> Optional[Payment]:
        """Fetch by PaymentIntent id"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """Most recent payment for an order"""
        pass

    @abstractmethod
    async def advance_status(
        self,
        stripe_reference: str,
        target: PaymentStatus,
        *,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """
        Conditionally move the mirror to ``target`` if its current status is
        one of the statuses ``target`` can be entered from. Returns True if a
        row changed.
        """
        pass
