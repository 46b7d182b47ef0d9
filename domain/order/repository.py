"""
Order repository interface

Only atomic conditional-update primitives are offered for state changes:
every mutation states the predicate it relies on and succeeds only if that
predicate still holds at write time. There is deliberately no generic
``update(order)``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .entity import Order, OrderPaymentStatus, OrderStatus


@dataclass(frozen=True)
class OrderQuery:
    """
    Typed filter for order listings. ``None`` means "do not filter".

    ``expires_before`` only matches orders with an expiry; ``expires_after``
    also matches orders without one.
    """
    status: Optional[OrderStatus] = None
    has_driver: Optional[bool] = None
    driver_id: Optional[str] = None
    payment_status: Optional[OrderPaymentStatus] = None
    expires_before: Optional[datetime] = None
    expires_after: Optional[datetime] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    skip: int = 0
    limit: Optional[int] = 100


class OrderRepository(ABC):
    """Order store"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Insert a new order"""

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """Fetch by external order id"""

    @abstractmethod
    async def find(self, query: OrderQuery) -> List[Order]:
        """List orders matching ``query``, newest first"""

    @abstractmethod
    async def count(self, query: OrderQuery) -> int:
        """Count orders matching ``query`` (paging fields ignored)"""

    @abstractmethod
    async def assign_driver(self, order_id: str, driver_id: str, now: datetime) -> Optional[Order]:
        """
        Bind ``driver_id`` if the order is pending, unassigned, paid and not
        expired at ``now`` and the driver is an active user with the driver
        role. Sets status=assigned, stamps assigned_at, clears expires_at.
        Returns the updated order, or None if the predicate failed.
        """

    @abstractmethod
    async def apply_transition(
        self,
        order_id: str,
        *,
        driver_id: str,
        expected_status: OrderStatus,
        target_status: OrderStatus,
        timeline_field: Optional[str],
        now: datetime,
    ) -> Optional[Order]:
        """
        Move an assigned order from ``expected_status`` to ``target_status``
        if it is still in ``expected_status`` and bound to ``driver_id``.
        Returns the updated order, or None if the predicate failed.
        """

    @abstractmethod
    async def cancel_if_unclaimed(self, order_id: str, now: datetime) -> bool:
        """
        Cancel the order if it is still pending, has no driver and its
        expires_at lies before ``now``. Returns True if a row changed.
        """

    @abstractmethod
    async def mark_paid(self, order_id: str, now: datetime) -> bool:
        """Flip payment_status unpaid -> paid. Returns True if a row changed."""

    @abstractmethod
    async def set_driver_note(self, order_id: str, driver_id: str, note: str) -> Optional[Order]:
        """Store the driver's note if the order is bound to ``driver_id``."""
