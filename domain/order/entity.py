"""
Order domain entity - the delivery order aggregate root
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """Delivery lifecycle status"""
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    """Payment axis, independent from the delivery status"""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PackageSize(str, Enum):
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise a timestamp to UTC (naive values are assumed to be UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_id(now: datetime) -> str:
    """``ORD-<epoch-ms>-<7 upper-case base36 chars>``"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"ORD-{int(ensure_utc(now).timestamp() * 1000)}-{suffix}"


@dataclass
class ContactPoint:
    """Pickup or dropoff location with its on-site contact"""
    address: str
    lat: float
    lng: float
    contact_name: str
    contact_phone: str
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    actual_at: Optional[datetime] = None


@dataclass
class PackageDetails:
    size: PackageSize
    weight: Optional[str] = None
    description: Optional[str] = None
    item_price: Optional[int] = None  # declared value, minor units


@dataclass
class Distance:
    km: float
    duration_minutes: int


@dataclass(frozen=True)
class FeeBreakdown:
    courier_fee: int = 0
    carbon_fee: int = 0
    service_fee: int = 0

    @property
    def total(self) -> int:
        return self.courier_fee + self.carbon_fee + self.service_fee


@dataclass(frozen=True)
class Pricing:
    """
    Order financials in integer minor units (cents).

    ``subtotal`` is the post-discount subtotal, so ``total == subtotal + tax``.
    """
    base_fare: int
    distance_surcharge: int
    fees: FeeBreakdown
    subtotal: int
    tax: int
    coupon_discount: int
    total: int
    currency: str = "CAD"

    def __post_init__(self):
        if self.total != self.subtotal + self.tax:
            raise DomainValidationException(
                f"Pricing total {self.total} != subtotal {self.subtotal} + tax {self.tax}",
                field="pricing",
            )


@dataclass(frozen=True)
class CouponSnapshot:
    """Coupon terms captured at order creation; never re-validated."""
    code: str
    coupon_id: Optional[int]
    discount_type: str
    discount_value: Optional[int]


@dataclass
class Timeline:
    created_at: datetime
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


@dataclass
class Order:
    """
    Delivery order aggregate

    Business rules:
    1. ``status`` only moves along the state machine table
    2. ``driver_id`` is set exactly once, by assignment
    3. ``expires_at`` only exists while the order is pending and unclaimed
    4. delivered/cancelled orders never change status, driver or timeline again
    """

    id: Optional[int]
    order_id: str
    customer_id: str
    status: OrderStatus
    payment_status: OrderPaymentStatus
    pickup: ContactPoint
    dropoff: ContactPoint
    package: PackageDetails
    distance: Distance
    pricing: Pricing
    timeline: Timeline
    coupon: Optional[CouponSnapshot] = None
    driver_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    driver_note: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.expires_at = ensure_utc(self.expires_at)
        self.updated_at = ensure_utc(self.updated_at)
        for name in ("created_at", "assigned_at", "picked_up_at", "delivered_at", "cancelled_at"):
            setattr(self.timeline, name, ensure_utc(getattr(self.timeline, name)))
        self.pickup.actual_at = ensure_utc(self.pickup.actual_at)
        self.dropoff.actual_at = ensure_utc(self.dropoff.actual_at)

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= ensure_utc(now)

    def is_available(self, now: datetime) -> bool:
        """Whether a driver could claim this order at ``now``."""
        return (
            self.status == OrderStatus.PENDING
            and self.driver_id is None
            and self.payment_status == OrderPaymentStatus.PAID
            and not self.is_expired(now)
        )
