"""
Coupon entity, validator contract and repository interface
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from domain.common.exceptions import DomainValidationException
from domain.order.entity import CouponSnapshot, ensure_utc


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"        # discount_value is a percent of the subtotal
    FIXED = "fixed"                  # discount_value is an amount in minor units
    FREE_BASE_FARE = "free_base_fare"  # the base fare is waived


@dataclass
class Coupon:
    """
    Coupon definition

    Business rules:
    1. codes are case-insensitive and stored upper-case
    2. a discount never exceeds the subtotal it applies to
    3. percentage discounts are rounded half-up to whole minor units
    """

    id: Optional[int]
    code: str
    discount_type: DiscountType
    discount_value: int = 0
    max_discount: Optional[int] = None
    min_subtotal: int = 0
    usage_limit: Optional[int] = None
    used_count: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    def __post_init__(self):
        self.code = (self.code or "").strip().upper()
        if not self.code:
            raise DomainValidationException("Coupon code is required", field="code")
        self.discount_type = DiscountType(self.discount_type)
        if self.discount_value < 0:
            raise DomainValidationException("Coupon discount must not be negative", field="discount_value")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise DomainValidationException("Percentage coupons cannot exceed 100", field="discount_value")
        self.valid_from = ensure_utc(self.valid_from)
        self.valid_until = ensure_utc(self.valid_until)

    def rejection_reason(self, subtotal: int, now: datetime) -> Optional[str]:
        """Return why the coupon cannot be used, or None if it can."""
        now = ensure_utc(now)
        if not self.is_active:
            return "Coupon is not active"
        if self.valid_from and now < self.valid_from:
            return "Coupon is not valid yet"
        if self.valid_until and now > self.valid_until:
            return "Coupon has expired"
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return "Coupon usage limit reached"
        if subtotal < self.min_subtotal:
            return f"Order subtotal must be at least {self.min_subtotal} to use this coupon"
        return None

    def discount_for(self, subtotal: int, base_fare: int) -> int:
        if self.discount_type == DiscountType.PERCENTAGE:
            raw = (Decimal(subtotal) * Decimal(self.discount_value) / Decimal(100)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
            discount = int(raw)
            if self.max_discount is not None:
                discount = min(discount, self.max_discount)
        elif self.discount_type == DiscountType.FIXED:
            discount = self.discount_value
        else:
            discount = base_fare
        return max(0, min(discount, subtotal))

    def snapshot(self) -> CouponSnapshot:
        return CouponSnapshot(
            code=self.code,
            coupon_id=self.id,
            discount_type=self.discount_type.value,
            discount_value=self.discount_value,
        )


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    coupon: Optional[Coupon] = None
    message: Optional[str] = None


@runtime_checkable
class CouponValidator(Protocol):
    """Collaborator consulted by the pricing engine."""

    async def validate(self, code: str, subtotal: int) -> CouponValidation: ...

    def calculate_discount(self, coupon: Coupon, subtotal: int, base_fare: int) -> int: ...

    async def record_usage(self, coupon_id: int) -> bool: ...


class CouponRepository(ABC):
    """Coupon store"""

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        """Insert a coupon"""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        """Case-insensitive lookup"""

    @abstractmethod
    async def increment_usage(self, coupon_id: int) -> bool:
        """Atomically bump used_count while it is below usage_limit. False if gone or exhausted."""
