"""
Coupon application service - backs the pricing engine's CouponValidator.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import utc_now
from domain.pricing.coupon import Coupon, CouponValidation


logger = get_logger(__name__)


class CouponService:
    """Validates coupon codes against the coupons table."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self._clock = clock

    async def validate(self, code: str, subtotal: int) -> CouponValidation:
        async with self._uow_factory(readonly=True) as uow:
            coupon: Optional[Coupon] = await uow.coupon_repository.get_by_code(code)
        if coupon is None:
            return CouponValidation(valid=False, message="Coupon not found")
        reason = coupon.rejection_reason(subtotal, self._clock())
        if reason:
            logger.info("coupon_rejected", code=coupon.code, reason=reason)
            return CouponValidation(valid=False, coupon=coupon, message=reason)
        return CouponValidation(valid=True, coupon=coupon)

    def calculate_discount(self, coupon: Coupon, subtotal: int, base_fare: int) -> int:
        return coupon.discount_for(subtotal, base_fare)

    async def record_usage(self, coupon_id: int) -> bool:
        """Claim one use of the coupon. False once its usage limit is reached."""
        async with self._uow_factory() as uow:
            claimed = await uow.coupon_repository.increment_usage(coupon_id)
        if not claimed:
            logger.info("coupon_usage_refused", coupon_id=coupon_id)
        return claimed
