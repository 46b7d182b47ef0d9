"""
Pricing engine - subtotal, coupon discount, GST and total.

``price`` is a pure function of its arguments: no clock, no I/O, no hidden
state, so the same inputs always yield the same ``Pricing``. The engine only
adds the coupon lookup in front of it.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidCouponException
from domain.order.entity import CouponSnapshot, FeeBreakdown, Pricing
from .coupon import Coupon, CouponValidator


GST_RATE = Decimal("0.05")
DEFAULT_CURRENCY = "CAD"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def price(
    base_fare: int,
    distance_surcharge: int,
    fees: FeeBreakdown,
    subtotal: Optional[int] = None,
    discount: int = 0,
    *,
    currency: str = DEFAULT_CURRENCY,
    gst_rate: Decimal = GST_RATE,
) -> Pricing:
    """
    Compute the final pricing.

    ``subtotal`` defaults to ``base_fare``. Tax is applied once, to the
    discounted subtotal.
    """
    for name, value in (("base_fare", base_fare), ("distance_surcharge", distance_surcharge), ("discount", discount)):
        if value < 0:
            raise DomainValidationException(f"{name} must not be negative", field=name)

    gross = base_fare if subtotal is None else subtotal
    if gross < 0:
        raise DomainValidationException("subtotal must not be negative", field="subtotal")
    if discount > gross:
        raise DomainValidationException("discount exceeds subtotal", field="discount")

    discounted = gross - discount
    tax = round_half_up(Decimal(discounted) * gst_rate)
    return Pricing(
        base_fare=base_fare,
        distance_surcharge=distance_surcharge,
        fees=fees,
        subtotal=discounted,
        tax=tax,
        coupon_discount=discount,
        total=discounted + tax,
        currency=currency.upper(),
    )


@dataclass(frozen=True)
class PricingQuote:
    pricing: Pricing
    coupon: Optional[Coupon] = None

    @property
    def coupon_snapshot(self) -> Optional[CouponSnapshot]:
        return self.coupon.snapshot() if self.coupon else None


class PricingEngine:
    """Resolves an optional coupon, then prices deterministically."""

    def __init__(self, coupon_validator: CouponValidator, *, gst_rate: Decimal = GST_RATE) -> None:
        self.coupon_validator = coupon_validator
        self.gst_rate = Decimal(gst_rate)

    async def compute_pricing(
        self,
        base_fare: int,
        distance_surcharge: int = 0,
        fees: Optional[FeeBreakdown] = None,
        subtotal: Optional[int] = None,
        coupon_code: Optional[str] = None,
        *,
        currency: str = DEFAULT_CURRENCY,
    ) -> PricingQuote:
        fees = fees or FeeBreakdown()
        gross = base_fare if subtotal is None else subtotal

        coupon: Optional[Coupon] = None
        discount = 0
        if coupon_code:
            validation = await self.coupon_validator.validate(coupon_code, gross)
            if not validation.valid or validation.coupon is None:
                raise InvalidCouponException(coupon_code, validation.message)
            coupon = validation.coupon
            discount = self.coupon_validator.calculate_discount(coupon, gross, base_fare)

        pricing = price(
            base_fare,
            distance_surcharge,
            fees,
            gross,
            discount,
            currency=currency,
            gst_rate=self.gst_rate,
        )
        return PricingQuote(pricing=pricing, coupon=coupon)
