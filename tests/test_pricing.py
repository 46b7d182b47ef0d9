from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, InvalidCouponException
from domain.order.entity import FeeBreakdown, Pricing
from domain.pricing.coupon import Coupon, CouponValidation, DiscountType
from domain.pricing.engine import PricingEngine, price


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


class StubCoupons:
    def __init__(self, *coupons: Coupon):
        self.coupons = {c.code: c for c in coupons}
        self.recorded: list[int] = []

    async def validate(self, code, subtotal):
        coupon = self.coupons.get(code.upper())
        if coupon is None:
            return CouponValidation(valid=False, message="Coupon not found")
        reason = coupon.rejection_reason(subtotal, NOW)
        return CouponValidation(valid=reason is None, coupon=coupon, message=reason)

    def calculate_discount(self, coupon, subtotal, base_fare):
        return coupon.discount_for(subtotal, base_fare)

    async def record_usage(self, coupon_id):
        self.recorded.append(coupon_id)
        return True


def test_price_applies_five_percent_gst():
    p = price(1000, 0, FeeBreakdown())
    assert (p.subtotal, p.tax, p.total, p.coupon_discount) == (1000, 50, 1050, 0)
    assert p.currency == "CAD"


def test_price_taxes_the_discounted_subtotal():
    p = price(1000, 0, FeeBreakdown(), discount=100)
    assert (p.subtotal, p.tax, p.total) == (900, 45, 945)


def test_price_rounds_tax_half_up():
    # 5% of 1010 is 50.5
    assert price(1010, 0, FeeBreakdown()).tax == 51
    assert price(1009, 0, FeeBreakdown()).tax == 50


def test_explicit_subtotal_overrides_base_fare():
    fees = FeeBreakdown(courier_fee=200, carbon_fee=50)
    p = price(1000, 300, fees, subtotal=1550)
    assert p.subtotal == 1550
    assert p.total == 1550 + 78


def test_custom_rate_and_currency():
    p = price(2000, 0, FeeBreakdown(), gst_rate=Decimal("0.13"), currency="usd")
    assert p.tax == 260
    assert p.currency == "USD"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_fare": -1, "distance_surcharge": 0},
        {"base_fare": 100, "distance_surcharge": -5},
        {"base_fare": 100, "distance_surcharge": 0, "discount": 101},
    ],
)
def test_price_rejects_invalid_amounts(kwargs):
    with pytest.raises(DomainValidationException):
        price(fees=FeeBreakdown(), **kwargs)


def test_pricing_requires_consistent_total():
    with pytest.raises(DomainValidationException):
        Pricing(base_fare=1000, distance_surcharge=0, fees=FeeBreakdown(), subtotal=1000,
                tax=50, coupon_discount=0, total=1049)


def test_percentage_coupon_discount_is_rounded_and_capped():
    coupon = Coupon(id=1, code="ten", discount_type=DiscountType.PERCENTAGE, discount_value=10)
    assert coupon.code == "TEN"
    assert coupon.discount_for(1005, 1005) == 101
    capped = Coupon(id=2, code="BIG", discount_type="percentage", discount_value=50, max_discount=300)
    assert capped.discount_for(1000, 1000) == 300


def test_fixed_and_free_base_fare_discounts_never_exceed_subtotal():
    fixed = Coupon(id=1, code="FIVE", discount_type=DiscountType.FIXED, discount_value=500)
    assert fixed.discount_for(300, 300) == 300
    free = Coupon(id=2, code="FREE", discount_type=DiscountType.FREE_BASE_FARE)
    assert free.discount_for(1500, 1000) == 1000


def test_coupon_rejection_reasons():
    coupon = Coupon(
        id=1, code="SPRING", discount_type=DiscountType.FIXED, discount_value=100,
        min_subtotal=500, usage_limit=2, used_count=0,
        valid_from=NOW - timedelta(days=1), valid_until=NOW + timedelta(days=1),
    )
    assert coupon.rejection_reason(1000, NOW) is None
    assert "at least 500" in coupon.rejection_reason(400, NOW)
    assert coupon.rejection_reason(1000, NOW + timedelta(days=2)) == "Coupon has expired"
    assert coupon.rejection_reason(1000, NOW - timedelta(days=2)) == "Coupon is not valid yet"
    coupon.used_count = 2
    assert coupon.rejection_reason(1000, NOW) == "Coupon usage limit reached"
    coupon.is_active = False
    assert coupon.rejection_reason(1000, NOW) == "Coupon is not active"


def test_coupon_definition_is_validated():
    with pytest.raises(DomainValidationException):
        Coupon(id=None, code="  ", discount_type=DiscountType.FIXED)
    with pytest.raises(DomainValidationException):
        Coupon(id=None, code="X", discount_type=DiscountType.PERCENTAGE, discount_value=150)


@pytest.mark.asyncio
async def test_engine_without_coupon():
    engine = PricingEngine(StubCoupons())
    quote = await engine.compute_pricing(1000)
    assert quote.pricing.total == 1050
    assert quote.coupon is None
    assert quote.coupon_snapshot is None


@pytest.mark.asyncio
async def test_engine_applies_valid_coupon():
    coupon = Coupon(id=7, code="TEN", discount_type=DiscountType.PERCENTAGE, discount_value=10)
    engine = PricingEngine(StubCoupons(coupon))
    quote = await engine.compute_pricing(1000, coupon_code="ten")
    p = quote.pricing
    assert (p.coupon_discount, p.subtotal, p.tax, p.total) == (100, 900, 45, 945)
    assert quote.coupon_snapshot.code == "TEN"
    assert quote.coupon_snapshot.coupon_id == 7


@pytest.mark.asyncio
async def test_engine_rejects_unknown_or_ineligible_coupon():
    engine = PricingEngine(StubCoupons(
        Coupon(id=1, code="MIN", discount_type=DiscountType.FIXED, discount_value=100, min_subtotal=5000)
    ))
    with pytest.raises(InvalidCouponException):
        await engine.compute_pricing(1000, coupon_code="NOPE")
    with pytest.raises(InvalidCouponException) as exc_info:
        await engine.compute_pricing(1000, coupon_code="MIN")
    assert "at least 5000" in exc_info.value.message
