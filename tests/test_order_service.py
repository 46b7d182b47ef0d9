import asyncio
from datetime import timedelta

import pytest

from application.dtos.orders import (
    ContactPointIn,
    CreateOrderRequest,
    DistanceIn,
    PackageIn,
    PricingIn,
)
from application.services.assignment_service import AssignmentCoordinator
from application.services.coupon_service import CouponService
from application.services.order_service import OrderApplicationService
from domain.common.exceptions import (
    InvalidCouponException,
    InvalidTransitionException,
    OrderNotAssignedToDriverException,
    OrderNotFoundException,
    OrderValidationException,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.pricing.coupon import DiscountType
from domain.pricing.engine import PricingEngine
from domain.user.entity import UserRole

from .conftest import NOW


def _request(**overrides) -> CreateOrderRequest:
    data = dict(
        pickup=ContactPointIn(
            address="1 Pickup Rd", lat=49.2, lng=-123.1,
            contact_name="Alice", contact_phone="(604) 555-0100",
        ),
        dropoff=ContactPointIn(
            address="2 Dropoff Ave", lat=49.3, lng=-123.0,
            contact_name="Bob", contact_phone="604-555-0199",
        ),
        package=PackageIn(size="m", description="Laptop"),
        pricing=PricingIn(base_fare=1000),
        distance=DistanceIn(km=4.5, duration_minutes=15),
    )
    data.update(overrides)
    return CreateOrderRequest(**data)


@pytest.fixture
def service(uow_factory, notifier, clock):
    coupons = CouponService(uow_factory, clock)
    return OrderApplicationService(
        uow_factory,
        PricingEngine(coupons),
        coupons,
        notifier,
        claim_window=timedelta(minutes=30),
        clock=clock,
    )


@pytest.fixture
def coordinator(uow_factory, notifier, clock):
    return AssignmentCoordinator(uow_factory, notifier, clock)


@pytest.mark.asyncio
async def test_create_order_prices_and_opens_claim_window(service):
    order = await service.create_order("cust-1", _request())

    assert order.order_id.startswith("ORD-")
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == OrderPaymentStatus.UNPAID
    assert order.driver_id is None
    assert order.expires_at == NOW + timedelta(minutes=30)
    assert (order.pricing.subtotal, order.pricing.tax, order.pricing.total) == (1000, 50, 1050)
    assert order.pickup.contact_phone == "+16045550100"
    assert order.package.size.value == "M"

    fetched = await service.get_order(order.order_id)
    assert fetched.pricing == order.pricing


@pytest.mark.asyncio
async def test_create_order_with_coupon_records_usage(service, seed_coupon, uow_factory):
    await seed_coupon(code="TEN", discount_type=DiscountType.PERCENTAGE, discount_value=10)

    order = await service.create_order("cust-1", _request(coupon_code="ten"))

    assert (order.pricing.coupon_discount, order.pricing.subtotal, order.pricing.tax, order.pricing.total) == (
        100, 900, 45, 945,
    )
    assert order.coupon.code == "TEN"
    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_code("ten")
    assert coupon.used_count == 1


@pytest.mark.asyncio
async def test_create_order_rejects_exhausted_coupon(service, seed_coupon):
    await seed_coupon(code="ONCE", discount_type=DiscountType.FIXED, discount_value=100, usage_limit=1, used_count=1)
    with pytest.raises(InvalidCouponException):
        await service.create_order("cust-1", _request(coupon_code="ONCE"))


@pytest.mark.asyncio
async def test_concurrent_orders_cannot_overshoot_coupon_limit(service, seed_coupon, uow_factory):
    await seed_coupon(code="ONCE", discount_type=DiscountType.FIXED, discount_value=100, usage_limit=1)

    results = await asyncio.gather(
        *(service.create_order(f"cust-{i}", _request(coupon_code="ONCE")) for i in range(4)),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, BaseException)]
    refused = [r for r in results if isinstance(r, BaseException)]
    assert len(created) == 1
    assert all(isinstance(e, InvalidCouponException) for e in refused)
    async with uow_factory(readonly=True) as uow:
        assert (await uow.coupon_repository.get_by_code("ONCE")).used_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"pickup": None}, "pickup"),
        ({"dropoff": ContactPointIn(address="x", lat=1.0, lng=1.0, contact_name="B")}, "dropoff.contact_phone"),
        ({"package": PackageIn(size="XXL")}, "package.size"),
        ({"pricing": None}, "pricing.base_fare"),
        ({"distance": DistanceIn(km=-1, duration_minutes=3)}, "distance"),
    ],
)
async def test_create_order_validation(service, overrides, field):
    with pytest.raises(OrderValidationException) as exc_info:
        await service.create_order("cust-1", _request(**overrides))
    assert exc_info.value.field == field


@pytest.mark.asyncio
async def test_create_order_rejects_bad_phone(service):
    bad = ContactPointIn(address="x", lat=1.0, lng=1.0, contact_name="A", contact_phone="12")
    with pytest.raises(OrderValidationException) as exc_info:
        await service.create_order("cust-1", _request(pickup=bad))
    assert exc_info.value.field == "pickup.contact_phone"


@pytest.mark.asyncio
async def test_get_unknown_order(service):
    with pytest.raises(OrderNotFoundException):
        await service.get_order("ORD-0-NOPE")


@pytest.mark.asyncio
async def test_list_available_only_returns_claimable_orders(service, seed_order):
    available = await seed_order()
    await seed_order(payment_status=OrderPaymentStatus.UNPAID)
    await seed_order(driver_id="driver-1", status=OrderStatus.ASSIGNED)
    await seed_order(expires_at=NOW - timedelta(minutes=1))
    await seed_order(status=OrderStatus.CANCELLED)

    orders, total = await service.list_available_orders()

    assert total == 1
    assert [o.order_id for o in orders] == [available.order_id]


@pytest.mark.asyncio
async def test_list_available_paginates_newest_first(service, seed_order):
    first = await seed_order(created_at=NOW - timedelta(minutes=2), expires_at=NOW + timedelta(minutes=20))
    second = await seed_order(created_at=NOW - timedelta(minutes=1), expires_at=NOW + timedelta(minutes=20))

    page, total = await service.list_available_orders(limit=1, offset=0)
    assert total == 2
    assert [o.order_id for o in page] == [second.order_id]
    page, _ = await service.list_available_orders(limit=1, offset=1)
    assert [o.order_id for o in page] == [first.order_id]


@pytest.mark.asyncio
async def test_driver_walks_order_to_delivered(service, coordinator, seed_order, seed_user, notifier, clock):
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order()
    await coordinator.accept(order.order_id, "driver-1")
    notifier.sms.clear()

    clock.advance(minutes=5)
    picked = await service.update_status(order.order_id, "driver-1", "picked_up")
    assert picked.status == OrderStatus.PICKED_UP
    assert picked.timeline.picked_up_at == clock.now
    assert picked.pickup.actual_at == clock.now
    assert [phone for phone, _ in notifier.sms] == ["+16045550199"]

    moving = await service.update_status(order.order_id, "driver-1", "in_transit")
    assert moving.status == OrderStatus.IN_TRANSIT

    clock.advance(minutes=20)
    done = await service.update_status(order.order_id, "driver-1", "delivered")
    assert done.status == OrderStatus.DELIVERED
    assert done.timeline.delivered_at == clock.now
    assert done.dropoff.actual_at == clock.now
    assert done.timeline.picked_up_at == picked.timeline.picked_up_at


@pytest.mark.asyncio
async def test_terminal_order_is_immutable(service, seed_order, clock):
    order = await seed_order(status=OrderStatus.ASSIGNED, driver_id="driver-1")
    for step in ("picked_up", "in_transit", "delivered"):
        clock.advance(minutes=5)
        await service.update_status(order.order_id, "driver-1", step)
    before = await service.get_order(order.order_id)

    clock.advance(minutes=5)
    for target in ("cancelled", "in_transit", "delivered"):
        with pytest.raises(InvalidTransitionException) as exc_info:
            await service.update_status(order.order_id, "driver-1", target)
        assert "already completed" in exc_info.value.message

    stored = await service.get_order(order.order_id)
    assert stored.status == OrderStatus.DELIVERED
    assert stored.driver_id == "driver-1"
    assert stored.timeline == before.timeline
    assert stored.timeline.delivered_at is not None


@pytest.mark.asyncio
async def test_cancelled_order_is_immutable(service, seed_order, clock):
    order = await seed_order(status=OrderStatus.CANCELLED, driver_id="driver-1")
    before = await service.get_order(order.order_id)

    clock.advance(minutes=5)
    for target in ("assigned", "picked_up", "in_transit", "delivered", "cancelled"):
        with pytest.raises(InvalidTransitionException):
            await service.update_status(order.order_id, "driver-1", target)

    stored = await service.get_order(order.order_id)
    assert stored.status == OrderStatus.CANCELLED
    assert stored.driver_id == "driver-1"
    assert stored.timeline == before.timeline


@pytest.mark.asyncio
async def test_skipping_a_step_is_rejected(service, seed_order):
    order = await seed_order(status=OrderStatus.ASSIGNED, driver_id="driver-1")
    with pytest.raises(InvalidTransitionException):
        await service.update_status(order.order_id, "driver-1", "delivered")


@pytest.mark.asyncio
async def test_other_driver_cannot_update_status(service, seed_order):
    order = await seed_order(status=OrderStatus.ASSIGNED, driver_id="driver-1")
    with pytest.raises(OrderNotAssignedToDriverException):
        await service.update_status(order.order_id, "driver-2", "picked_up")


@pytest.mark.asyncio
async def test_duplicate_status_update_is_rejected(service, seed_order):
    order = await seed_order(status=OrderStatus.ASSIGNED, driver_id="driver-1")
    await service.update_status(order.order_id, "driver-1", "picked_up")
    with pytest.raises(InvalidTransitionException):
        await service.update_status(order.order_id, "driver-1", "picked_up")


@pytest.mark.asyncio
async def test_driver_note(service, seed_order):
    order = await seed_order(status=OrderStatus.ASSIGNED, driver_id="driver-1")
    updated = await service.update_driver_note(order.order_id, "driver-1", "  Gate code 1234 ")
    assert updated.driver_note == "Gate code 1234"

    with pytest.raises(OrderNotAssignedToDriverException):
        await service.update_driver_note(order.order_id, "driver-2", "hi")
    with pytest.raises(OrderNotFoundException):
        await service.update_driver_note("ORD-0-NOPE", "driver-1", "hi")
