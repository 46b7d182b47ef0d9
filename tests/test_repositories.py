"""Conditional writes and unique claims at the persistence layer."""
from datetime import timedelta

import pytest

from domain.common.exceptions import DuplicateWebhookEventException
from domain.order.entity import OrderStatus
from domain.pricing.coupon import DiscountType
from domain.user.entity import UserRole
from domain.webhook.entity import WebhookEvent

from .conftest import NOW


async def _record(uow_factory, event: WebhookEvent):
    async with uow_factory() as uow:
        return await uow.webhook_repository.record(event)


@pytest.mark.asyncio
async def test_ledger_rejects_second_event_with_same_id(uow_factory):
    await _record(uow_factory, WebhookEvent(
        id=None,
        event_id="evt_1",
        event_type="payment_intent.succeeded",
        event_data={"object": {"id": "pi_1"}},
        received_at=NOW,
    ))
    async with uow_factory(readonly=True) as uow:
        first = await uow.webhook_repository.get_by_event_id("evt_1")

    with pytest.raises(DuplicateWebhookEventException) as exc_info:
        await _record(uow_factory, WebhookEvent(
            id=None,
            event_id="evt_1",
            event_type="payment_intent.canceled",
            event_data={"object": {"id": "pi_other"}},
            received_at=NOW + timedelta(minutes=5),
        ))
    assert exc_info.value.event_id == "evt_1"

    async with uow_factory(readonly=True) as uow:
        stored = await uow.webhook_repository.get_by_event_id("evt_1")
    assert stored.id == first.id
    assert stored.event_type == "payment_intent.succeeded"
    assert stored.event_data == {"object": {"id": "pi_1"}}
    assert stored.received_at == first.received_at
    assert stored.processed is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "roles,active,assigned",
    [
        ((UserRole.DRIVER,), True, True),
        ((UserRole.CUSTOMER, UserRole.DRIVER), True, True),
        ((UserRole.CUSTOMER,), True, False),
        ((UserRole.DRIVER,), False, False),
    ],
)
async def test_assign_driver_checks_eligibility_in_the_write(uow_factory, seed_order, seed_user, roles, active, assigned):
    await seed_user("user-1", *roles, is_active=active)
    order = await seed_order()

    async with uow_factory() as uow:
        result = await uow.order_repository.assign_driver(order.order_id, "user-1", NOW)

    assert (result is not None) is assigned
    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_order_id(order.order_id)
    if assigned:
        assert stored.driver_id == "user-1"
        assert stored.status == OrderStatus.ASSIGNED
    else:
        assert stored.driver_id is None
        assert stored.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_assign_driver_refuses_unknown_user(uow_factory, seed_order):
    order = await seed_order()
    async with uow_factory() as uow:
        assert await uow.order_repository.assign_driver(order.order_id, "ghost", NOW) is None


@pytest.mark.asyncio
async def test_coupon_increment_stops_at_usage_limit(uow_factory, seed_coupon):
    coupon = await seed_coupon(code="TWICE", discount_type=DiscountType.FIXED, discount_value=100, usage_limit=2)

    outcomes = []
    for _ in range(3):
        async with uow_factory() as uow:
            outcomes.append(await uow.coupon_repository.increment_usage(coupon.id))

    assert outcomes == [True, True, False]
    async with uow_factory(readonly=True) as uow:
        assert (await uow.coupon_repository.get_by_code("TWICE")).used_count == 2


@pytest.mark.asyncio
async def test_unlimited_coupon_always_increments(uow_factory, seed_coupon):
    coupon = await seed_coupon(code="OPEN", discount_type=DiscountType.FIXED, discount_value=100)
    for _ in range(3):
        async with uow_factory() as uow:
            assert await uow.coupon_repository.increment_usage(coupon.id) is True
