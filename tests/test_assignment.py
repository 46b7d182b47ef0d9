import asyncio
from datetime import timedelta

import pytest

from application.services.assignment_service import AssignmentCoordinator, classify_failed_assignment
from domain.common.exceptions import (
    DriverNotEligibleException,
    OrderAssignmentConflictException,
    OrderNotAssignableException,
    OrderNotFoundException,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.user.entity import UserRole

from .conftest import NOW, make_order


@pytest.fixture
def coordinator(uow_factory, notifier, clock):
    return AssignmentCoordinator(uow_factory, notifier, clock)


@pytest.mark.asyncio
async def test_accept_binds_driver_and_clears_expiry(coordinator, seed_order, seed_user, notifier):
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order()

    accepted = await coordinator.accept(order.order_id, "driver-1")

    assert accepted.status == OrderStatus.ASSIGNED
    assert accepted.driver_id == "driver-1"
    assert accepted.expires_at is None
    assert accepted.timeline.assigned_at == NOW
    # pickup and dropoff contacts are told a driver is coming
    assert {phone for phone, _ in notifier.sms} == {"+16045550100", "+16045550199"}


@pytest.mark.asyncio
async def test_concurrent_accepts_have_exactly_one_winner(coordinator, seed_order, seed_user, uow_factory):
    drivers = [f"driver-{i}" for i in range(8)]
    for driver_id in drivers:
        await seed_user(driver_id, UserRole.DRIVER)
    order = await seed_order()

    results = await asyncio.gather(
        *(coordinator.accept(order.order_id, d) for d in drivers),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    assert len(winners) == 1
    assert len(losers) == len(drivers) - 1
    assert all(isinstance(e, OrderAssignmentConflictException) for e in losers)

    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_order_id(order.order_id)
    assert stored.driver_id == winners[0].driver_id
    assert stored.status == OrderStatus.ASSIGNED


@pytest.mark.asyncio
async def test_second_accept_is_a_conflict(coordinator, seed_order, seed_user):
    await seed_user("driver-1", UserRole.DRIVER)
    await seed_user("driver-2", UserRole.DRIVER)
    order = await seed_order()
    await coordinator.accept(order.order_id, "driver-1")

    with pytest.raises(OrderAssignmentConflictException):
        await coordinator.accept(order.order_id, "driver-2")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "user_id,roles,active",
    [
        ("customer-1", (UserRole.CUSTOMER,), True),
        ("driver-off", (UserRole.DRIVER,), False),
    ],
)
async def test_ineligible_driver_is_forbidden(coordinator, seed_order, seed_user, user_id, roles, active):
    await seed_user(user_id, *roles, is_active=active)
    order = await seed_order()
    with pytest.raises(DriverNotEligibleException):
        await coordinator.accept(order.order_id, user_id)


@pytest.mark.asyncio
async def test_unknown_driver_is_forbidden(coordinator, seed_order):
    order = await seed_order()
    with pytest.raises(DriverNotEligibleException):
        await coordinator.accept(order.order_id, "ghost")


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(coordinator, seed_user):
    await seed_user("driver-1", UserRole.DRIVER)
    with pytest.raises(OrderNotFoundException):
        await coordinator.accept("ORD-missing", "driver-1")


@pytest.mark.asyncio
async def test_unpaid_order_cannot_be_accepted(coordinator, seed_order, seed_user):
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order(payment_status=OrderPaymentStatus.UNPAID)
    with pytest.raises(OrderNotAssignableException) as exc_info:
        await coordinator.accept(order.order_id, "driver-1")
    assert "payment" in exc_info.value.message


@pytest.mark.asyncio
async def test_expired_order_cannot_be_accepted(coordinator, seed_order, seed_user, clock):
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order()
    clock.advance(minutes=31)
    with pytest.raises(OrderNotAssignableException) as exc_info:
        await coordinator.accept(order.order_id, "driver-1")
    assert "expired" in exc_info.value.message


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_accepted(coordinator, seed_order, seed_user):
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order(status=OrderStatus.CANCELLED)
    with pytest.raises(OrderNotAssignableException):
        await coordinator.accept(order.order_id, "driver-1")


@pytest.mark.asyncio
async def test_sms_failure_does_not_undo_assignment(uow_factory, seed_order, seed_user, clock):
    from .conftest import FakeNotifier

    notifier = FakeNotifier(failing={"+16045550100", "+16045550199"})
    coordinator = AssignmentCoordinator(uow_factory, notifier, clock)
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order()

    accepted = await coordinator.accept(order.order_id, "driver-1")
    assert accepted.status == OrderStatus.ASSIGNED
    assert notifier.sms == []


def test_classification_order():
    pending = make_order()
    assert isinstance(classify_failed_assignment("x", None, NOW), OrderNotFoundException)

    taken = make_order(driver_id="driver-9")
    assert isinstance(classify_failed_assignment(taken.order_id, taken, NOW), OrderAssignmentConflictException)

    late = classify_failed_assignment(pending.order_id, pending, NOW + timedelta(hours=1))
    assert isinstance(late, OrderNotAssignableException)

    # nothing explains the miss: someone else moved the row in between
    assert isinstance(classify_failed_assignment(pending.order_id, pending, NOW), OrderAssignmentConflictException)
