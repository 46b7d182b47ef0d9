"""
Driver assignment - exactly one driver wins an order.

The winner is decided by a single conditional UPDATE in the order
repository. Losers re-read the row only to pick the right error.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from application.ports.notifications import NotificationDispatcher
from application.services.contact_notifier import notify_contacts
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DriverNotEligibleException,
    OrderAssignmentConflictException,
    OrderNotAssignableException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderPaymentStatus, OrderStatus, ensure_utc, utc_now


logger = get_logger(__name__)


def classify_failed_assignment(order_id: str, current: Optional[Order], now: datetime) -> BusinessException:
    """Explain why the conditional assignment matched no row."""
    if current is None:
        return OrderNotFoundException(order_id)
    if current.driver_id is not None:
        return OrderAssignmentConflictException(order_id)
    if current.status != OrderStatus.PENDING:
        return OrderNotAssignableException(order_id, f"order is {current.status.value}")
    if current.payment_status != OrderPaymentStatus.PAID:
        return OrderNotAssignableException(order_id, "payment has not been confirmed")
    if current.is_expired(now):
        return OrderNotAssignableException(order_id, "claim window has expired")
    # state moved on and back between the update and the read
    return OrderAssignmentConflictException(order_id)


class AssignmentCoordinator:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: NotificationDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._clock = clock

    async def accept(self, order_id: str, driver_id: str, *, now: Optional[datetime] = None) -> Order:
        """
        Bind ``driver_id`` to a pending, paid, unexpired, unassigned order.

        Raises:
            DriverNotEligibleException: unknown, inactive or non-driver user
            OrderNotFoundException: no such order
            OrderAssignmentConflictException: another driver holds the order
            OrderNotAssignableException: cancelled, unpaid, expired or past pending
        """
        now = ensure_utc(now) if now else self._clock()

        async with self._uow_factory() as uow:
            order = await uow.order_repository.assign_driver(order_id, driver_id, now)
            if order is None:
                driver = await uow.user_repository.get_by_id(driver_id)
                if driver is None or not driver.is_eligible_driver:
                    logger.info("order_accept_rejected_driver", order_id=order_id, driver_id=driver_id)
                    raise DriverNotEligibleException(driver_id)
                current = await uow.order_repository.get_by_order_id(order_id)
                error = classify_failed_assignment(order_id, current, now)
                logger.info(
                    "order_accept_lost",
                    order_id=order_id,
                    driver_id=driver_id,
                    reason=error.error_type,
                )
                raise error

        logger.info("order_assigned", order_id=order_id, driver_id=driver_id)
        await notify_contacts(self._notifier, order, OrderStatus.ASSIGNED)
        return order
