"""
Best-effort SMS updates to an order's pickup and dropoff contacts.
"""
from __future__ import annotations

from application.ports.notifications import NotificationDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import TransientDeliveryError
from domain.order.entity import Order, OrderStatus


logger = get_logger(__name__)


def contact_messages(order: Order, status: OrderStatus) -> list[tuple[str, str]]:
    """(phone, message) pairs to send when ``order`` enters ``status``."""
    ref = order.order_id
    pickup, dropoff = order.pickup, order.dropoff
    if status == OrderStatus.ASSIGNED:
        return [
            (pickup.contact_phone,
             f"Hi {pickup.contact_name}, a driver has accepted delivery {ref} and is on the way to {pickup.address}."),
            (dropoff.contact_phone,
             f"Hi {dropoff.contact_name}, a driver has been assigned to delivery {ref} for {dropoff.address}."),
        ]
    if status == OrderStatus.PICKED_UP:
        return [
            (dropoff.contact_phone,
             f"Hi {dropoff.contact_name}, your package for delivery {ref} has been picked up and is on its way."),
        ]
    if status == OrderStatus.DELIVERED:
        return [
            (pickup.contact_phone,
             f"Hi {pickup.contact_name}, delivery {ref} has been completed."),
            (dropoff.contact_phone,
             f"Hi {dropoff.contact_name}, delivery {ref} has been dropped off at {dropoff.address}."),
        ]
    return []


async def notify_contacts(dispatcher: NotificationDispatcher, order: Order, status: OrderStatus) -> int:
    """Send the status SMS; returns how many were delivered. Never raises delivery errors."""
    delivered = 0
    for phone, message in contact_messages(order, status):
        try:
            outcome = await dispatcher.send_sms(phone, message)
        except TransientDeliveryError as exc:
            logger.warning(
                "contact_sms_failed",
                order_id=order.order_id,
                status=status.value,
                error=exc.message,
            )
            continue
        except Exception:
            logger.error("contact_sms_error", order_id=order.order_id, status=status.value, exc_info=True)
            continue
        if outcome.delivered:
            delivered += 1
        else:
            logger.info("contact_sms_skipped", order_id=order.order_id, reason=outcome.error)
    return delivered
