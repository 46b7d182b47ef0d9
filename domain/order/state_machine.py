"""
Order status state machine.

Pure transition-table logic. Callers persist the result through a
conditional update so the check and the write happen atomically.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.common.exceptions import InvalidTransitionException
from domain.order.entity import OrderStatus


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ASSIGNED, OrderStatus.CANCELLED}),
    OrderStatus.ASSIGNED: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Timeline field stamped by entering each status. in_transit stamps nothing.
TIMELINE_FIELDS: dict[OrderStatus, Optional[str]] = {
    OrderStatus.ASSIGNED: "assigned_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.IN_TRANSIT: None,
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


@dataclass(frozen=True)
class Transition:
    previous: OrderStatus
    target: OrderStatus
    timeline_field: Optional[str]


def allowed_targets(status: OrderStatus) -> frozenset[OrderStatus]:
    return TRANSITIONS[OrderStatus(status)]


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[OrderStatus(status)]


def transition(current: OrderStatus, target: OrderStatus | str) -> Transition:
    """
    Validate ``current -> target``.

    Raises:
        InvalidTransitionException: ``target`` is not reachable from ``current``
            (including unknown target names).
    """
    current = OrderStatus(current)
    try:
        target = OrderStatus(target)
    except ValueError:
        raise InvalidTransitionException(current.value, str(target)) from None

    if target not in TRANSITIONS[current]:
        raise InvalidTransitionException(current.value, target.value)
    return Transition(previous=current, target=target, timeline_field=TIMELINE_FIELDS[target])
