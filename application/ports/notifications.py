"""
Notification port - driver push and contact SMS.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationOutcome:
    delivered: bool
    channel: str
    recipient: str
    error: Optional[str] = None


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Best-effort delivery. Failures come back as an outcome or a
    ``TransientDeliveryError``; callers never let either abort their work."""

    async def send(self, driver_id: str, payload: NotificationPayload) -> NotificationOutcome: ...

    async def send_sms(self, phone: str, message: str) -> NotificationOutcome: ...
