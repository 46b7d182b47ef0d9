"""
Webhook ledger entry - one row per provider event id
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from domain.order.entity import ensure_utc


@dataclass
class WebhookEvent:
    """
    Ledger record of a received webhook.

    Business rules:
    1. event_id is unique; inserting it is the idempotency claim
    2. processed flips to True only after the handler completed
    """

    id: Optional[int]
    event_id: str
    event_type: str
    event_data: dict[str, Any] = field(default_factory=dict)
    received_at: Optional[datetime] = None
    processed: bool = False

    def __post_init__(self):
        self.received_at = ensure_utc(self.received_at)
        if self.event_data is None:
            self.event_data = {}
