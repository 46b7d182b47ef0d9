"""
Webhook ledger repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import WebhookEvent


class WebhookEventRepository(ABC):
    """Append-only ledger of processed provider events"""

    @abstractmethod
    async def record(self, event: WebhookEvent) -> WebhookEvent:
        """
        Insert the event.

        Raises:
            DuplicateWebhookEventException: the event id is already recorded
        """
        pass

    @abstractmethod
    async def mark_processed(self, event_id: str) -> bool:
        """Flag the event as handled. Returns True if a row changed."""
        pass

    @abstractmethod
    async def get_by_event_id(self, event_id: str) -> Optional[WebhookEvent]:
        pass
