"""
Webhook ledger repository - SQLAlchemy
"""
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DuplicateWebhookEventException
from domain.webhook.entity import WebhookEvent
from domain.webhook.repository import WebhookEventRepository
from infrastructure.models.webhook_event import WebhookEventModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyWebhookEventRepository(WebhookEventRepository):
    """Ledger backed by the unique constraint on event_id"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookEventModel) -> WebhookEvent:
        return WebhookEvent(
            id=model.id,
            event_id=model.event_id,
            event_type=model.event_type,
            event_data=model.event_data or {},
            received_at=model.received_at,
            processed=model.processed,
        )

    async def record(self, event: WebhookEvent) -> WebhookEvent:
        try:
            db_event = WebhookEventModel(
                event_id=event.event_id,
                event_type=event.event_type,
                event_data=event.event_data,
                processed=event.processed,
                received_at=event.received_at or datetime.now(timezone.utc),
            )
            self.session.add(db_event)
            await self.session.flush()
            await self.session.refresh(db_event)
            return self._to_entity(db_event)
        except IntegrityError:
            await self.session.rollback()
            raise DuplicateWebhookEventException(event.event_id)

    async def mark_processed(self, event_id: str) -> bool:
        result = await self.session.execute(
            update(WebhookEventModel)
            .where(WebhookEventModel.event_id == event_id)
            .values(processed=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_by_event_id(self, event_id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEventModel)
            .where(WebhookEventModel.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        db_event = result.scalar_one_or_none()
        return self._to_entity(db_event) if db_event else None
