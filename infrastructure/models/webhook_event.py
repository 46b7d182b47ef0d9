"""
Webhook ledger model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from datetime import datetime, timezone

from .base import Base


class WebhookEventModel(Base):
    """One row per provider event id. The unique constraint is the idempotency guard."""
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(200), unique=True, nullable=False, comment="provider event id")
    event_type = Column(String(100), nullable=False, index=True)
    event_data = Column(JSON, nullable=True)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    received_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<WebhookEventModel(event_id='{self.event_id}', processed={self.processed})>"
