"""
Payment database model - SQLAlchemy ORM mapping
Note: infrastructure detail, business rules live in domain.payment.entity.Payment
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """Stripe PaymentIntent mirror"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(String(40), index=True, nullable=False)
    customer_id = Column(String(64), nullable=True, index=True)
    stripe_reference = Column(String(200), unique=True, nullable=False, comment="PaymentIntent id")

    amount = Column(Integer, nullable=False, comment="minor units")
    currency = Column(String(3), nullable=False, default="CAD")

    status = Column(
        String(40),
        nullable=False,
        default="requires_payment_method",
        index=True,
        comment="requires_payment_method/processing/succeeded/failed/canceled",
    )
    failure_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_payments_order_status", "order_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_id='{self.order_id}', "
            f"stripe_reference='{self.stripe_reference}', status='{self.status}')>"
        )
