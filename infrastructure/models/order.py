"""
Order database model - SQLAlchemy ORM mapping
Note: infrastructure detail, business rules live in domain.order.entity.Order
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, Index
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    Order table

    Columns touched by conditional updates (status, driver_id,
    payment_status, expires_at, timeline stamps) are flat so the predicates
    can be expressed in SQL. Contact and package details are JSON.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(40), unique=True, index=True, nullable=False, comment="external order id")
    customer_id = Column(String(64), index=True, nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="unpaid", index=True)
    driver_id = Column(String(64), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    pickup = Column(JSON, nullable=False)
    dropoff = Column(JSON, nullable=False)
    package = Column(JSON, nullable=False)

    distance_km = Column(Float, nullable=False, default=0.0)
    duration_minutes = Column(Integer, nullable=False, default=0)

    # Pricing, integer minor units
    base_fare = Column(Integer, nullable=False)
    distance_surcharge = Column(Integer, nullable=False, default=0)
    courier_fee = Column(Integer, nullable=False, default=0)
    carbon_fee = Column(Integer, nullable=False, default=0)
    service_fee = Column(Integer, nullable=False, default=0)
    subtotal = Column(Integer, nullable=False)
    tax = Column(Integer, nullable=False)
    coupon_discount = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="CAD")

    coupon = Column(JSON, nullable=True, comment="coupon snapshot at creation")
    driver_note = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_orders_status_driver", "status", "driver_id"),
        Index("ix_orders_status_expires", "status", "expires_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_id='{self.order_id}', "
            f"status='{self.status}', driver_id='{self.driver_id}')>"
        )
