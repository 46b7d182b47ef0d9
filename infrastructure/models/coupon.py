"""
Coupon database model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class CouponModel(Base):
    """Coupons table. Codes are stored upper-case."""
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    discount_type = Column(String(20), nullable=False, comment="percentage/fixed/free_base_fare")
    discount_value = Column(Integer, nullable=False, default=0)
    max_discount = Column(Integer, nullable=True)
    min_subtotal = Column(Integer, nullable=False, default=0)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<CouponModel(code='{self.code}', used_count={self.used_count})>"
