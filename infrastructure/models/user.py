"""
User database model - SQLAlchemy ORM mapping
Note: infrastructure detail, business rules live in domain.user.entity.User
"""
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """Users table"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True, comment="E.164")
    roles = Column(JSON, nullable=False, default=list, comment="customer/driver/admin")
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<UserModel(id='{self.id}', email='{self.email}')>"
