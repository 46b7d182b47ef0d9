"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .payment import PaymentModel
from .webhook_event import WebhookEventModel
from .user import UserModel
from .coupon import CouponModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PaymentModel",
    "WebhookEventModel",
    "UserModel",
    "CouponModel",
]
