"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository
from domain.pricing.coupon import CouponRepository
from domain.user.repository import UserRepository
from domain.webhook.repository import WebhookEventRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer"""

    order_repository: OrderRepository
    payment_repository: PaymentRepository
    webhook_repository: WebhookEventRepository
    user_repository: UserRepository
    coupon_repository: CouponRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.payment_repository = None  # type: ignore[assignment]
        self.webhook_repository = None  # type: ignore[assignment]
        self.user_repository = None  # type: ignore[assignment]
        self.coupon_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # auto-commit unless read-only or already committed
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Roll the transaction back"""
