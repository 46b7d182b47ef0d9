"""SQLAlchemy Unit of Work implementation"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.coupon_repository import SQLAlchemyCouponRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from infrastructure.repositories.webhook_event_repository import SQLAlchemyWebhookEventRepository


_REPOSITORIES = {
    "order_repository": SQLAlchemyOrderRepository,
    "payment_repository": SQLAlchemyPaymentRepository,
    "webhook_repository": SQLAlchemyWebhookEventRepository,
    "user_repository": SQLAlchemyUserRepository,
    "coupon_repository": SQLAlchemyCouponRepository,
}


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    One ``AsyncSession`` and at most one transaction per ``async with``.

    Contended writes (driver assignment, status changes, ledger inserts)
    are single conditional statements inside this transaction; the
    repositories report whether they won through their return values.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None
        self._transaction: Optional[AsyncSessionTransaction] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        for attr, repository_cls in _REPOSITORIES.items():
            setattr(self, attr, repository_cls(self.session))
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self.session is not None:
                # close() rolls back anything commit/rollback left open
                await self.session.close()
            self.session = None
            self._transaction = None
            for attr in _REPOSITORIES:
                setattr(self, attr, None)

    async def commit(self) -> None:
        if not self._readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def sqlalchemy_uow_factory(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
    """Build a ``uow_factory(readonly=...)`` bound to ``session_factory``."""

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return factory
