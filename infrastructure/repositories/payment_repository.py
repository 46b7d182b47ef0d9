"""
Payment repository implementation - SQLAlchemy
"""
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import PaymentAlreadyExistsException
from domain.payment.entity import Payment, PaymentStatus, sources_for
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """Payment mirror repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            order_id=model.order_id,
            stripe_reference=model.stripe_reference,
            amount=model.amount,
            currency=model.currency,
            status=PaymentStatus(model.status),
            customer_id=model.customer_id,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        return PaymentModel(
            id=entity.id,
            order_id=entity.order_id,
            customer_id=entity.customer_id,
            stripe_reference=entity.stripe_reference,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at or datetime.now(timezone.utc),
            updated_at=entity.updated_at or datetime.now(timezone.utc),
        )

    async def create(self, payment: Payment) -> Payment:
        """Insert a payment mirror"""
        try:
            db_payment = self._to_model(payment)
            self.session.add(db_payment)
            await self.session.flush()
            await self.session.refresh(db_payment)
            logger.info(
                "payment_created",
                payment_id=db_payment.id,
                order_id=db_payment.order_id,
                stripe_reference=db_payment.stripe_reference,
            )
            return self._to_entity(db_payment)
        except IntegrityError:
            await self.session.rollback()
            logger.warning("payment_create_conflict", stripe_reference=payment.stripe_reference)
            raise PaymentAlreadyExistsException(payment.stripe_reference)

    async def get_by_stripe_reference(self, stripe_reference: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.stripe_reference == stripe_reference)
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(PaymentModel.id.desc())
            .limit(1)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def advance_status(
        self,
        stripe_reference: str,
        target: PaymentStatus,
        *,
        failure_reason: Optional[str] = None,
    ) -> bool:
        target = PaymentStatus(target)
        sources = [s.value for s in sources_for(target)]
        if not sources:
            return False
        values = {"status": target.value, "updated_at": datetime.now(timezone.utc)}
        if target == PaymentStatus.FAILED:
            values["failure_reason"] = failure_reason
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.stripe_reference == stripe_reference,
                PaymentModel.status.in_(sources),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
