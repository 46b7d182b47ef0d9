"""
Coupon repository implementation - SQLAlchemy
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DomainValidationException
from domain.pricing.coupon import Coupon, CouponRepository, DiscountType
from infrastructure.models.coupon import CouponModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyCouponRepository(CouponRepository):
    """Coupon repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CouponModel) -> Coupon:
        return Coupon(
            id=model.id,
            code=model.code,
            discount_type=DiscountType(model.discount_type),
            discount_value=model.discount_value,
            max_discount=model.max_discount,
            min_subtotal=model.min_subtotal,
            usage_limit=model.usage_limit,
            used_count=model.used_count,
            valid_from=model.valid_from,
            valid_until=model.valid_until,
            is_active=model.is_active,
        )

    async def create(self, coupon: Coupon) -> Coupon:
        try:
            db_coupon = CouponModel(
                code=coupon.code,
                discount_type=coupon.discount_type.value,
                discount_value=coupon.discount_value,
                max_discount=coupon.max_discount,
                min_subtotal=coupon.min_subtotal,
                usage_limit=coupon.usage_limit,
                used_count=coupon.used_count,
                valid_from=coupon.valid_from,
                valid_until=coupon.valid_until,
                is_active=coupon.is_active,
            )
            self.session.add(db_coupon)
            await self.session.flush()
            await self.session.refresh(db_coupon)
            return self._to_entity(db_coupon)
        except IntegrityError:
            await self.session.rollback()
            raise DomainValidationException(f"Coupon {coupon.code} already exists", field="code")

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.code == (code or "").strip().upper())
            .execution_options(populate_existing=True)
        )
        db_coupon = result.scalar_one_or_none()
        return self._to_entity(db_coupon) if db_coupon else None

    async def increment_usage(self, coupon_id: int) -> bool:
        result = await self.session.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.usage_limit.is_(None), CouponModel.used_count < CouponModel.usage_limit),
            )
            .values(used_count=CouponModel.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
