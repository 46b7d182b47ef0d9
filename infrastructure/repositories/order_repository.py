"""
Order repository implementation - SQLAlchemy

Every state change is a single ``UPDATE ... WHERE <predicate>``; the
affected row count tells whether this caller won.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import String, and_, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderValidationException
from domain.order.entity import (
    ContactPoint,
    CouponSnapshot,
    Distance,
    FeeBreakdown,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PackageDetails,
    PackageSize,
    Pricing,
    Timeline,
    ensure_utc,
)
from domain.order.repository import OrderQuery, OrderRepository
from domain.user.entity import UserRole
from infrastructure.models.order import OrderModel
from infrastructure.models.user import UserModel


logger = get_logger(__name__)


def _eligible_driver(driver_id: str):
    """EXISTS clause: ``driver_id`` is an active user holding the driver role."""
    # roles is a JSON array of role values; match the quoted value in its text form
    return (
        select(UserModel.id)
        .where(
            UserModel.id == driver_id,
            UserModel.is_active.is_(True),
            cast(UserModel.roles, String).like(f'%"{UserRole.DRIVER.value}"%'),
        )
        .exists()
    )


def _dt_to_json(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def _dt_from_json(value: Optional[str]) -> Optional[datetime]:
    return ensure_utc(datetime.fromisoformat(value)) if value else None


def _contact_to_json(contact: ContactPoint) -> dict[str, Any]:
    return {
        "address": contact.address,
        "lat": contact.lat,
        "lng": contact.lng,
        "contact_name": contact.contact_name,
        "contact_phone": contact.contact_phone,
        "notes": contact.notes,
        "scheduled_at": _dt_to_json(contact.scheduled_at),
    }


def _contact_from_json(data: dict[str, Any], actual_at: Optional[datetime]) -> ContactPoint:
    return ContactPoint(
        address=data["address"],
        lat=data["lat"],
        lng=data["lng"],
        contact_name=data["contact_name"],
        contact_phone=data["contact_phone"],
        notes=data.get("notes"),
        scheduled_at=_dt_from_json(data.get("scheduled_at")),
        actual_at=actual_at,
    )


class SQLAlchemyOrderRepository(OrderRepository):
    """Order repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """Map a row to the domain entity"""
        picked_up_at = ensure_utc(model.picked_up_at)
        delivered_at = ensure_utc(model.delivered_at)
        package = model.package or {}
        return Order(
            id=model.id,
            order_id=model.order_id,
            customer_id=model.customer_id,
            status=OrderStatus(model.status),
            payment_status=OrderPaymentStatus(model.payment_status),
            # contact arrival times are the pickup/delivery stamps
            pickup=_contact_from_json(model.pickup, picked_up_at),
            dropoff=_contact_from_json(model.dropoff, delivered_at),
            package=PackageDetails(
                size=PackageSize(package["size"]),
                weight=package.get("weight"),
                description=package.get("description"),
                item_price=package.get("item_price"),
            ),
            distance=Distance(km=model.distance_km, duration_minutes=model.duration_minutes),
            pricing=Pricing(
                base_fare=model.base_fare,
                distance_surcharge=model.distance_surcharge,
                fees=FeeBreakdown(
                    courier_fee=model.courier_fee,
                    carbon_fee=model.carbon_fee,
                    service_fee=model.service_fee,
                ),
                subtotal=model.subtotal,
                tax=model.tax,
                coupon_discount=model.coupon_discount,
                total=model.total,
                currency=model.currency,
            ),
            timeline=Timeline(
                created_at=model.created_at,
                assigned_at=model.assigned_at,
                picked_up_at=picked_up_at,
                delivered_at=delivered_at,
                cancelled_at=model.cancelled_at,
            ),
            coupon=CouponSnapshot(**model.coupon) if model.coupon else None,
            driver_id=model.driver_id,
            expires_at=model.expires_at,
            driver_note=model.driver_note,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """Map the domain entity to a row"""
        pricing = entity.pricing
        coupon = entity.coupon
        return OrderModel(
            id=entity.id,
            order_id=entity.order_id,
            customer_id=entity.customer_id,
            status=entity.status.value,
            payment_status=entity.payment_status.value,
            driver_id=entity.driver_id,
            expires_at=entity.expires_at,
            pickup=_contact_to_json(entity.pickup),
            dropoff=_contact_to_json(entity.dropoff),
            package={
                "size": entity.package.size.value,
                "weight": entity.package.weight,
                "description": entity.package.description,
                "item_price": entity.package.item_price,
            },
            distance_km=entity.distance.km,
            duration_minutes=entity.distance.duration_minutes,
            base_fare=pricing.base_fare,
            distance_surcharge=pricing.distance_surcharge,
            courier_fee=pricing.fees.courier_fee,
            carbon_fee=pricing.fees.carbon_fee,
            service_fee=pricing.fees.service_fee,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            coupon_discount=pricing.coupon_discount,
            total=pricing.total,
            currency=pricing.currency,
            coupon={
                "code": coupon.code,
                "coupon_id": coupon.coupon_id,
                "discount_type": coupon.discount_type,
                "discount_value": coupon.discount_value,
            } if coupon else None,
            driver_note=entity.driver_note,
            created_at=entity.timeline.created_at,
            assigned_at=entity.timeline.assigned_at,
            picked_up_at=entity.timeline.picked_up_at,
            delivered_at=entity.timeline.delivered_at,
            cancelled_at=entity.timeline.cancelled_at,
            updated_at=entity.updated_at or entity.timeline.created_at,
        )

    def _conditions(self, query: OrderQuery) -> list:
        conditions = []
        if query.status is not None:
            conditions.append(OrderModel.status == OrderStatus(query.status).value)
        if query.has_driver is True:
            conditions.append(OrderModel.driver_id.is_not(None))
        elif query.has_driver is False:
            conditions.append(OrderModel.driver_id.is_(None))
        if query.driver_id is not None:
            conditions.append(OrderModel.driver_id == query.driver_id)
        if query.payment_status is not None:
            conditions.append(OrderModel.payment_status == OrderPaymentStatus(query.payment_status).value)
        if query.expires_before is not None:
            conditions.append(and_(
                OrderModel.expires_at.is_not(None),
                OrderModel.expires_at < ensure_utc(query.expires_before),
            ))
        if query.expires_after is not None:
            conditions.append(or_(
                OrderModel.expires_at.is_(None),
                OrderModel.expires_at > ensure_utc(query.expires_after),
            ))
        if query.created_from is not None:
            conditions.append(OrderModel.created_at >= ensure_utc(query.created_from))
        if query.created_to is not None:
            conditions.append(OrderModel.created_at <= ensure_utc(query.created_to))
        return conditions

    async def _conditional_update(self, predicate: list, values: dict) -> int:
        stmt = (
            update(OrderModel)
            .where(*predicate)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def create(self, order: Order) -> Order:
        """Insert a new order"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
            logger.info(
                "order_created",
                order_id=db_order.order_id,
                customer_id=db_order.customer_id,
                total=db_order.total,
            )
            return self._to_entity(db_order)
        except IntegrityError:
            await self.session.rollback()
            logger.warning("order_create_conflict", order_id=order.order_id)
            raise OrderValidationException(
                f"Order id {order.order_id} already exists", field="order_id"
            )

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """Fetch by external id, bypassing any stale identity-map copy"""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def find(self, query: OrderQuery) -> List[Order]:
        stmt = (
            select(OrderModel)
            .where(*self._conditions(query))
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(query.skip)
            .execution_options(populate_existing=True)
        )
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, query: OrderQuery) -> int:
        result = await self.session.execute(
            select(func.count(OrderModel.id)).where(*self._conditions(query))
        )
        return result.scalar_one()

    async def assign_driver(self, order_id: str, driver_id: str, now: datetime) -> Optional[Order]:
        now = ensure_utc(now)
        rowcount = await self._conditional_update(
            [
                OrderModel.order_id == order_id,
                OrderModel.status == OrderStatus.PENDING.value,
                OrderModel.driver_id.is_(None),
                OrderModel.payment_status == OrderPaymentStatus.PAID.value,
                or_(OrderModel.expires_at.is_(None), OrderModel.expires_at > now),
                _eligible_driver(driver_id),
            ],
            {
                "driver_id": driver_id,
                "status": OrderStatus.ASSIGNED.value,
                "assigned_at": now,
                "expires_at": None,
                "updated_at": now,
            },
        )
        if rowcount != 1:
            return None
        return await self.get_by_order_id(order_id)

    async def apply_transition(
        self,
        order_id: str,
        *,
        driver_id: str,
        expected_status: OrderStatus,
        target_status: OrderStatus,
        timeline_field: Optional[str],
        now: datetime,
    ) -> Optional[Order]:
        now = ensure_utc(now)
        values: dict[str, Any] = {"status": OrderStatus(target_status).value, "updated_at": now}
        predicate = [
            OrderModel.order_id == order_id,
            OrderModel.status == OrderStatus(expected_status).value,
            OrderModel.driver_id == driver_id,
        ]
        if timeline_field:
            column = getattr(OrderModel, timeline_field)
            values[timeline_field] = now
            # a timeline stamp is written at most once
            predicate.append(column.is_(None))
        rowcount = await self._conditional_update(predicate, values)
        if rowcount != 1:
            return None
        return await self.get_by_order_id(order_id)

    async def cancel_if_unclaimed(self, order_id: str, now: datetime) -> bool:
        now = ensure_utc(now)
        rowcount = await self._conditional_update(
            [
                OrderModel.order_id == order_id,
                OrderModel.status == OrderStatus.PENDING.value,
                OrderModel.driver_id.is_(None),
                OrderModel.expires_at.is_not(None),
                OrderModel.expires_at < now,
            ],
            {
                "status": OrderStatus.CANCELLED.value,
                "cancelled_at": now,
                "expires_at": None,
                "updated_at": now,
            },
        )
        return rowcount == 1

    async def mark_paid(self, order_id: str, now: datetime) -> bool:
        rowcount = await self._conditional_update(
            [
                OrderModel.order_id == order_id,
                OrderModel.payment_status == OrderPaymentStatus.UNPAID.value,
            ],
            {"payment_status": OrderPaymentStatus.PAID.value, "updated_at": ensure_utc(now)},
        )
        return rowcount == 1

    async def set_driver_note(self, order_id: str, driver_id: str, note: str) -> Optional[Order]:
        rowcount = await self._conditional_update(
            [OrderModel.order_id == order_id, OrderModel.driver_id == driver_id],
            {"driver_note": note},
        )
        if rowcount != 1:
            return None
        return await self.get_by_order_id(order_id)
