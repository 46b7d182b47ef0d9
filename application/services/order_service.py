"""
Order application service - creation, driver status updates and queries.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from application.dtos.orders import ContactPointIn, CreateOrderRequest
from application.ports.notifications import NotificationDispatcher
from application.services.contact_notifier import notify_contacts
from application.utils.phone import normalize_phone
from core.logging_config import get_logger
from domain.common.exceptions import (
    InvalidCouponException,
    InvalidTransitionException,
    OrderNotAssignedToDriverException,
    OrderNotFoundException,
    OrderValidationException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    ContactPoint,
    Distance,
    FeeBreakdown,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PackageDetails,
    PackageSize,
    Timeline,
    ensure_utc,
    generate_order_id,
    utc_now,
)
from domain.order.repository import OrderQuery
from domain.order.state_machine import transition
from domain.pricing.coupon import CouponValidator
from domain.pricing.engine import DEFAULT_CURRENCY, PricingEngine


logger = get_logger(__name__)

# a lost status race is re-validated against the fresh row this many times
MAX_TRANSITION_ATTEMPTS = 3


def _contact_from_request(name: str, contact: Optional[ContactPointIn]) -> ContactPoint:
    if contact is None:
        raise OrderValidationException(f"{name} details are required", field=name)
    for attr in ("address", "lat", "lng", "contact_name", "contact_phone"):
        value = getattr(contact, attr)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise OrderValidationException(f"{name}.{attr} is required", field=f"{name}.{attr}")
    if not -90 <= contact.lat <= 90 or not -180 <= contact.lng <= 180:
        raise OrderValidationException(f"{name} coordinates are out of range", field=name)
    try:
        phone = normalize_phone(contact.contact_phone)
    except ValueError:
        raise OrderValidationException(
            f"{name}.contact_phone is not a valid phone number", field=f"{name}.contact_phone"
        ) from None
    return ContactPoint(
        address=contact.address.strip(),
        lat=contact.lat,
        lng=contact.lng,
        contact_name=contact.contact_name.strip(),
        contact_phone=phone,
        notes=contact.notes,
        scheduled_at=ensure_utc(contact.scheduled_at),
    )


class OrderApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        pricing_engine: PricingEngine,
        coupon_validator: CouponValidator,
        notifier: NotificationDispatcher,
        *,
        claim_window: timedelta = timedelta(minutes=30),
        currency: str = DEFAULT_CURRENCY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self._pricing_engine = pricing_engine
        self._coupon_validator = coupon_validator
        self._notifier = notifier
        self._claim_window = claim_window
        self._currency = currency
        self._clock = clock

    async def create_order(self, customer_id: str, request: CreateOrderRequest) -> Order:
        """
        Validate, price and persist a new pending/unpaid order.

        Raises:
            OrderValidationException: missing or malformed input
            InvalidCouponException: the coupon code was rejected
        """
        if not customer_id:
            raise OrderValidationException("customer id is required", field="customer_id")
        pickup = _contact_from_request("pickup", request.pickup)
        dropoff = _contact_from_request("dropoff", request.dropoff)

        if request.package is None or not request.package.size:
            raise OrderValidationException("package.size is required", field="package.size")
        try:
            size = PackageSize(request.package.size.upper())
        except ValueError:
            raise OrderValidationException(
                "package.size must be one of XS, S, M, L", field="package.size"
            ) from None
        package = PackageDetails(
            size=size,
            weight=request.package.weight,
            description=request.package.description,
            item_price=request.package.item_price,
        )

        if request.distance is None or request.distance.km is None or request.distance.duration_minutes is None:
            raise OrderValidationException("distance km and duration are required", field="distance")
        if request.distance.km < 0 or request.distance.duration_minutes < 0:
            raise OrderValidationException("distance must not be negative", field="distance")
        distance = Distance(km=request.distance.km, duration_minutes=request.distance.duration_minutes)

        if request.pricing is None or request.pricing.base_fare is None:
            raise OrderValidationException("pricing.base_fare is required", field="pricing.base_fare")
        fees_in = request.pricing.fees
        quote = await self._pricing_engine.compute_pricing(
            request.pricing.base_fare,
            request.pricing.distance_surcharge,
            FeeBreakdown(
                courier_fee=fees_in.courier_fee,
                carbon_fee=fees_in.carbon_fee,
                service_fee=fees_in.service_fee,
            ),
            request.pricing.subtotal,
            (request.coupon_code or "").strip() or None,
            currency=self._currency,
        )

        now = self._clock()
        order = Order(
            id=None,
            order_id=generate_order_id(now),
            customer_id=customer_id,
            status=OrderStatus.PENDING,
            payment_status=OrderPaymentStatus.UNPAID,
            pickup=pickup,
            dropoff=dropoff,
            package=package,
            distance=distance,
            pricing=quote.pricing,
            timeline=Timeline(created_at=now),
            coupon=quote.coupon_snapshot,
            expires_at=now + self._claim_window,
            updated_at=now,
        )

        if quote.coupon is not None and quote.coupon.id is not None:
            # limit check and claim are one conditional UPDATE
            if not await self._coupon_validator.record_usage(quote.coupon.id):
                raise InvalidCouponException(quote.coupon.code, "Coupon usage limit reached")

        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(order)
        return order

    async def get_order(self, order_id: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def list_available_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Order], int]:
        """Pending, unassigned, paid and unexpired orders, newest first."""
        now = ensure_utc(now) if now else self._clock()
        query = OrderQuery(
            status=OrderStatus.PENDING,
            has_driver=False,
            payment_status=OrderPaymentStatus.PAID,
            expires_after=now,
            skip=offset,
            limit=limit,
        )
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.find(query)
            total = await uow.order_repository.count(query)
        return orders, total

    async def update_status(
        self,
        order_id: str,
        driver_id: str,
        new_status: str,
        *,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Move a driver's order along the state machine.

        Raises:
            OrderNotFoundException: no such order
            OrderNotAssignedToDriverException: the order belongs to another driver
            InvalidTransitionException: ``new_status`` is not reachable
        """
        now = ensure_utc(now) if now else self._clock()
        updated: Optional[Order] = None

        async with self._uow_factory() as uow:
            for _ in range(MAX_TRANSITION_ATTEMPTS):
                current = await uow.order_repository.get_by_order_id(order_id)
                if current is None:
                    raise OrderNotFoundException(order_id)
                if current.driver_id != driver_id:
                    raise OrderNotAssignedToDriverException(order_id, driver_id)
                step = transition(current.status, new_status)
                updated = await uow.order_repository.apply_transition(
                    order_id,
                    driver_id=driver_id,
                    expected_status=step.previous,
                    target_status=step.target,
                    timeline_field=step.timeline_field,
                    now=now,
                )
                if updated is not None:
                    break
                logger.info("order_status_race_retry", order_id=order_id, expected=step.previous.value)
            else:
                # every attempt lost to a concurrent writer
                raise InvalidTransitionException(current.status.value, str(new_status))

        logger.info(
            "order_status_updated",
            order_id=order_id,
            driver_id=driver_id,
            previous=step.previous.value,
            status=updated.status.value,
        )
        await notify_contacts(self._notifier, updated, updated.status)
        return updated

    async def update_driver_note(self, order_id: str, driver_id: str, note: str) -> Order:
        async with self._uow_factory() as uow:
            updated = await uow.order_repository.set_driver_note(order_id, driver_id, note.strip())
            if updated is None:
                current = await uow.order_repository.get_by_order_id(order_id)
                if current is None:
                    raise OrderNotFoundException(order_id)
                raise OrderNotAssignedToDriverException(order_id, driver_id)
        logger.info("driver_note_updated", order_id=order_id, driver_id=driver_id)
        return updated
