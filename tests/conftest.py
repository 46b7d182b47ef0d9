"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported:
the module-level engine and the Celery app read settings at import time.
"""
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("ORDERS__EXPIRY_SWEEP_MODE", "off")

import pytest
import pytest_asyncio

from application.dtos.payments import WebhookEvent
from application.ports.notifications import NotificationOutcome, NotificationPayload
from domain.common.exceptions import TransientDeliveryError
from domain.order.entity import (
    ContactPoint,
    Distance,
    FeeBreakdown,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PackageDetails,
    PackageSize,
    Pricing,
    Timeline,
    generate_order_id,
)
from domain.pricing.coupon import Coupon
from domain.user.entity import User, UserRole
from infrastructure.database import build_session_factory, create_tables
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.unit_of_work import sqlalchemy_uow_factory


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeNotifier:
    """Records every push and SMS. Ids in ``failing`` raise a transient error."""

    def __init__(self, failing: Optional[set] = None):
        self.failing = failing or set()
        self.pushes: list[tuple[str, NotificationPayload]] = []
        self.sms: list[tuple[str, str]] = []

    async def send(self, driver_id: str, payload: NotificationPayload) -> NotificationOutcome:
        if driver_id in self.failing:
            raise TransientDeliveryError("push gateway timeout", channel="push")
        self.pushes.append((driver_id, payload))
        return NotificationOutcome(True, "push", driver_id)

    async def send_sms(self, phone: str, message: str) -> NotificationOutcome:
        if phone in self.failing:
            raise TransientDeliveryError("sms gateway timeout", channel="sms")
        self.sms.append((phone, message))
        return NotificationOutcome(True, "sms", phone)


class FakeEmailSender:
    def __init__(self):
        self.sent: list[dict] = []

    async def send(self, to, subject, html, text, bcc=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text, "bcc": bcc})


class FakeVerifier:
    """Accepts bodies whose Stripe-Signature header is ``valid``."""

    provider = "stripe"

    def parse_webhook(self, headers, body) -> WebhookEvent:
        signature = {k.lower(): v for k, v in headers.items()}.get("stripe-signature")
        if signature != "valid":
            raise PaymentSignatureError("bad signature", provider=self.provider)
        event = json.loads(body)
        return WebhookEvent(id=event["id"], type=event["type"], provider=self.provider, data=event.get("data") or {})


def stripe_event(event_id: str, event_type: str, order_id: Optional[str], intent_id: str = "pi_1", amount: int = 1050) -> bytes:
    metadata = {"order_id": order_id} if order_id else {}
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {"object": {"id": intent_id, "amount": amount, "currency": "cad", "metadata": metadata}},
    }).encode()


def make_contact(name: str = "Alice", phone: str = "+16045550100") -> ContactPoint:
    return ContactPoint(
        address="123 Main St, Vancouver",
        lat=49.28,
        lng=-123.12,
        contact_name=name,
        contact_phone=phone,
    )


def make_order(
    *,
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PAID,
    driver_id: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    created_at: datetime = NOW,
    customer_id: str = "cust-1",
) -> Order:
    return Order(
        id=None,
        order_id=generate_order_id(created_at),
        customer_id=customer_id,
        status=status,
        payment_status=payment_status,
        pickup=make_contact("Alice", "+16045550100"),
        dropoff=make_contact("Bob", "+16045550199"),
        package=PackageDetails(size=PackageSize.S, description="Books"),
        distance=Distance(km=5.2, duration_minutes=18),
        pricing=Pricing(
            base_fare=1000,
            distance_surcharge=0,
            fees=FeeBreakdown(),
            subtotal=1000,
            tax=50,
            coupon_discount=0,
            total=1050,
        ),
        timeline=Timeline(created_at=created_at),
        driver_id=driver_id,
        expires_at=expires_at if expires_at is not None else created_at + timedelta(minutes=30),
        updated_at=created_at,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = build_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(bind=engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def seed_order(uow_factory):
    async def _seed(**kwargs) -> Order:
        async with uow_factory() as uow:
            return await uow.order_repository.create(make_order(**kwargs))
    return _seed


@pytest.fixture
def seed_user(uow_factory):
    async def _seed(user_id: str, *roles: UserRole, is_active: bool = True, email: Optional[str] = None) -> User:
        user = User(
            id=user_id,
            name=user_id.title(),
            email=email or f"{user_id}@example.com",
            phone="+16045550123",
            roles=frozenset(roles or {UserRole.CUSTOMER}),
            is_active=is_active,
        )
        async with uow_factory() as uow:
            return await uow.user_repository.create(user)
    return _seed


@pytest.fixture
def seed_coupon(uow_factory):
    async def _seed(**kwargs) -> Coupon:
        async with uow_factory() as uow:
            return await uow.coupon_repository.create(Coupon(id=None, **kwargs))
    return _seed
