"""
API dependencies - composition root wiring adapters into application services
"""
from datetime import timedelta
from typing import Callable

from fastapi import Depends, Header, Request

from application.ports.invoicing import EmailSender, InvoiceService
from application.ports.notifications import NotificationDispatcher
from application.ports.payment_gateway import WebhookVerifier
from application.services.assignment_service import AssignmentCoordinator
from application.services.coupon_service import CouponService
from application.services.expiry_service import ExpiryReconciler
from application.services.order_service import OrderApplicationService
from application.services.webhook_service import PaymentWebhookProcessor
from core.config import settings
from domain.common.exceptions import OrderValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.pricing.engine import PricingEngine
from infrastructure.adapters.email_port import CeleryEmailSender
from infrastructure.external.invoicing import PlainInvoiceService
from infrastructure.external.notifications import HttpNotificationDispatcher
from infrastructure.external.payments import get_webhook_verifier as build_webhook_verifier
from infrastructure.unit_of_work import sqlalchemy_uow_factory


UowFactory = Callable[..., AbstractUnitOfWork]


async def get_uow_factory() -> UowFactory:
    return sqlalchemy_uow_factory()


async def get_notifier(request: Request) -> NotificationDispatcher:
    """Shared dispatcher created at startup; built lazily when the lifespan did not run."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = HttpNotificationDispatcher.from_settings(settings.notifications)
        request.app.state.notifier = notifier
    return notifier


async def get_customer_id(x_customer_id: str = Header(default="")) -> str:
    customer_id = x_customer_id.strip()
    if not customer_id:
        raise OrderValidationException("X-Customer-ID header is required", field="customer_id")
    return customer_id


async def get_coupon_service(uow_factory: UowFactory = Depends(get_uow_factory)) -> CouponService:
    return CouponService(uow_factory)


async def get_pricing_engine(coupons: CouponService = Depends(get_coupon_service)) -> PricingEngine:
    return PricingEngine(coupons, gst_rate=settings.pricing.gst_rate)


async def get_order_service(
    uow_factory: UowFactory = Depends(get_uow_factory),
    pricing_engine: PricingEngine = Depends(get_pricing_engine),
    coupons: CouponService = Depends(get_coupon_service),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> OrderApplicationService:
    return OrderApplicationService(
        uow_factory,
        pricing_engine,
        coupons,
        notifier,
        claim_window=timedelta(minutes=settings.orders.claim_window_minutes),
        currency=settings.pricing.currency,
    )


async def get_assignment_coordinator(
    uow_factory: UowFactory = Depends(get_uow_factory),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> AssignmentCoordinator:
    return AssignmentCoordinator(uow_factory, notifier)


async def get_expiry_reconciler(uow_factory: UowFactory = Depends(get_uow_factory)) -> ExpiryReconciler:
    return ExpiryReconciler(uow_factory)


async def get_webhook_verifier() -> WebhookVerifier:
    return build_webhook_verifier("stripe")


async def get_invoice_service() -> InvoiceService:
    return PlainInvoiceService()


async def get_email_sender() -> EmailSender:
    return CeleryEmailSender()


async def get_webhook_processor(
    uow_factory: UowFactory = Depends(get_uow_factory),
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    notifier: NotificationDispatcher = Depends(get_notifier),
    invoice_service: InvoiceService = Depends(get_invoice_service),
    email_sender: EmailSender = Depends(get_email_sender),
) -> PaymentWebhookProcessor:
    return PaymentWebhookProcessor(
        uow_factory,
        verifier,
        notifier,
        invoice_service,
        email_sender,
        fanout_concurrency=settings.notifications.fanout_concurrency,
        invoice_bcc=settings.email.invoice_bcc,
    )
