"""
Payment webhook processing.

Flow: verify signature -> claim the event id in the ledger -> dispatch by
event type -> mark processed. Delivery is at-least-once, so the ledger
claim and the conditional ``mark_paid`` together make each side effect
happen once per order.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from application.dtos.payments import FanoutSummary, WebhookAck, WebhookEvent
from application.ports.invoicing import EmailSender, InvoiceService
from application.ports.notifications import NotificationDispatcher, NotificationPayload
from application.ports.payment_gateway import WebhookVerifier
from application.utils.fanout import bounded_fanout
from core.logging_config import get_logger
from domain.common.exceptions import DuplicateWebhookEventException, PaymentAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, utc_now
from domain.payment.entity import Payment, PaymentStatus
from domain.user.entity import User
from domain.webhook.entity import WebhookEvent as LedgerEntry
from shared.codes.payment_codes import WEBHOOK_EVENT_TO_PAYMENT_STATUS


logger = get_logger(__name__)


class PaymentWebhookProcessor:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        verifier: WebhookVerifier,
        notifier: NotificationDispatcher,
        invoice_service: InvoiceService,
        email_sender: EmailSender,
        *,
        fanout_concurrency: int = 10,
        invoice_bcc: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self._verifier = verifier
        self._notifier = notifier
        self._invoice_service = invoice_service
        self._email_sender = email_sender
        self._fanout_concurrency = fanout_concurrency
        self._invoice_bcc = invoice_bcc
        self._clock = clock

    async def process(self, headers: dict[str, Any], body: bytes) -> WebhookAck:
        """
        Handle one delivery.

        Raises:
            PaymentSignatureError / MalformedWebhookError: before anything is recorded
        """
        event = self._verifier.parse_webhook(headers, body)
        log = logger.bind(event_id=event.id, event_type=event.type)

        try:
            async with self._uow_factory() as uow:
                await uow.webhook_repository.record(
                    LedgerEntry(
                        id=None,
                        event_id=event.id,
                        event_type=event.type,
                        event_data=event.data,
                        received_at=self._clock(),
                    )
                )
        except DuplicateWebhookEventException:
            log.info("webhook_duplicate_ignored")
            return WebhookAck(event_id=event.id, event_type=event.type, duplicate=True)

        ack = WebhookAck(event_id=event.id, event_type=event.type)
        try:
            await self._dispatch(event, ack)
        except Exception as exc:
            # acknowledged anyway; processed stays False for reconciliation
            log.error("webhook_processing_failed", error=str(exc), exc_info=True)
            ack.error = str(exc)
            return ack
        if ack.error:
            # side effects ran; processed stays False so the mirror gets reconciled
            log.warning("webhook_partially_processed", error=ack.error)
            return ack

        try:
            async with self._uow_factory() as uow:
                await uow.webhook_repository.mark_processed(event.id)
        except Exception:
            log.error("webhook_mark_processed_failed", exc_info=True)
        log.info("webhook_processed", order_transitioned=ack.order_transitioned)
        return ack

    async def _dispatch(self, event: WebhookEvent, ack: WebhookAck) -> None:
        target = WEBHOOK_EVENT_TO_PAYMENT_STATUS.get(event.type)
        if target is None:
            logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
            return
        target = PaymentStatus(target)
        obj = event.data_object

        if target != PaymentStatus.SUCCEEDED:
            await self._mirror_payment(obj, target)
            return
        await self._handle_succeeded(obj, ack)

    async def _sync_payment(self, uow: AbstractUnitOfWork, obj: dict[str, Any], target: PaymentStatus) -> None:
        """Create the mirror if missing, otherwise move it forward."""
        reference = obj.get("id")
        if not reference:
            logger.warning("payment_mirror_skipped", reason="missing payment intent id")
            return
        existing = await uow.payment_repository.get_by_stripe_reference(reference)
        if existing is None:
            metadata = obj.get("metadata") or {}
            order_id = metadata.get("order_id")
            if not order_id:
                logger.warning("payment_mirror_skipped", stripe_reference=reference, reason="missing order_id")
                return
            await uow.payment_repository.create(
                Payment(
                    id=None,
                    order_id=order_id,
                    stripe_reference=reference,
                    amount=int(obj.get("amount") or 0),
                    currency=str(obj.get("currency") or "cad"),
                    status=target,
                    customer_id=metadata.get("customer_id"),
                    failure_reason=self._failure_reason(obj) if target == PaymentStatus.FAILED else None,
                )
            )
            return
        if not existing.can_advance_to(target):
            logger.info(
                "payment_status_stale_ignored",
                stripe_reference=reference,
                current=existing.status.value,
                incoming=target.value,
            )
            return
        await uow.payment_repository.advance_status(
            reference, target, failure_reason=self._failure_reason(obj)
        )

    @staticmethod
    def _failure_reason(obj: dict[str, Any]) -> Optional[str]:
        error = obj.get("last_payment_error") or {}
        return error.get("message") if isinstance(error, dict) else None

    async def _mirror_payment(self, obj: dict[str, Any], target: PaymentStatus) -> None:
        try:
            async with self._uow_factory() as uow:
                await self._sync_payment(uow, obj, target)
        except PaymentAlreadyExistsException:
            # inserted by a concurrent delivery after our lookup; advance it instead
            async with self._uow_factory() as uow:
                await self._sync_payment(uow, obj, target)

    async def _handle_succeeded(self, obj: dict[str, Any], ack: WebhookAck) -> None:
        order_id = (obj.get("metadata") or {}).get("order_id")
        now = self._clock()
        order: Optional[Order] = None

        # mirror and paid flip commit separately; a mirror fault never blocks the flip
        try:
            await self._mirror_payment(obj, PaymentStatus.SUCCEEDED)
        except Exception as exc:
            logger.error("payment_mirror_failed", stripe_reference=obj.get("id"), error=str(exc), exc_info=True)
            ack.error = str(exc)

        if not order_id:
            logger.warning("payment_succeeded_without_order", stripe_reference=obj.get("id"))
            return
        async with self._uow_factory() as uow:
            if await uow.order_repository.mark_paid(order_id, now):
                order = await uow.order_repository.get_by_order_id(order_id)

        if order is None:
            logger.info("order_already_paid_or_missing", order_id=order_id)
            return

        ack.order_transitioned = True
        logger.info("order_paid", order_id=order_id, stripe_reference=obj.get("id"))
        await self._send_invoice(order, obj.get("id"))
        if order.is_available(now):
            ack.fanout = await self._notify_drivers(order)
        else:
            logger.info("driver_fanout_skipped", order_id=order_id, status=order.status.value)

    async def _send_invoice(self, order: Order, payment_reference: Optional[str]) -> None:
        try:
            async with self._uow_factory(readonly=True) as uow:
                customer: Optional[User] = await uow.user_repository.get_by_id(order.customer_id)
            if customer is None:
                logger.warning("invoice_skipped", order_id=order.order_id, reason="customer not found")
                return
            invoice = self._invoice_service.generate(order, customer, payment_reference)
            await self._email_sender.send(
                customer.email,
                f"Your invoice for delivery {order.order_id}",
                self._invoice_service.render_html(invoice),
                self._invoice_service.render_text(invoice),
                bcc=self._invoice_bcc,
            )
            logger.info("invoice_sent", order_id=order.order_id, invoice_number=invoice.invoice_number)
        except Exception:
            logger.error("invoice_failed", order_id=order.order_id, exc_info=True)

    async def _notify_drivers(self, order: Order) -> FanoutSummary:
        async with self._uow_factory(readonly=True) as uow:
            drivers = await uow.user_repository.list_eligible_drivers()

        payload = NotificationPayload(
            title="New delivery available",
            body=f"{order.pickup.address} to {order.dropoff.address}",
            data={
                "order_id": order.order_id,
                "total": order.pricing.total,
                "currency": order.pricing.currency,
                "distance_km": order.distance.km,
            },
        )

        async def _send(driver_id: str) -> bool:
            outcome = await self._notifier.send(driver_id, payload)
            return outcome.delivered

        result = await bounded_fanout([d.id for d in drivers], _send, concurrency=self._fanout_concurrency)
        logger.info(
            "driver_fanout_completed",
            order_id=order.order_id,
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return FanoutSummary(attempted=result.attempted, succeeded=result.succeeded, failed=result.failed)
