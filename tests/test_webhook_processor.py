import asyncio

import pytest
import pytest_asyncio

from application.services.webhook_service import PaymentWebhookProcessor
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import Payment, PaymentStatus
from domain.user.entity import UserRole
from infrastructure.external.invoicing import PlainInvoiceService
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository

from .conftest import FakeNotifier, FakeVerifier, stripe_event

SIGNED = {"Stripe-Signature": "valid"}


def _processor(uow_factory, notifier, email_sender, clock, **kwargs):
    return PaymentWebhookProcessor(
        uow_factory,
        FakeVerifier(),
        notifier,
        PlainInvoiceService(clock),
        email_sender,
        clock=clock,
        **kwargs,
    )


@pytest.fixture
def processor(uow_factory, notifier, email_sender, clock):
    return _processor(uow_factory, notifier, email_sender, clock, invoice_bcc="books@example.com")


@pytest_asyncio.fixture
async def unpaid_order(seed_order, seed_user):
    await seed_user("cust-1", UserRole.CUSTOMER)
    await seed_user("driver-1", UserRole.DRIVER)
    await seed_user("driver-2", UserRole.DRIVER)
    await seed_user("driver-off", UserRole.DRIVER, is_active=False)
    return await seed_order(payment_status=OrderPaymentStatus.UNPAID)


async def _ledger_entry(uow_factory, event_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.webhook_repository.get_by_event_id(event_id)


@pytest.mark.asyncio
async def test_payment_succeeded_marks_paid_invoices_and_fans_out(
    processor, unpaid_order, uow_factory, notifier, email_sender
):
    ack = await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id))

    assert ack.duplicate is False
    assert ack.order_transitioned is True
    assert ack.error is None
    assert (ack.fanout.attempted, ack.fanout.succeeded, ack.fanout.failed) == (2, 2, 0)
    assert sorted(d for d, _ in notifier.pushes) == ["driver-1", "driver-2"]
    assert notifier.pushes[0][1].data["order_id"] == unpaid_order.order_id

    assert len(email_sender.sent) == 1
    mail = email_sender.sent[0]
    assert mail["to"] == "cust-1@example.com"
    assert mail["bcc"] == "books@example.com"
    assert "Total: $10.50 CAD" in mail["text"]

    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_order_id(unpaid_order.order_id)
        payment = await uow.payment_repository.get_by_stripe_reference("pi_1")
    assert order.payment_status == OrderPaymentStatus.PAID
    assert payment.status == PaymentStatus.SUCCEEDED
    assert payment.order_id == unpaid_order.order_id
    assert (await _ledger_entry(uow_factory, "evt_1")).processed is True


@pytest.mark.asyncio
async def test_redelivered_event_is_acknowledged_without_side_effects(
    processor, unpaid_order, notifier, email_sender
):
    body = stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id)
    await processor.process(SIGNED, body)

    ack = await processor.process(SIGNED, body)

    assert ack.duplicate is True
    assert ack.order_transitioned is False
    assert len(email_sender.sent) == 1
    assert len(notifier.pushes) == 2


@pytest.mark.asyncio
async def test_concurrent_redeliveries_process_once(processor, unpaid_order, email_sender):
    body = stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id)

    acks = await asyncio.gather(*(processor.process(SIGNED, body) for _ in range(4)))

    assert sum(1 for a in acks if not a.duplicate) == 1
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_second_success_event_for_paid_order_does_nothing(processor, unpaid_order, notifier, email_sender):
    await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id))

    ack = await processor.process(SIGNED, stripe_event("evt_2", "payment_intent.succeeded", unpaid_order.order_id))

    assert ack.duplicate is False
    assert ack.order_transitioned is False
    assert len(email_sender.sent) == 1
    assert len(notifier.pushes) == 2


@pytest.mark.asyncio
async def test_bad_signature_is_rejected_before_recording(processor, unpaid_order, uow_factory):
    with pytest.raises(PaymentSignatureError):
        await processor.process({"Stripe-Signature": "forged"}, stripe_event("evt_x", "payment_intent.succeeded", unpaid_order.order_id))
    assert await _ledger_entry(uow_factory, "evt_x") is None


@pytest.mark.asyncio
async def test_unhandled_event_type_is_recorded_and_ignored(processor, uow_factory):
    ack = await processor.process(SIGNED, stripe_event("evt_c", "charge.refunded", None))
    assert ack.order_transitioned is False
    entry = await _ledger_entry(uow_factory, "evt_c")
    assert entry.processed is True
    assert entry.event_type == "charge.refunded"


@pytest.mark.asyncio
async def test_payment_status_never_moves_backwards(processor, unpaid_order, uow_factory):
    await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id))
    await processor.process(SIGNED, stripe_event("evt_0", "payment_intent.processing", unpaid_order.order_id))

    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_stripe_reference("pi_1")
    assert payment.status == PaymentStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_failed_then_succeeded_payment(processor, unpaid_order, uow_factory):
    await processor.process(SIGNED, stripe_event("evt_f", "payment_intent.payment_failed", unpaid_order.order_id))
    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_stripe_reference("pi_1")
        order = await uow.order_repository.get_by_order_id(unpaid_order.order_id)
    assert payment.status == PaymentStatus.FAILED
    assert order.payment_status == OrderPaymentStatus.UNPAID

    ack = await processor.process(SIGNED, stripe_event("evt_s", "payment_intent.succeeded", unpaid_order.order_id))
    assert ack.order_transitioned is True


@pytest.mark.asyncio
async def test_unmirrorable_payment_still_marks_order_paid(processor, unpaid_order, uow_factory, email_sender):
    # a zero amount cannot be mirrored
    body = stripe_event("evt_bad", "payment_intent.succeeded", unpaid_order.order_id, amount=0)

    ack = await processor.process(SIGNED, body)

    assert ack.received is True
    assert ack.error
    assert ack.order_transitioned is True
    assert len(email_sender.sent) == 1
    assert (await _ledger_entry(uow_factory, "evt_bad")).processed is False
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_order_id(unpaid_order.order_id)
        payment = await uow.payment_repository.get_by_stripe_reference("pi_1")
    assert order.payment_status == OrderPaymentStatus.PAID
    assert payment is None


@pytest.mark.asyncio
async def test_payment_recorded_between_lookup_and_insert(processor, unpaid_order, uow_factory, monkeypatch):
    lookup = SQLAlchemyPaymentRepository.get_by_stripe_reference
    raced = []

    async def lookup_then_competing_insert(self, stripe_reference):
        found = await lookup(self, stripe_reference)
        if found is None and not raced:
            raced.append(stripe_reference)
            async with uow_factory() as other:
                await other.payment_repository.create(
                    Payment(
                        id=None,
                        order_id=unpaid_order.order_id,
                        stripe_reference=stripe_reference,
                        amount=1050,
                        currency="cad",
                        status=PaymentStatus.PROCESSING,
                    )
                )
        return found

    monkeypatch.setattr(SQLAlchemyPaymentRepository, "get_by_stripe_reference", lookup_then_competing_insert)
    body = stripe_event("evt_race", "payment_intent.succeeded", unpaid_order.order_id)

    ack = await processor.process(SIGNED, body)

    assert raced == ["pi_1"]
    assert ack.error is None
    assert ack.order_transitioned is True
    assert (await _ledger_entry(uow_factory, "evt_race")).processed is True
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_order_id(unpaid_order.order_id)
        payment = await uow.payment_repository.get_by_stripe_reference("pi_1")
    assert order.payment_status == OrderPaymentStatus.PAID
    assert payment.status == PaymentStatus.SUCCEEDED

    again = await processor.process(SIGNED, body)
    assert again.duplicate is True


@pytest.mark.asyncio
async def test_failed_pushes_are_counted(uow_factory, unpaid_order, email_sender, clock):
    notifier = FakeNotifier(failing={"driver-2"})
    processor = _processor(uow_factory, notifier, email_sender, clock, fanout_concurrency=1)

    ack = await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id))

    assert (ack.fanout.attempted, ack.fanout.succeeded, ack.fanout.failed) == (2, 1, 1)
    assert ack.error is None


@pytest.mark.asyncio
async def test_payment_for_cancelled_order_skips_driver_fanout(processor, seed_order, seed_user, notifier, email_sender):
    await seed_user("cust-1", UserRole.CUSTOMER)
    await seed_user("driver-1", UserRole.DRIVER)
    order = await seed_order(status=OrderStatus.CANCELLED, payment_status=OrderPaymentStatus.UNPAID)

    ack = await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", order.order_id))

    assert ack.order_transitioned is True
    assert ack.fanout is None
    assert notifier.pushes == []
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_invoice_failure_does_not_block_fanout(uow_factory, unpaid_order, notifier, clock):
    class BrokenSender:
        async def send(self, *args, **kwargs):
            raise RuntimeError("smtp down")

    processor = _processor(uow_factory, notifier, BrokenSender(), clock)
    ack = await processor.process(SIGNED, stripe_event("evt_1", "payment_intent.succeeded", unpaid_order.order_id))

    assert ack.error is None
    assert ack.fanout.succeeded == 2
