import hashlib
import hmac
import json
import time

import pytest

from infrastructure.external.payments import get_webhook_verifier
from infrastructure.external.payments.exceptions import MalformedWebhookError, PaymentSignatureError
from infrastructure.external.payments.stripe_client import StripeWebhookVerifier

SECRET = "whsec_test_secret"


def _sign(body: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + body
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _body(**overrides) -> bytes:
    event = {
        "id": "evt_123",
        "object": "event",
        "type": "payment_intent.succeeded",
        "created": 1767225600,
        "data": {"object": {"id": "pi_1", "amount": 1050, "metadata": {"order_id": "ORD-1"}}},
    }
    event.update(overrides)
    return json.dumps(event).encode()


def test_valid_signature_yields_event():
    body = _body()
    verifier = StripeWebhookVerifier(webhook_secret=SECRET, tolerance_seconds=300)

    event = verifier.parse_webhook({"stripe-signature": _sign(body)}, body)

    assert event.id == "evt_123"
    assert event.type == "payment_intent.succeeded"
    assert event.provider == "stripe"
    assert event.data_object["metadata"]["order_id"] == "ORD-1"


def test_wrong_secret_is_rejected():
    body = _body()
    verifier = StripeWebhookVerifier(webhook_secret=SECRET)
    with pytest.raises(PaymentSignatureError):
        verifier.parse_webhook({"Stripe-Signature": _sign(body, secret="whsec_other")}, body)


def test_stale_timestamp_is_rejected():
    body = _body()
    verifier = StripeWebhookVerifier(webhook_secret=SECRET, tolerance_seconds=60)
    with pytest.raises(PaymentSignatureError):
        verifier.parse_webhook({"Stripe-Signature": _sign(body, timestamp=int(time.time()) - 3600)}, body)


def test_missing_header_is_rejected():
    verifier = StripeWebhookVerifier(webhook_secret=SECRET)
    with pytest.raises(PaymentSignatureError):
        verifier.parse_webhook({}, _body())


def test_signed_payload_without_type_is_malformed():
    body = json.dumps({"id": "evt_1", "data": {}}).encode()
    verifier = StripeWebhookVerifier(webhook_secret=SECRET)
    with pytest.raises(MalformedWebhookError):
        verifier.parse_webhook({"Stripe-Signature": _sign(body)}, body)


def test_factory_only_knows_stripe():
    assert isinstance(get_webhook_verifier(), StripeWebhookVerifier)
    with pytest.raises(ValueError):
        get_webhook_verifier("alipay")
