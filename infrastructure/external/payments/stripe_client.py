"""
Stripe webhook verification using the official stripe-python SDK.

`stripe.Webhook.construct_event` checks the `Stripe-Signature` header
against the endpoint secret and the timestamp tolerance. The verified body
is then decoded as plain JSON so downstream code handles ordinary dicts.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import stripe

from application.dtos.payments import WebhookEvent
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.exceptions import (
    MalformedWebhookError,
    PaymentSignatureError,
)


logger = get_logger(__name__)


def _header(headers: dict[str, Any], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


class StripeWebhookVerifier:
    provider = "stripe"

    def __init__(self, webhook_secret: Optional[str] = None, tolerance_seconds: Optional[int] = None):
        self.webhook_secret = webhook_secret or payment_settings.stripe.webhook_secret
        self.tolerance_seconds = (
            tolerance_seconds if tolerance_seconds is not None else payment_settings.webhook.tolerance_seconds
        )
        if payment_settings.stripe.secret_key:
            stripe.api_key = payment_settings.stripe.secret_key

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        if not self.webhook_secret:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = _header(headers, "Stripe-Signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)

        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self.webhook_secret,
                tolerance=self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid", error=str(exc))
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc
        except ValueError as exc:
            raise MalformedWebhookError(f"Invalid webhook payload: {exc}", provider=self.provider) from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise MalformedWebhookError(f"Invalid webhook payload: {exc}", provider=self.provider) from exc
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise MalformedWebhookError("Webhook payload lacks id or type", provider=self.provider)

        return WebhookEvent(
            id=str(event["id"]),
            type=str(event["type"]),
            provider=self.provider,
            data=event.get("data") or {},
            created=event.get("created"),
            raw_headers=dict(headers),
            raw_body=body,
        )
