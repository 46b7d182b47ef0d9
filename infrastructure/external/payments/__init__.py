"""
Factory for payment provider adapters.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import WebhookVerifier


def get_webhook_verifier(provider: Optional[str] = None) -> WebhookVerifier:
    name = (provider or "stripe").lower()
    if name == "stripe":
        from .stripe_client import StripeWebhookVerifier
        return StripeWebhookVerifier()
    raise ValueError(f"Unsupported payment provider: {name}")
