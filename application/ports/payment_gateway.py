"""
Payment provider port (application/ports).

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import WebhookEvent


@runtime_checkable
class WebhookVerifier(Protocol):
    """Authenticates and parses inbound provider webhooks.

    Implementations raise ``PaymentSignatureError`` for a bad or missing
    signature and ``DomainValidationException`` for a malformed body.
    """

    provider: str

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...
