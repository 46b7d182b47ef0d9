"""
Payment provider exceptions mapped to BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentSignatureError(BusinessException):
    """Webhook signature missing, invalid or outside the tolerance window."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )


class MalformedWebhookError(BusinessException):
    """Signature was valid but the payload is not a usable event."""

    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=PaymentCode.MALFORMED_EVENT,
            message=message,
            error_type="MalformedWebhook",
            details={"provider": provider},
        )
