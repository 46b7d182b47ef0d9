"""
Payment webhook routes.

Kept thin: the raw body is handed to the processor untouched because the
signature covers the exact bytes Stripe sent.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_webhook_processor
from application.dtos.payments import WebhookAck
from application.services.webhook_service import PaymentWebhookProcessor
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", summary="Stripe webhook", response_model=ApiResponse[WebhookAck])
async def stripe_webhook(
    request: Request,
    processor: PaymentWebhookProcessor = Depends(get_webhook_processor),
):
    """
    Acknowledge a Stripe event.

    Bad signatures and malformed payloads answer 400. Everything else,
    duplicates and internal processing failures included, answers 200 so
    Stripe stops redelivering; storage failures while recording the event
    answer 500 so it retries.
    """
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await processor.process(headers, raw_body)
    message = "Duplicate event ignored" if ack.duplicate else "Event received"
    return success_response(data=ack, message=message)
