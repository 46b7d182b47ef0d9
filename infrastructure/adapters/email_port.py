"""Infrastructure adapter implementing the application EmailSender port
by enqueueing the SMTP Celery task.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from core.logging_config import get_logger
from domain.common.exceptions import TransientDeliveryError
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryEmailSender:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        bcc: Optional[str] = None,
    ) -> None:
        # publishing talks to the broker synchronously
        try:
            await asyncio.to_thread(self.dispatcher.send_invoice_email, to, subject, html, text, bcc)
        except Exception as exc:
            raise TransientDeliveryError(f"Could not enqueue email: {exc}", channel="email") from exc
        logger.info("email_enqueued", subject=subject)
