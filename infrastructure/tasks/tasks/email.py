"""Email related Celery tasks"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


def build_message(to: str, subject: str, html: str, text: str, bcc: Optional[str] = None) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.email.from_address
    message["To"] = to
    if bcc:
        message["Bcc"] = bcc
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


@shared_task(
    name="email.send_invoice",
    bind=True,
    base=BaseTask,
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_invoice_email(self, to: str, subject: str, html: str, text: str, bcc: Optional[str] = None) -> None:
    """Deliver an invoice email over SMTP."""
    cfg = settings.email
    message = build_message(to, subject, html, text, bcc)
    with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=30) as smtp:
        if cfg.use_tls:
            smtp.starttls()
        if cfg.smtp_username:
            smtp.login(cfg.smtp_username, cfg.smtp_password or "")
        smtp.send_message(message)
    logger.info("invoice_email_sent", to=to, subject=subject)
