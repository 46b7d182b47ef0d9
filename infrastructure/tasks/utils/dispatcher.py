"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by adapters to schedule tasks."""

    def send_invoice_email(self, to: str, subject: str, html: str, text: str, bcc: Optional[str] = None) -> None:
        """Fire-and-forget invoice delivery."""
        self.enqueue(
            "email.send_invoice",
            kwargs={"to": to, "subject": subject, "html": html, "text": text, "bcc": bcc},
        )

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Schedule an arbitrary registered task by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
