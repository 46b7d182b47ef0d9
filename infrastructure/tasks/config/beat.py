"""Celery beat schedule configuration."""
from __future__ import annotations

from core.config import settings


def build_beat_schedule(order_settings=None) -> dict:
    """Periodic jobs. The expiry sweep runs here only in ``beat`` mode."""
    order_settings = order_settings or settings.orders
    schedule = {}
    if order_settings.expiry_sweep_mode == "beat":
        schedule["orders-cancel-expired"] = {
            "task": "orders.cancel_expired",
            "schedule": float(order_settings.expiry_sweep_interval_seconds),
            "options": {"queue": "orders", "expires": order_settings.expiry_sweep_interval_seconds},
        }
    return schedule


CELERY_BEAT_SCHEDULE = build_beat_schedule()
