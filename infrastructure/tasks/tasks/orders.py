"""Order maintenance Celery tasks"""
from __future__ import annotations

import asyncio

from celery import shared_task

from ..utils.base_task import BaseTask
from application.services.expiry_service import ExpiryReconciler
from core.config import settings
from core.logging_config import get_logger
from infrastructure.database import build_session_factory
from infrastructure.unit_of_work import sqlalchemy_uow_factory

logger = get_logger(__name__)


async def _sweep() -> dict:
    # every asyncio.run gets its own loop, so the engine cannot be shared
    engine, session_factory = build_session_factory(settings.database.url)
    try:
        reconciler = ExpiryReconciler(sqlalchemy_uow_factory(session_factory))
        result = await reconciler.sweep()
    finally:
        await engine.dispose()
    return {
        "cancelled_count": result.cancelled_count,
        "failed_count": result.failed_count,
        "candidates": result.candidates,
    }


@shared_task(name="orders.cancel_expired", bind=True, base=BaseTask, max_retries=0)
def cancel_expired_orders(self) -> dict:
    """Cancel pending orders whose claim window has passed."""
    summary = asyncio.run(_sweep())
    logger.info("cancel_expired_orders_done", **summary)
    return summary
