"""Celery application configuration"""
from __future__ import annotations

import os

from celery import Celery
from celery.signals import setup_logging
from kombu import Exchange, Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger
from .beat import CELERY_BEAT_SCHEDULE


logger = get_logger(__name__)

CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

# Outbound mail is slow and retried, so it never shares a queue with the sweep.
ORDERS_QUEUE = "orders"
NOTIFICATIONS_QUEUE = "notifications"

TASK_ROUTES = {
    "orders.*": {"queue": ORDERS_QUEUE},
    "email.*": {"queue": NOTIFICATIONS_QUEUE},
}


def _broker_url() -> str | None:
    return settings.redis.url or os.getenv("CELERY_BROKER_URL")


def create_celery_app() -> Celery:
    app = Celery("courier_dispatch")
    exchange = Exchange("courier", type="direct")
    app.conf.update(
        broker_url=_broker_url(),
        result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # ack after the work so a crashed worker hands the message back
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        result_expires=3600,
        worker_prefetch_multiplier=1,
        task_default_queue=ORDERS_QUEUE,
        task_default_exchange=exchange.name,
        task_default_routing_key=ORDERS_QUEUE,
        task_queues=(
            Queue(ORDERS_QUEUE, exchange, routing_key=ORDERS_QUEUE),
            Queue(NOTIFICATIONS_QUEUE, exchange, routing_key=NOTIFICATIONS_QUEUE),
        ),
        task_routes=TASK_ROUTES,
        beat_schedule=CELERY_BEAT_SCHEDULE,
        imports=CELERY_IMPORTS,
    )

    # no broker in local runs and tests: execute inline
    environment = (settings.ENVIRONMENT or "production").lower()
    if environment in {"development", "dev", "test", "testing"}:
        app.conf.task_always_eager = True
        app.conf.task_eager_propagates = False

    app.autodiscover_tasks(packages=CELERY_IMPORTS)
    return app


celery_app = create_celery_app()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        queues=[q.name for q in sender.conf.task_queues],
        eager=bool(sender.conf.task_always_eager),
        beat_jobs=sorted(sender.conf.beat_schedule),
    )


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    # keeps celery from installing its own handlers on the root logger
    configure_logging()
