"""
Structlog logging configuration.

Events are rendered by one processor chain for structlog and stdlib
loggers alike (uvicorn, celery, sqlalchemy). Contact details are masked
before rendering: order events carry phone numbers and e-mail addresses
of people who are not our users.
"""
import json
import logging
from typing import Any, List

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


MASKED_KEYS = frozenset({
    "phone",
    "contact_phone",
    "email",
    "to",
    "recipient_email",
    "authorization",
    "stripe-signature",
})

# chatty third-party loggers and the level they are capped at
_QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "stripe": logging.WARNING,
}


def _mask(value: Any) -> Any:
    if not isinstance(value, str) or len(value) <= 4:
        return "***"
    if "@" in value:
        return "***@" + value.rsplit("@", 1)[1]
    return "***" + value[-4:]


def mask_contact_details(logger, method_name, event_dict):
    for key in list(event_dict):
        if key.lower() in MASKED_KEYS and event_dict[key] is not None:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def get_renderer() -> Any:
    """Console output in DEBUG, JSON lines otherwise."""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def _root_level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL.upper())
    return logging.DEBUG if settings.DEBUG else logging.INFO


def configure_logging() -> None:
    """Configure structlog and route stdlib logging through the same chain."""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        mask_contact_details,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_root_level())
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
