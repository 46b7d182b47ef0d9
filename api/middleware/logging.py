"""
Access logging with timing.

Runs inside RequestIDMiddleware, so method, path and request id are
already on the structlog context; this layer adds status and duration.
"""
import json
import time
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import MASKED_KEYS, get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    One line when a request starts, one when it completes.

    Bodies are logged only when enabled (config default in DEBUG, or the
    X-Log-Body header), truncated and with contact details masked. Payment
    webhook bodies are never logged.
    """

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
    SKIP_BODY_PREFIXES = ("/api/v1/webhooks/",)
    SENSITIVE_FIELDS = MASKED_KEYS | {"contact_name", "address", "token", "secret", "api_key"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body_by_default = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG
        self.max_body_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        extra: dict[str, Any] = {}
        if request.query_params:
            extra["query_params"] = dict(request.query_params)
        if request.method in ("POST", "PUT", "PATCH") and self._should_log_body(request):
            body = await self._read_body(request)
            if body is not None:
                extra["body"] = body
        logger.info("request_started", **extra)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration_ms=self._elapsed_ms(started),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        duration_ms = self._elapsed_ms(started)
        self._log_response(response, duration_ms)
        response.headers["X-Process-Time"] = f"{duration_ms / 1000:.3f}"
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    def _should_log_body(self, request: Request) -> bool:
        if request.url.path.startswith(self.SKIP_BODY_PREFIXES):
            return False
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return self.log_body_by_default

    async def _read_body(self, request: Request) -> Optional[Any]:
        raw = await request.body()
        if not raw:
            return None
        snippet = raw[: self.max_body_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return snippet
        try:
            return self._mask(json.loads(snippet))
        except ValueError:
            # truncated mid-document
            return snippet

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: "***" if k.lower() in self.SENSITIVE_FIELDS else self._mask(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._mask(v) for v in data]
        return data

    def _log_response(self, response: Response, duration_ms: float) -> None:
        if response.status_code < 400:
            log = logger.info
            event = "request_completed"
        elif response.status_code < 500:
            log = logger.warning
            event = "request_client_error"
        else:
            log = logger.error
            event = "request_server_error"
        log(event, status_code=response.status_code, duration_ms=duration_ms)
