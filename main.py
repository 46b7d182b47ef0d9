"""
FastAPI application entry point
"""
import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import admin as admin_routes
from api.routes import orders as order_routes
from api.routes import webhooks as webhook_routes
from application.services.expiry_service import ExpiryReconciler, ExpiryScheduler, interval_ticker
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import error_response, success_response
from infrastructure.database import check_database, create_tables
from infrastructure.external.notifications import HttpNotificationDispatcher
from infrastructure.unit_of_work import sqlalchemy_uow_factory
from shared.codes import BusinessCode


configure_logging()
logger = get_logger(__name__)


def _start_expiry_scheduler() -> asyncio.Task:
    interval = settings.orders.expiry_sweep_interval_seconds
    scheduler = ExpiryScheduler(ExpiryReconciler(sqlalchemy_uow_factory()))
    logger.info("expiry_scheduler_started", mode="inprocess", interval_seconds=interval)
    return asyncio.create_task(scheduler.run(interval_ticker(interval)), name="expiry-scheduler")


async def _stop(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    logger.info("expiry_scheduler_stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        # local convenience; deployed databases are migrated with `alembic upgrade head`
        await create_tables()
        logger.info("database_tables_created")

    app.state.notifier = HttpNotificationDispatcher.from_settings(settings.notifications)
    sweep_task = _start_expiry_scheduler() if settings.orders.expiry_sweep_mode == "inprocess" else None
    logger.info("application_started", environment=settings.ENVIRONMENT, expiry_sweep_mode=settings.orders.expiry_sweep_mode)

    yield

    await _stop(sweep_task)
    await app.state.notifier.aclose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Delivery orders: pricing, driver assignment, Stripe payments and claim-window expiry",
)

# last added runs first: CORS, then request id, then access logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

register_exception_handlers(app)

for router in (order_routes.router, webhook_routes.router, admin_routes.router):
    app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(data={
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
        "expiry_sweep_mode": settings.orders.expiry_sweep_mode,
    })


@app.get("/health", tags=["Health"])
async def health_check():
    if not await check_database():
        body = error_response(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Database unreachable",
            error_type="HealthCheckFailed",
        )
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return success_response(data={"status": "healthy", "database": "ok"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
