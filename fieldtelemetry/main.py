"""
Field Telemetry API - FastAPI Application

Main entry point. Serves decoded telemetry, device status and alert rules,
and (with bus services enabled) ingests frames published by field controllers.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from fieldtelemetry.api import router as api_router
from fieldtelemetry.core.config import get_settings
from fieldtelemetry.db.base import Base
from fieldtelemetry.db import models_registry  # noqa: F401 - Import to register models
from fieldtelemetry.db.session import engine
from fieldtelemetry.services.alert_service import AlertEvaluator
from fieldtelemetry.services.ingest_service import TelemetryIngestService, set_ingest_service
from fieldtelemetry.services.liveness_service import LivenessTracker
from fieldtelemetry.services.state_store import get_state_store
from fieldtelemetry.workers.liveness_sweep import LivenessSweepWorker
from fieldtelemetry.workers.notification_worker import NotificationWorker
from fieldtelemetry.workers.telemetry_subscriber import TelemetrySubscriber

settings = get_settings()

# Global instances
telemetry_subscriber: TelemetrySubscriber | None = None
notification_worker: NotificationWorker | None = None
scheduler: AsyncIOScheduler | None = None


async def init_database() -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def start_background_services() -> None:
    """Start background services."""
    global telemetry_subscriber, notification_worker, scheduler

    # Skip bus services if disabled (HTTP API only)
    if not settings.enable_bus_services:
        logger.info("Bus services disabled - skipping NATS, notifications and sweep")
        return

    # Initialize notification worker
    notification_worker = NotificationWorker()
    asyncio.create_task(notification_worker.run())
    logger.info("Notification worker started")

    store = get_state_store()
    tracker = LivenessTracker(store, notifier=notification_worker)
    evaluator = AlertEvaluator(store, notifier=notification_worker)
    ingest = TelemetryIngestService(store, tracker, evaluator)
    set_ingest_service(ingest)

    # Initialize NATS subscriber
    telemetry_subscriber = TelemetrySubscriber()
    telemetry_subscriber.add_frame_handler(ingest.handle_frame)

    try:
        asyncio.create_task(telemetry_subscriber.run())
        logger.info("Telemetry subscriber started")
    except Exception as e:
        logger.warning(f"NATS connection failed (will retry): {e}")

    # Initialize scheduler for periodic tasks
    scheduler = AsyncIOScheduler()

    # Offline detection for devices that stopped sending
    liveness_sweep = LivenessSweepWorker(tracker)
    scheduler.add_job(
        liveness_sweep.run,
        "interval",
        minutes=settings.offline_sweep_minutes,
        id="liveness_sweep",
    )

    scheduler.start()
    logger.info("Scheduler started")


async def stop_background_services() -> None:
    """Stop background services."""
    global telemetry_subscriber, notification_worker, scheduler

    if scheduler:
        scheduler.shutdown()
        logger.info("Scheduler stopped")

    if telemetry_subscriber:
        telemetry_subscriber.stop()
        logger.info("Telemetry subscriber stopped")

    set_ingest_service(None)

    if notification_worker:
        await notification_worker.stop()
        logger.info("Notification worker stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Field Telemetry API...")

    # Ensure data directory exists
    data_path = Path(settings.data_save_folder)
    data_path.mkdir(parents=True, exist_ok=True)

    await init_database()
    await start_background_services()

    logger.info(f"Field Telemetry API started on port {settings.port}")

    yield

    # Shutdown
    logger.info("Shutting down Field Telemetry API...")
    await stop_background_services()
    logger.info("Field Telemetry API stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Field Telemetry API - sensor frame decoding, liveness and alerts",
    lifespan=lifespan,
    docs_url="/swagger" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"Code": 500, "Message": str(exc)},
    )


# OPTIONS handler for CORS preflight
@app.options("/{path:path}")
async def options_handler(path: str) -> Response:
    """Handle OPTIONS requests for CORS preflight."""
    return Response(
        status_code=200,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS, HEAD",
            "Access-Control-Allow-Headers": "Content-Type",
        },
    )


# Include API router
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fieldtelemetry.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=settings.workers,
    )
