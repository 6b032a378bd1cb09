"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Registers API routes (document callbacks) and exception handlers
- Manages application lifecycle: MongoDB, Telegram polling,
  dispatcher loops and the reminder scheduler
- No business logic should be written here
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import time

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.flow.dispatcher import UpdateDispatcher
from app.services.order_service import OrderService
from app.services.reminder_service import ReminderScheduler
from app.services.telegram_service import TelegramChannel
from app.api import orders

logger = get_logger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("🚀 Starting Sarafan bot...")

    try:
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        logger.info("Connecting to MongoDB...")
        await connect_to_mongo()

        logger.info("Ensuring database indexes...")
        await create_indexes()

        channel = TelegramChannel(settings.TELEGRAM_BOT_TOKEN)
        service = OrderService(channel)
        dispatcher = UpdateDispatcher(service, channel)
        scheduler = ReminderScheduler(service)

        await channel.start()

        app.state.channel = channel
        app.state.order_service = service
        app.state.dispatcher_task = asyncio.create_task(dispatcher.run(), name="update-dispatcher")
        scheduler.start()
        app.state.reminder_scheduler = scheduler

        logger.info("🎉 Sarafan bot started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        await close_mongo_connection()
        raise

    yield  # Application runs here

    logger.info("🛑 Shutting down Sarafan bot...")

    try:
        await app.state.reminder_scheduler.stop()
        logger.info("✅ Reminder scheduler stopped")

        # Stopping the channel ends both dispatcher streams
        await app.state.channel.stop()
        await app.state.dispatcher_task
        logger.info("✅ Telegram transport stopped")

        await close_mongo_connection()
        logger.info("👋 Sarafan bot shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title="Sarafan - Referral Consultation Bot",
    description="Telegram intake bot for consultation orders with a document callback API",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

add_exception_handlers(app)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


app.include_router(orders.router, prefix=settings.API_PREFIX, tags=["Orders"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "Sarafan API",
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Checks database connectivity and background task status.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": APP_VERSION,
        "checks": {}
    }

    db_healthy = await check_database_health()
    health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
    if not db_healthy:
        health_status["status"] = "degraded"

    dispatcher_task = getattr(app.state, "dispatcher_task", None)
    if dispatcher_task is None or dispatcher_task.done():
        health_status["checks"]["dispatcher"] = "stopped"
        health_status["status"] = "degraded"
    else:
        health_status["checks"]["dispatcher"] = "running"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe - indicates if app is ready to receive traffic.
    """
    if await check_database_health():
        return {"status": "ready"}
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "reason": "database_unavailable"}
    )


@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}
