"""
Discord Notify Bridge - Main FastAPI Application
"""
from fastapi import FastAPI

from discord_notify.bridge import NotificationBridge, register_bridge, reset_bridge
from discord_notify.core.config import settings
from discord_notify.core.logging import setup_logging, get_logger
from discord_notify.core.middleware import setup_middleware, setup_exception_handlers
from discord_notify.api.routes import router as api_router

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=not settings.DEBUG,
)

logger = get_logger(__name__)

_OPENAPI_TAGS = [
    {"name": "events", "description": "Session events from the host, queue and alert status."},
    {"name": "Health", "description": "Liveness probe."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Forwards agent-session lifecycle events to a Discord webhook, "
        "one forum thread per session."
    ),
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")

_bridge: NotificationBridge | None = None


@app.on_event("startup")
async def startup() -> None:
    """Build the bridge, create the queue table and resume pending deliveries"""
    global _bridge
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})

    bridge = NotificationBridge(settings)
    if not register_bridge(bridge):
        await bridge.shutdown()
        return
    _bridge = bridge
    await bridge.start()
    logger.info(
        "Notification bridge started",
        extra_data={
            "enabled": bridge.enabled,
            "db_path": settings.DISCORD_NOTIFY_QUEUE_DB_PATH,
        }
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    """Stop the worker, close the HTTP client and dispose the engine"""
    global _bridge
    logger.info("Shutting down application")
    if _bridge is not None:
        await _bridge.shutdown()
        _bridge = None
        reset_bridge()


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe"""
    return {"status": "healthy"}
