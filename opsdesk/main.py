"""
Opsdesk Workflow API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from opsdesk.core.config import get_settings
from opsdesk.core.database import engine
from opsdesk.core.errors import register_error_handlers
from opsdesk.core.logging_setup import configure_logging
from opsdesk.core.notifications import close_notification_sink
from opsdesk.api.v1 import router as api_v1_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Opsdesk Workflow",
        description="Leave approval chains and task dependencies for operations teams.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_error_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database must answer."""
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Opsdesk workflow starting", notifications=settings.notification_backend)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Opsdesk workflow shutting down")
        await close_notification_sink()

    return app


app = create_app()
