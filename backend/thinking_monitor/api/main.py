"""
Thinking Monitor - FastAPI Application
=======================================

Main application factory with routers, middleware and the live stream.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from thinking_monitor.api import events, monitor
from thinking_monitor.api.deps import ConnectionManagerDep, EngineDep
from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.engine import get_engine
from thinking_monitor.core.monitor.events import EventValidationError
from thinking_monitor.core.monitor.records import utc_now_iso
from thinking_monitor.core.monitor.websocket_hub import get_connection_manager, websocket_endpoint
from thinking_monitor.core.schemas import ErrorResponse, HealthResponse, ValidationErrorResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

STARTED_AT = time.time()


# ==========================================================================
# Lifespan
# ==========================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup:
    - Start the stale tool call sweep

    Shutdown:
    - Close dashboard sockets
    - Stop the sweep
    """
    logger.info("Starting Thinking Monitor", version=settings.APP_VERSION, host=settings.HOST, port=settings.PORT)

    engine = get_engine()
    await engine.start_sweep()

    yield

    logger.info("Shutting down Thinking Monitor")
    await get_connection_manager().close_all()
    await engine.stop_sweep()


# ==========================================================================
# App Factory
# ==========================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Real-time ingestion and aggregation of agent lifecycle events",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ==========================================================================
    # Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    @app.exception_handler(EventValidationError)
    async def validation_exception_handler(request: Request, exc: EventValidationError) -> JSONResponse:
        """Rejected events: 400 naming the first offending field."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ValidationErrorResponse(error=exc.message, field=exc.field).model_dump(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.is_development:
            detail = str(exc)
        else:
            detail = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="Internal Server Error",
                detail=detail,
                code="INTERNAL_ERROR",
            ).model_dump(),
        )

    # ==========================================================================
    # Routers
    # ==========================================================================

    # Health check (no prefix)
    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Process liveness only; no state detail."""
        return HealthResponse(
            status="ok",
            version=settings.APP_VERSION,
            uptime_seconds=round(time.time() - STARTED_AT, 3),
            timestamp=utc_now_iso(),
        )

    # Ingestion (no prefix, hook scripts post here)
    app.include_router(events.router)

    # API v1 routes
    app.include_router(monitor.router, prefix=settings.API_V1_PREFIX)

    # ==========================================================================
    # WebSocket Endpoints
    # ==========================================================================

    @app.websocket("/ws")
    async def monitor_websocket(websocket: WebSocket, engine: EngineDep, manager: ConnectionManagerDep):
        """Snapshot followed by the live change stream."""
        await websocket_endpoint(websocket, engine, manager)

    # ==========================================================================
    # Root Endpoint
    # ==========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.is_development else "Disabled in production",
            "health": "/health",
            "ingest": "/event",
            "stream": "/ws",
            "api": settings.API_V1_PREFIX,
        }

    return app


# ==========================================================================
# Application Instance
# ==========================================================================

app = create_app()


# ==========================================================================
# Development Server
# ==========================================================================

def run() -> None:
    """Console entry point: serve on the configured localhost port."""
    import uvicorn

    uvicorn.run(
        "thinking_monitor.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level="info",
    )


if __name__ == "__main__":
    run()
