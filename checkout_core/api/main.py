"""
Main FastAPI application.

Checkout API with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
- Demo order progression loop
"""
import asyncio
import contextlib
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config.environment import load_environment
from ..context import AppContext, get_context
from ..errors import ConfigValidationError
from ..monitoring.logging import setup_logging
from .routes import (
    integration_router,
    monitoring_router,
    order_router,
    payment_router,
    webhook_router,
)

logger = structlog.get_logger(__name__)


def _allowed_origins(context: AppContext) -> List[str]:
    values = context.env if context.env is not None else load_environment()
    raw = values.get("ALLOWED_ORIGINS") or values.get("SITE_URL") or ""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Resolves configuration, configures logging and, in demo mode with
    auto-advance enabled, runs the order progression loop.
    """
    context: AppContext = app.state.context

    # Startup
    try:
        config = context.get_config()
    except ConfigValidationError as e:
        setup_logging()
        logger.error("config_validation_failed", error=str(e), field=e.field)
        raise

    setup_logging(config)
    logger.info(
        "application_startup",
        mode=config.mode,
        env=config.app_env,
        auto_advance=config.orders.auto_advance_enabled,
    )

    progression_task: Optional[asyncio.Task] = None
    if config.is_demo and config.orders.auto_advance_enabled:
        engine = context.get_progression_engine()
        progression_task = asyncio.create_task(engine.run())

    yield

    # Shutdown
    logger.info("application_shutdown")
    await context.aclose()
    if progression_task is not None:
        progression_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await progression_task


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the checkout API.

    Args:
        context: Context supplying configuration and providers; the
            process-wide default context is used when omitted

    Returns:
        FastAPI: Application with routers and middleware installed
    """
    context = context or get_context()

    app = FastAPI(
        title="Checkout Core",
        description=(
            "Checkout backend that runs fully simulated in demo mode or against "
            "Stripe, SendGrid/SES and Cloudinary/S3 in production mode."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.context = context

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(context),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add request ID and timing to every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(payment_router)
    app.include_router(webhook_router)
    app.include_router(order_router)
    app.include_router(integration_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "service": "checkout-core",
            "version": __version__,
            "status": "operational",
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app
