"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docfiling.api.errors import to_http_exception
from docfiling.api.router import api_router
from docfiling.config import settings
from docfiling.errors import FilingError
from docfiling.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup
    setup_logging(component="api")

    # Sentry init if configured
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
        )

    if settings.DB_CREATE_TABLES:
        from docfiling.models.database import init_db
        await init_db()

    logger.info("app_started", version=settings.APP_VERSION)
    yield

    # Shutdown
    from docfiling.models.database import close_db
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Document Filing Service",
        description="Bulk document ingestion, AI classification feedback and training-data export.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    # Domain errors that escape a route
    @app.exception_handler(FilingError)
    async def filing_error_handler(request: Request, exc: FilingError):
        http_exc = to_http_exception(exc)
        logger.warning("request_failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    # Include all API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()
