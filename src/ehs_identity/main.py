"""FastAPI application entry point for EHS Identity.

Administrative REST API for duplicate detection, offender merging and the
company match review queue.
"""

from contextlib import asynccontextmanager

import sqlalchemy as sa
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import register_exception_handlers
from .cache import create_cache
from .config import Settings, get_settings
from .db import (
    SessionFactory,
    close_all_connections,
    get_redis,
    get_session_factory,
    session_scope,
)
from .logging import get_logger, setup_logging
from .registry import CompaniesHouseClient, CompanyRegistry

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting EHS Identity API",
        extra={
            "environment": settings.environment,
            "debug": settings.api_debug,
        },
    )

    yield

    logger.info("Shutting down EHS Identity API")
    if app.state.owns_registry:
        await app.state.registry.close()
    if app.state.session_factory is None:
        await close_all_connections()


def create_app(
    settings: Settings | None = None,
    session_factory: SessionFactory | None = None,
    registry: CompanyRegistry | None = None,
) -> FastAPI:
    """Build the API.

    Without a session factory the process-wide engine from ``db`` is used.
    Without a registry a Companies House client is built from settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="EHS Identity API",
        description="Identity resolution and merge engine for enforcement records",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.owns_registry = registry is None
    app.state.registry = registry or CompaniesHouseClient.from_settings(
        settings, cache=create_cache(settings)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # =========================
    # Health Check Endpoints
    # =========================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": "ehs-identity-api"}

    @app.get("/health/ready", tags=["Health"])
    async def readiness_check():
        """Readiness check that verifies storage connectivity."""
        checks = {"database": "unknown"}

        try:
            factory = app.state.session_factory or get_session_factory()
            async with session_scope(factory) as session:
                await session.execute(sa.text("SELECT 1"))
            checks["database"] = "healthy"
        except Exception as e:
            checks["database"] = f"unhealthy: {str(e)}"

        if settings.cache_backend == "redis":
            try:
                client = await get_redis()
                await client.ping()
                checks["redis"] = "healthy"
            except Exception as e:
                checks["redis"] = f"unhealthy: {str(e)}"

        all_healthy = all(v == "healthy" for v in checks.values())
        return JSONResponse(
            status_code=200 if all_healthy else 503,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "checks": checks,
            },
        )

    @app.get("/health/live", tags=["Health"])
    async def liveness_check():
        """Liveness check - just confirms the service is running."""
        return {"status": "alive"}

    # =========================
    # API Routers
    # =========================

    from .api.duplicates import router as duplicates_router
    from .api.merges import router as merges_router
    from .api.reviews import router as reviews_router

    app.include_router(duplicates_router, prefix="/api/v1", tags=["Duplicates"])
    app.include_router(merges_router, prefix="/api/v1", tags=["Merge"])
    app.include_router(reviews_router, prefix="/api/v1", tags=["Reviews"])

    @app.get("/", tags=["Root"])
    async def root():
        """API root endpoint."""
        return {
            "name": "EHS Identity API",
            "version": __version__,
            "docs": "/docs" if settings.is_development else None,
        }

    return app


app = create_app()
