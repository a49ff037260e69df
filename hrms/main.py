"""
Main FastAPI Application

Entry point for the multi-tenant HR/payroll platform.
Builds the tenancy core once per process, then configures middleware,
error handlers and routes around it.

The tenant directory, connection registry and aggregator live on
app.state and are injected into routes via hrms.api.deps.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
from contextlib import asynccontextmanager
from typing import Optional

from hrms.config import Settings, get_settings
from hrms.database import SessionLocal, engine, init_db
from hrms.middleware.tenant import TenantMiddleware
from hrms.utils.logging import setup_logging, get_logger
from hrms.core.exceptions import (
    ConfigurationError,
    ModelConflictError,
    TenantConnectionError,
)
from hrms.schemas.records import TENANT_MODELS
from hrms.tenancy import (
    CrossTenantAggregator,
    SqlAlchemyConnector,
    SqlTenantDirectory,
    TenantConnectionRegistry,
    TenantDirectory,
    TenantLocator,
)
from hrms.tenancy.connection import TenantConnector

# Import routers
from hrms.api.endpoints import activities, platform

settings = get_settings()

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Tenant connections are opened lazily on first request and all of
    them are released here on shutdown.
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    if app.state.uses_control_db and settings.ENVIRONMENT == "development":
        logger.warning("Initializing control-plane tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    closed = await app.state.tenant_registry.close_all()
    logger.info(f"Closed {closed} tenant connections")
    engine.dispose()
    logger.info("Application shutdown complete")


def create_app(
    directory: Optional[TenantDirectory] = None,
    connector: Optional[TenantConnector] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application and its tenancy core.

    directory/connector default to the control-plane database and one
    SQLAlchemy async engine per tenant. Tests pass their own.
    """
    config = config or settings

    app = FastAPI(
        title="HRMS Platform",
        description="Multi-tenant HR/payroll platform with database-per-tenant isolation",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.uses_control_db = directory is None
    app.state.tenant_directory = directory or SqlTenantDirectory(SessionLocal)
    app.state.tenant_registry = TenantConnectionRegistry(
        directory=app.state.tenant_directory,
        locator=TenantLocator(config.TENANT_DATABASE_URL_TEMPLATE),
        connector=connector or SqlAlchemyConnector(pool_size=config.TENANT_POOL_SIZE, echo=config.DEBUG),
        connect_timeout=config.TENANT_CONNECT_TIMEOUT,
        default_models=TENANT_MODELS,
    )
    app.state.tenant_aggregator = CrossTenantAggregator(
        app.state.tenant_registry,
        concurrency=config.AGGREGATION_CONCURRENCY,
        query_timeout=config.TENANT_QUERY_TIMEOUT,
        sweep_timeout=config.AGGREGATION_TIMEOUT,
    )

    _configure_middleware(app, config)
    _register_exception_handlers(app, config)
    _register_routes(app, config)
    return app


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

def _configure_middleware(app: FastAPI, config: Settings) -> None:
    # Resolves tenant + connection before any tenant-scoped route runs.
    # Added before CORS so CORS is the outer layer: preflights and tenant
    # rejections must still carry CORS headers.
    app.add_middleware(TenantMiddleware)

    # SECURITY: In production, restrict allowed_origins to specific domains
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins if config.ENVIRONMENT != "development" else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add X-Process-Time header to track request duration."""
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _register_exception_handlers(app: FastAPI, config: Settings) -> None:

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.warning(f"Unresolvable tenant: {exc}", extra={"tenant_id": exc.tenant_id})
        return JSONResponse(
            status_code=404,
            content={"detail": str(exc), "type": "configuration_error"}
        )

    @app.exception_handler(TenantConnectionError)
    async def tenant_connection_error_handler(request: Request, exc: TenantConnectionError):
        logger.error(f"Tenant store unavailable: {exc}", extra={"tenant_id": exc.tenant_id})
        return JSONResponse(
            status_code=503,
            content={"detail": "Tenant data store unavailable", "type": "tenant_connection_error"}
        )

    @app.exception_handler(ModelConflictError)
    async def model_conflict_error_handler(request: Request, exc: ModelConflictError):
        """A model name bound twice with different schemas is a bug, not a client error."""
        logger.error(f"Model conflict: {exc}", extra={"tenant_id": exc.tenant_id})
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "type": "model_conflict"}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        SECURITY: Don't expose internal errors in production.
        """
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
            exc_info=True,
            extra={"tenant_id": getattr(request.state, "tenant_id", None)}
        )

        if config.DEBUG:
            return JSONResponse(
                status_code=500,
                content={"detail": str(exc), "type": type(exc).__name__}
            )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "type": "internal_error"}
        )


# ============================================================================
# ROUTES
# ============================================================================

def _register_routes(app: FastAPI, config: Settings) -> None:

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "environment": config.ENVIRONMENT,
            "version": "1.0.0",
            "tenant_connections": len(app.state.tenant_registry),
        }

    @app.get("/", tags=["root"])
    async def root():
        return {
            "message": "HRMS Platform API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health"
        }

    app.include_router(activities.router, prefix="/api/v1")
    app.include_router(platform.router, prefix="/api/v1")


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info("HRMS Platform")
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Tenant URL template: {settings.TENANT_DATABASE_URL_TEMPLATE.split('@')[-1]}")
    logger.info("=" * 80)

    uvicorn.run(
        "hrms.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
