"""
FastAPI application entry point for the energy monitor core.

Serves:
- Series listing for regular and composite systems
- Streaming vendor sync sessions
- Daily aggregation admin operations
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api.v1 import api_router
from .application.interfaces import VendorClient
from .application.services import DailyRollupService, SessionLabelGenerator
from .config import get_settings
from .domain.exceptions import DomainException
from .infrastructure.cache import SeriesCache
from .infrastructure.database import DatabaseManager, get_db_session, init_db
from .infrastructure.database import health_check as db_health_check
from .infrastructure.database.repositories import (
    AggregateRepository,
    PointRepository,
    SystemRepository,
)
from .infrastructure.messaging import RedisStreamManager, SessionPublisher
from .infrastructure.messaging import health_check as redis_health_check
from .workers import DailyAggregationWorker

settings = get_settings()
logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run_daily_rollup():
    """Worker callback: roll up yesterday in a fresh transaction."""
    async with get_db_session() as session:
        service = DailyRollupService(
            AggregateRepository(session),
            SystemRepository(session),
            PointRepository(session),
        )
        return await service.aggregate_yesterday()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Manages startup and shutdown tasks.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    # Redis only carries session notifications; the API works without it
    try:
        client = await RedisStreamManager.get_client()
        await client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed, sessions will not be published: {e}")

    worker: Optional[DailyAggregationWorker] = None
    if settings.workers.daily_aggregation_enabled:
        worker = DailyAggregationWorker(
            run_after_hour_utc=settings.workers.daily_aggregation_hour_utc,
            check_interval_seconds=settings.workers.check_interval_seconds,
        )
        worker.set_aggregate_yesterday(run_daily_rollup)
        await worker.start()
    app.state.daily_aggregation_worker = worker

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if worker is not None:
        await worker.stop()
    await DatabaseManager.close()
    await RedisStreamManager.close()
    logger.info("Shutdown complete")


def create_app(vendor_client: Optional[VendorClient] = None) -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application. The vendor client is
    supplied by the deployment; without one the sync endpoint returns 503.
    """
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Energy monitor API - series, vendor sync and daily aggregation",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Process-wide state shared by request-scoped services
    app.state.series_cache = SeriesCache(settings.series.cache_ttl_seconds)
    app.state.session_labels = SessionLabelGenerator()
    app.state.session_publisher = SessionPublisher()
    app.state.vendor_client = vendor_client

    register_exception_handlers(app)
    register_routes(app)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Domain errors answer with their own status; anything else is a 500."""

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        content = {'error': 'INTERNAL_ERROR', 'message': 'An internal error occurred'}
        if settings.debug:
            content.update(message=str(exc), type=type(exc).__name__)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_routes(app: FastAPI) -> None:
    """Health check plus the versioned API."""

    @app.get("/health", tags=["Health"])
    async def health():
        db_ok = await db_health_check()
        redis_ok = await redis_health_check()
        worker = getattr(app.state, "daily_aggregation_worker", None)
        return {
            'status': 'healthy' if db_ok else 'unhealthy',
            'version': settings.app_version,
            'environment': settings.environment,
            'services': {
                'database': 'up' if db_ok else 'down',
                'redis': 'up' if redis_ok else 'down',
            },
            'session_publisher': app.state.session_publisher.get_stats(),
            'vendor_client': app.state.vendor_client is not None,
            'daily_aggregation': worker.get_stats() if worker else None,
        }

    app.include_router(api_router)


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "energy_monitor.main:app",
        host="0.0.0.0",
        port=8000,
    )
