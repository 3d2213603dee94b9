"""Stress Analytics service entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stress_analytics import __version__
from stress_analytics.adapters.database import close_database, init_database
from stress_analytics.api.router import router
from stress_analytics.api.schemas import HealthResponse
from stress_analytics.observability import configure_logging, get_logger
from stress_analytics.settings import Settings

settings = Settings()
configure_logging(settings.log_level, json_logs=settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    init_database(settings)
    logger.info("Service started", service=settings.service_name, version=__version__)
    yield
    await close_database()
    logger.info("Service stopped", service=settings.service_name)


app: FastAPI = FastAPI(
    title=settings.service_name,
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(status="ok", service=settings.service_name, version=__version__)


app.include_router(router, prefix="/api/v1")
