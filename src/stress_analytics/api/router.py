"""FastAPI router for the Stress Analytics API.

All routes are thin: they parse inputs, build dependencies, delegate to
StressAnalyticsService, and serialise responses. No business logic lives here.
This is the only layer that reads the wall clock.

API prefix: /api/v1/stress
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stress_analytics.adapters.database import get_db_session
from stress_analytics.adapters.repositories import ResponseRepository, SurveyRunRepository
from stress_analytics.api.schemas import (
    StressMetricsResponse,
    TimeseriesRequest,
    TimeseriesResponse,
)
from stress_analytics.core.periods import PERIODS
from stress_analytics.core.records import AnalyticsScope
from stress_analytics.core.services.analytics_service import StressAnalyticsService
from stress_analytics.errors import (
    InvalidDateRangeError,
    InvalidPeriodError,
    StorageUnavailableError,
)
from stress_analytics.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/stress", tags=["Stress Analytics"])


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def get_analytics_service(
    session: AsyncSession = Depends(get_db_session),
) -> StressAnalyticsService:
    """Build StressAnalyticsService with injected repository dependencies.

    Args:
        session: Async SQLAlchemy session from the database pool.

    Returns:
        Configured StressAnalyticsService instance.
    """
    return StressAnalyticsService(
        response_repository=ResponseRepository(session),
        run_repository=SurveyRunRepository(session),
    )


def get_now() -> datetime:
    """Reference instant for period resolution; overridden in tests."""
    return datetime.now(timezone.utc)


def _storage_unavailable(exc: StorageUnavailableError) -> HTTPException:
    logger.error("Analytics query failed, storage unavailable", error=str(exc))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Analytics storage is temporarily unavailable",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/metrics",
    response_model=StressMetricsResponse,
    summary="Stress and engagement metrics for a period, compared with the previous one",
)
async def get_stress_metrics(
    org_id: str = Query(..., min_length=1),
    team_id: str | None = Query(None),
    member_id: str | None = Query(None),
    period: str = Query("month", description=f"One of: {', '.join(PERIODS)}"),
    locale: str = Query("en"),
    service: StressAnalyticsService = Depends(get_analytics_service),
    now: datetime = Depends(get_now),
) -> StressMetricsResponse:
    """Return top cards and driver cards for the period containing today."""
    scope = AnalyticsScope(org_id=org_id, team_id=team_id, member_id=member_id)
    try:
        report = await service.get_period_report(scope, period, locale, now)
    except InvalidPeriodError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except StorageUnavailableError as exc:
        raise _storage_unavailable(exc) from exc
    return StressMetricsResponse.from_report(report)


@router.post(
    "/timeseries",
    response_model=TimeseriesResponse,
    summary="Headline stress trend for an arbitrary date range",
)
async def get_stress_timeseries(
    body: TimeseriesRequest,
    service: StressAnalyticsService = Depends(get_analytics_service),
) -> TimeseriesResponse:
    """Return the bucketed trend series for ``[from, to]``, both days inclusive."""
    scope = AnalyticsScope(org_id=body.org_id, team_id=body.team_id, member_id=body.member_id)
    try:
        result = await service.get_timeseries(scope, body.from_, body.to, body.locale)
    except InvalidDateRangeError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except StorageUnavailableError as exc:
        raise _storage_unavailable(exc) from exc
    return TimeseriesResponse.from_result(result)
