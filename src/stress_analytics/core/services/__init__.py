"""Services package for the Stress Analytics engine."""

from stress_analytics.core.services.analytics_service import (
    PeriodReport,
    StressAnalyticsService,
    TimeseriesResult,
)
from stress_analytics.core.services.recompute_service import (
    RecomputeOrchestrator,
    RecomputeSummary,
)

__all__ = [
    "PeriodReport",
    "RecomputeOrchestrator",
    "RecomputeSummary",
    "StressAnalyticsService",
    "TimeseriesResult",
]
