"""Shared fixtures for stress-analytics tests."""

from datetime import date

import pytest

from stress_analytics.core.periods import DateRange, day_range
from stress_analytics.core.questions import QuestionMeta


@pytest.fixture()
def march_range() -> DateRange:
    """Naive inclusive range covering March 2024 (31 days, day buckets)."""
    return day_range(date(2024, 3, 1), date(2024, 3, 31))


@pytest.fixture()
def workload_question() -> QuestionMeta:
    """NEGATIVE 0-10 question on the workload driver."""
    return QuestionMeta(
        id="q-workload",
        type="scale-0-10",
        driver_key="workload",
        dimension="workload",
        polarity="NEGATIVE",
        text="My workload is unmanageable",
    )


@pytest.fixture()
def clarity_question() -> QuestionMeta:
    """POSITIVE 0-10 question resolved through its driver tag; feeds engagement."""
    return QuestionMeta(
        id="q-clarity",
        type="scale-0-10",
        driver_tag="clarity",
        dimension="clarity",
        polarity="POSITIVE",
        text="I know what my priorities are",
    )
