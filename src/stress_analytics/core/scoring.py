"""Scoring primitives for stress and engagement analytics.

Resolves a single answer plus its question metadata into a 0-10 normalized
value, a stress score, and an engagement score. Polarity decides the
direction: a POSITIVE question ("I feel supported") answered high means low
stress and high engagement; a NEGATIVE question ("My workload is
unmanageable") answered high means high stress and low engagement.

Nothing here raises on bad answer data. Answers that cannot be read as a
number are reported as not scoreable (``None``) and out-of-range values are
clamped so a single malformed answer can never break aggregation.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from stress_analytics.core.drivers import DriverKey, is_known_driver_key, resolve_driver_key
from stress_analytics.core.questions import QuestionMeta, is_scale_type

SCORE_MIN: float = 0.0
SCORE_MAX: float = 10.0

# Answers on questions with these (lower-cased) dimensions also feed the
# engagement index.
ENGAGEMENT_DIMENSIONS: frozenset[str] = frozenset(
    {
        "engagement",
        "clarity",
        "recognition",
        "psych_safety",
        "manager_support",
        "meetings_focus",
        "control",
        "safety",
        "atmosphere",
    }
)


class Polarity(str, Enum):
    """Wording direction of a question."""

    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"


@dataclass(frozen=True)
class ScaleBounds:
    """Inclusive raw-value bounds of a scale question."""

    min: float
    max: float


@dataclass(frozen=True)
class ScoredAnswer:
    """A single answer resolved into normalized scores.

    Attributes:
        normalized: Raw value rescaled into [0, 10].
        polarity: Resolved question polarity.
        stress_score: Stress contribution in [0, 10].
        engagement_score: Engagement contribution in [0, 10].
        driver_key: Canonical driver for the question.
        dimension: Lower-cased raw dimension, or None.
    """

    normalized: float
    polarity: Polarity
    stress_score: float
    engagement_score: float
    driver_key: DriverKey
    dimension: str | None


@dataclass(frozen=True)
class DriverBlend:
    """Blended stress index across canonical drivers.

    Attributes:
        avg: Mean of per-driver means (0.0 when no driver has data).
        driver_count: Number of canonical drivers with at least one answer.
        answer_count: Total answers across those drivers.
    """

    avg: float
    driver_count: int
    answer_count: int


def clamp(value: float, low: float = SCORE_MIN, high: float = SCORE_MAX) -> float:
    return max(low, min(high, value))


def round_score(value: float, digits: int = 1) -> float:
    """Round half away from zero to a fixed number of decimals.

    Used exactly once per displayed or stored number; intermediate sums keep
    full precision.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def normalize_polarity(value: Any) -> Polarity:
    """Return POSITIVE only for a case-insensitive 'POSITIVE'; NEGATIVE otherwise."""
    if value is None:
        return Polarity.NEGATIVE
    if isinstance(value, Polarity):
        return value
    return Polarity.POSITIVE if str(value).strip().upper() == "POSITIVE" else Polarity.NEGATIVE


def _to_finite_number(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def extract_scale_value(answer: Any) -> float | None:
    """Read the numeric raw value from an answer.

    Accepts plain numbers, numeric strings, and mappings carrying a
    ``scaleValue``/``scale_value``/``value`` field.

    Args:
        answer: Raw answer payload.

    Returns:
        The finite numeric value, or None when the answer is not scoreable.
    """
    if answer is None:
        return None
    if isinstance(answer, Mapping):
        for field in ("scaleValue", "scale_value", "value"):
            if answer.get(field) is not None:
                return _to_finite_number(answer[field])
        return None
    return _to_finite_number(answer)


def _answer_type(answer: Any) -> str | None:
    if isinstance(answer, Mapping) and answer.get("type") is not None:
        return str(answer["type"])
    return None


def resolve_scale_bounds(
    question: QuestionMeta | None,
    answer_type: str | None = None,
) -> ScaleBounds:
    """Determine the raw scale bounds for a question.

    Explicit ``scale_min``/``scale_max`` win when both are set and differ.
    Otherwise the type tag (answer-level first, then question-level) is
    inspected for '1-5' or '0-10'. The default is 0-10.
    """
    scale_min = question.scale_min if question is not None else None
    scale_max = question.scale_max if question is not None else None
    if scale_min is not None and scale_max is not None and scale_max != scale_min:
        return ScaleBounds(min=float(scale_min), max=float(scale_max))

    type_tag = (answer_type or (question.type if question is not None else None) or "").lower()
    if "1-5" in type_tag or "1_5" in type_tag:
        return ScaleBounds(min=1.0, max=5.0)
    if "0-10" in type_tag or "0_10" in type_tag:
        return ScaleBounds(min=0.0, max=10.0)
    return ScaleBounds(min=0.0, max=10.0)


def normalize_scale_value(
    raw_value: float,
    question: QuestionMeta | None,
    answer_type: str | None = None,
) -> float:
    """Linearly rescale a raw answer into [0, 10], clamping out-of-range values."""
    bounds = resolve_scale_bounds(question, answer_type)
    if bounds.max == bounds.min:
        return clamp(raw_value)
    normalized = (raw_value - bounds.min) / (bounds.max - bounds.min) * SCORE_MAX
    return clamp(normalized)


def get_stress_score(value: float, polarity: Polarity) -> float:
    safe = clamp(value)
    return clamp(SCORE_MAX - safe) if polarity is Polarity.POSITIVE else safe


def get_engagement_score(value: float, polarity: Polarity) -> float:
    safe = clamp(value)
    return safe if polarity is Polarity.POSITIVE else clamp(SCORE_MAX - safe)


def is_engagement_dimension(dimension: str | None) -> bool:
    return dimension is not None and dimension in ENGAGEMENT_DIMENSIONS


def score_answer(answer: Any, question: QuestionMeta | None) -> ScoredAnswer | None:
    """Resolve one answer into normalized, stress and engagement scores.

    Args:
        answer: Raw answer payload (number, numeric string, or mapping).
        question: Metadata of the answered question; None when unknown, in
            which case default 0-10 bounds, NEGATIVE polarity and the
            ``unknown`` driver apply.

    Returns:
        ScoredAnswer, or None when the answer is not a numeric scale value
        or the question is a choice/text question.
    """
    if question is not None and not is_scale_type(question.type):
        return None

    raw = extract_scale_value(answer)
    if raw is None:
        return None

    normalized = normalize_scale_value(raw, question, _answer_type(answer))
    polarity = normalize_polarity(question.polarity if question is not None else None)
    dimension = question.dimension if question is not None else None

    return ScoredAnswer(
        normalized=normalized,
        polarity=polarity,
        stress_score=get_stress_score(normalized, polarity),
        engagement_score=get_engagement_score(normalized, polarity),
        driver_key=resolve_driver_key(question),
        dimension=str(dimension).strip().lower() if dimension else None,
    )


def compute_overall_stress_from_drivers(
    driver_totals: Mapping[DriverKey, Any],
) -> DriverBlend:
    """Blend per-driver totals into one stress index.

    Each canonical driver with data contributes its own mean once, so drivers
    with many questions do not dominate the index. ``unknown`` is excluded.

    Args:
        driver_totals: Mapping of driver to an object exposing ``sum`` and
            ``count`` (e.g. BucketAggregate).

    Returns:
        DriverBlend; ``avg`` is 0.0 when no canonical driver has answers.
    """
    sum_of_means = 0.0
    driver_count = 0
    answer_count = 0
    for driver_key, totals in driver_totals.items():
        if not is_known_driver_key(driver_key) or not totals.count:
            continue
        sum_of_means += totals.sum / totals.count
        driver_count += 1
        answer_count += totals.count
    return DriverBlend(
        avg=sum_of_means / driver_count if driver_count else 0.0,
        driver_count=driver_count,
        answer_count=answer_count,
    )
