"""Survey question metadata as consumed by the analytics engine.

Question metadata is owned by the survey authoring system; this module only
defines the read-only shape the scoring code needs and the question-type
vocabulary (``scale-1-5``, ``scale-0-10``, ``single-choice``, ``multi-choice``,
``text``, plus the legacy ``SCALE`` tag).
"""

from dataclasses import dataclass

# Question types whose answers are never numeric scale values.
NON_SCALE_TYPES: frozenset[str] = frozenset(
    {
        "single-choice",
        "single_choice",
        "multi-choice",
        "multi_choice",
        "multiple_choice",
        "text",
        "free_text",
    }
)


@dataclass(frozen=True)
class QuestionMeta:
    """Metadata for one survey question.

    Attributes:
        id: Question identifier referenced by answers.
        type: Question type tag (e.g. 'scale-1-5'); None when unknown.
        scale_min: Optional explicit lower scale bound.
        scale_max: Optional explicit upper scale bound.
        driver_key: Free-form, possibly legacy, driver label.
        driver_tag: Secondary driver label.
        dimension: Free-form dimension name.
        polarity: 'POSITIVE' or 'NEGATIVE'; None means NEGATIVE.
        text: Question wording, used only to match known question metadata.
    """

    id: str
    type: str | None = None
    scale_min: float | None = None
    scale_max: float | None = None
    driver_key: str | None = None
    driver_tag: str | None = None
    dimension: str | None = None
    polarity: str | None = None
    text: str | None = None


def is_scale_type(question_type: str | None) -> bool:
    """Return True when a question type tag can carry numeric scale answers.

    Untyped questions are treated as scale questions so that legacy metadata
    without a type tag is still scored.
    """
    if question_type is None:
        return True
    normalized = question_type.strip().lower()
    return normalized not in NON_SCALE_TYPES

