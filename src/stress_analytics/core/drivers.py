"""Driver taxonomy for stress and engagement analytics.

Question metadata has been authored over time with inconsistent vocabulary:
some questions carry a canonical ``driver_key``, some only a legacy tag such
as "workload" or "balance", some only a free-form dimension. This module maps
all of those onto a closed set of eleven driver keys.

Resolution is total and stable: ``resolve_driver_key`` always returns a
``DriverKey`` and the same input always yields the same output.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from stress_analytics.core.locales import Locale


class DriverKey(str, Enum):
    """Canonical stress drivers plus the ``unknown`` catch-all."""

    WORKLOAD_DEADLINES = "workload_deadlines"
    CLARITY_PRIORITIES = "clarity_priorities"
    MANAGER_SUPPORT = "manager_support"
    MEETINGS_FOCUS = "meetings_focus"
    PSYCHOLOGICAL_SAFETY = "psychological_safety"
    RECOVERY_ENERGY = "recovery_energy"
    AUTONOMY_CONTROL = "autonomy_control"
    RECOGNITION_FEEDBACK = "recognition_feedback"
    PROCESS_CLARITY = "process_clarity"
    LONG_TERM_OUTLOOK = "long_term_outlook"
    UNKNOWN = "unknown"


_CANONICAL_BY_VALUE: dict[str, DriverKey] = {key.value: key for key in DriverKey}

# Normalized legacy label -> canonical driver.
LEGACY_DRIVER_ALIASES: dict[str, DriverKey] = {
    "workload": DriverKey.WORKLOAD_DEADLINES,
    "load": DriverKey.WORKLOAD_DEADLINES,
    "deadlines": DriverKey.WORKLOAD_DEADLINES,
    "clarity": DriverKey.CLARITY_PRIORITIES,
    "priorities": DriverKey.CLARITY_PRIORITIES,
    "manager_support": DriverKey.MANAGER_SUPPORT,
    "support": DriverKey.MANAGER_SUPPORT,
    "meetings_focus": DriverKey.MEETINGS_FOCUS,
    "meetings": DriverKey.MEETINGS_FOCUS,
    "focus": DriverKey.MEETINGS_FOCUS,
    "psych_safety": DriverKey.PSYCHOLOGICAL_SAFETY,
    "safety": DriverKey.PSYCHOLOGICAL_SAFETY,
    "atmosphere": DriverKey.PSYCHOLOGICAL_SAFETY,
    "balance": DriverKey.RECOVERY_ENERGY,
    "stress": DriverKey.RECOVERY_ENERGY,
    "recovery": DriverKey.RECOVERY_ENERGY,
    "energy": DriverKey.RECOVERY_ENERGY,
    "autonomy": DriverKey.AUTONOMY_CONTROL,
    "control": DriverKey.AUTONOMY_CONTROL,
    "recognition": DriverKey.RECOGNITION_FEEDBACK,
    "feedback": DriverKey.RECOGNITION_FEEDBACK,
    "processes": DriverKey.PROCESS_CLARITY,
    "process": DriverKey.PROCESS_CLARITY,
    "long_term": DriverKey.LONG_TERM_OUTLOOK,
    "outlook": DriverKey.LONG_TERM_OUTLOOK,
    "growth": DriverKey.LONG_TERM_OUTLOOK,
    "engagement": DriverKey.AUTONOMY_CONTROL,
}

# Reporting dimension for each canonical driver, used when writing
# driver metadata back onto legacy questions.
DRIVER_KEY_TO_DIMENSION: dict[DriverKey, str] = {
    DriverKey.WORKLOAD_DEADLINES: "workload",
    DriverKey.CLARITY_PRIORITIES: "clarity",
    DriverKey.MANAGER_SUPPORT: "recognition",
    DriverKey.MEETINGS_FOCUS: "engagement",
    DriverKey.PSYCHOLOGICAL_SAFETY: "psych_safety",
    DriverKey.RECOVERY_ENERGY: "stress",
    DriverKey.AUTONOMY_CONTROL: "engagement",
    DriverKey.RECOGNITION_FEEDBACK: "recognition",
    DriverKey.PROCESS_CLARITY: "clarity",
    DriverKey.LONG_TERM_OUTLOOK: "engagement",
    DriverKey.UNKNOWN: "other",
}


@dataclass(frozen=True)
class DriverDefinition:
    """Display metadata for one canonical driver.

    Attributes:
        key: Canonical driver key.
        labels: Short label per locale.
        descriptions: One-line description per locale.
    """

    key: DriverKey
    labels: dict[str, str]
    descriptions: dict[str, str]

    def label(self, locale: Locale) -> str:
        return self.labels.get(locale, self.labels["en"])

    def description(self, locale: Locale) -> str:
        return self.descriptions.get(locale, self.descriptions["en"])


DRIVER_DEFINITIONS: list[DriverDefinition] = [
    DriverDefinition(
        key=DriverKey.WORKLOAD_DEADLINES,
        labels={"en": "Workload & deadlines", "ru": "Нагрузка и дедлайны"},
        descriptions={
            "en": "How workload and deadlines feel.",
            "ru": "Как ощущается объём задач и сроки.",
        },
    ),
    DriverDefinition(
        key=DriverKey.CLARITY_PRIORITIES,
        labels={"en": "Clarity of priorities", "ru": "Ясность задач и приоритетов"},
        descriptions={
            "en": "How clear goals and expectations are.",
            "ru": "Насколько понятны цели и ожидания.",
        },
    ),
    DriverDefinition(
        key=DriverKey.MANAGER_SUPPORT,
        labels={"en": "Manager support", "ru": "Поддержка менеджера"},
        descriptions={
            "en": "Ability to discuss stress and get help.",
            "ru": "Можно ли открыто говорить о стрессе и получать помощь.",
        },
    ),
    DriverDefinition(
        key=DriverKey.MEETINGS_FOCUS,
        labels={"en": "Focus & meetings", "ru": "Фокус и митинги"},
        descriptions={
            "en": "Time for deep work without constant meetings.",
            "ru": "Есть ли время на глубокую работу без встреч.",
        },
    ),
    DriverDefinition(
        key=DriverKey.PSYCHOLOGICAL_SAFETY,
        labels={"en": "Psychological safety", "ru": "Психологическая безопасность"},
        descriptions={
            "en": "How safe it is to raise issues.",
            "ru": "Насколько безопасно говорить о проблемах.",
        },
    ),
    DriverDefinition(
        key=DriverKey.RECOVERY_ENERGY,
        labels={"en": "Recovery & energy", "ru": "Восстановление и энергия"},
        descriptions={
            "en": "Energy levels and time to recover.",
            "ru": "Хватает ли энергии и времени на восстановление.",
        },
    ),
    DriverDefinition(
        key=DriverKey.AUTONOMY_CONTROL,
        labels={"en": "Autonomy & control", "ru": "Контроль и автономия"},
        descriptions={
            "en": "Ability to control how work is done.",
            "ru": "Насколько много самостоятельности и влияния на работу.",
        },
    ),
    DriverDefinition(
        key=DriverKey.RECOGNITION_FEEDBACK,
        labels={"en": "Recognition & feedback", "ru": "Признание и обратная связь"},
        descriptions={
            "en": "Perceived recognition and fairness.",
            "ru": "Чувствуется ли поддержка и справедливость.",
        },
    ),
    DriverDefinition(
        key=DriverKey.PROCESS_CLARITY,
        labels={"en": "Process clarity", "ru": "Процессы и ясность"},
        descriptions={
            "en": "Whether processes support work.",
            "ru": "Насколько процессы помогают, а не мешают.",
        },
    ),
    DriverDefinition(
        key=DriverKey.LONG_TERM_OUTLOOK,
        labels={"en": "Long-term outlook", "ru": "Долгосрочная перспектива"},
        descriptions={
            "en": "Sustainability and long-term outlook.",
            "ru": "Есть ли ощущение устойчивости и смысла.",
        },
    ),
]


def known_driver_keys() -> list[DriverKey]:
    """Return the ten canonical driver keys in display order (``unknown`` excluded)."""
    return [definition.key for definition in DRIVER_DEFINITIONS]


def is_known_driver_key(key: DriverKey) -> bool:
    """Return True for canonical drivers, False for ``unknown``."""
    return key is not DriverKey.UNKNOWN


def normalize_driver_key(value: Any) -> DriverKey | None:
    """Map a free-form driver label to a canonical key.

    The value is lower-cased and trimmed, then checked against the canonical
    set (``unknown`` included) and finally against LEGACY_DRIVER_ALIASES.

    Args:
        value: Raw label from question metadata; may be None or non-string.

    Returns:
        The matching DriverKey, or None when the label is empty or unrecognised.
    """
    if value is None:
        return None
    if isinstance(value, DriverKey):
        return value
    normalized = str(value).strip().lower()
    if not normalized:
        return None
    direct = _CANONICAL_BY_VALUE.get(normalized)
    if direct is not None:
        return direct
    return LEGACY_DRIVER_ALIASES.get(normalized)


def resolve_driver_key(question: Any) -> DriverKey:
    """Resolve the driver for a question via the driver_key -> driver_tag -> dimension chain.

    Args:
        question: Any object exposing ``driver_key``, ``driver_tag`` and
            ``dimension`` attributes (missing attributes count as empty), or None.

    Returns:
        The first canonical match, or DriverKey.UNKNOWN.
    """
    if question is None:
        return DriverKey.UNKNOWN
    for attribute in ("driver_key", "driver_tag", "dimension"):
        resolved = normalize_driver_key(getattr(question, attribute, None))
        if resolved is not None:
            return resolved
    return DriverKey.UNKNOWN


def map_driver_key_to_dimension(driver_key: Any) -> str:
    """Return the reporting dimension for a (possibly legacy) driver label."""
    resolved = normalize_driver_key(driver_key) or DriverKey.UNKNOWN
    return DRIVER_KEY_TO_DIMENSION[resolved]


def get_driver_definitions(locale: Locale) -> list[dict[str, str]]:
    """Return localised key/label/description dicts for the ten canonical drivers.

    Args:
        locale: 'en' or 'ru'; unsupported locales fall back to English.

    Returns:
        List of dicts in display order.
    """
    return [
        {
            "key": definition.key.value,
            "label": definition.label(locale),
            "description": definition.description(locale),
        }
        for definition in DRIVER_DEFINITIONS
    ]
