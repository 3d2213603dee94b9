"""Supported display locales and localized calendar names."""

from typing import Literal

Locale = Literal["en", "ru"]

SUPPORTED_LOCALES: tuple[str, ...] = ("en", "ru")
DEFAULT_LOCALE: Locale = "en"

# Short month names as rendered next to a day number ("Mar 5", "5 мар.").
MONTHS_WITH_DAY: dict[str, tuple[str, ...]] = {
    "en": ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    "ru": (
        "янв.", "февр.", "мар.", "апр.", "мая", "июн.",
        "июл.", "авг.", "сент.", "окт.", "нояб.", "дек.",
    ),
}

# Standalone short month names ("Mar", "март").
MONTHS_STANDALONE: dict[str, tuple[str, ...]] = {
    "en": MONTHS_WITH_DAY["en"],
    "ru": (
        "янв.", "февр.", "март", "апр.", "май", "июнь",
        "июль", "авг.", "сент.", "окт.", "нояб.", "дек.",
    ),
}


def normalize_locale(value: str | None) -> Locale:
    """Return a supported locale, falling back to English."""
    if value and value.strip().lower() in SUPPORTED_LOCALES:
        return value.strip().lower()  # type: ignore[return-value]
    return DEFAULT_LOCALE
