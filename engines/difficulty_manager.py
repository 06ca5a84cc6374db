"""Difficulty tiers derived from concept accuracy."""

from __future__ import annotations

from typing import Dict

from schemas import DifficultyTier

BASIC_CEILING = 50.0
INTERMEDIATE_CEILING = 70.0

DIFFICULTY_LABELS: Dict[str, Dict[str, str]] = {
    "pl": {
        "basic": "Podstawowy",
        "intermediate": "Średni",
        "advanced": "Zaawansowany",
    },
    "en": {
        "basic": "Basic",
        "intermediate": "Intermediate",
        "advanced": "Advanced",
    },
}
DEFAULT_LOCALE = "pl"


def determine_difficulty(accuracy: float) -> DifficultyTier:
    """Map an accuracy percentage onto the suggested difficulty tier.

    Values above 100 fall through to ``advanced``; negative values are ``basic``.
    """

    if accuracy < BASIC_CEILING:
        return "basic"
    if accuracy < INTERMEDIATE_CEILING:
        return "intermediate"
    return "advanced"


def difficulty_label(tier: str, locale: str = DEFAULT_LOCALE) -> str:
    labels = DIFFICULTY_LABELS.get(locale) or DIFFICULTY_LABELS[DEFAULT_LOCALE]
    # Anything unrecognised renders as the middle tier.
    return labels.get(tier, labels["intermediate"])


def accuracy_band(accuracy: float) -> str:
    """Coarsely categorise accuracy for colour-coded display."""

    if accuracy >= INTERMEDIATE_CEILING:
        return "strong"
    if accuracy >= BASIC_CEILING:
        return "moderate"
    return "weak"
