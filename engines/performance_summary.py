"""Statistics panel and focus areas derived from the cumulative aggregate."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from engines.difficulty_manager import (
    BASIC_CEILING,
    DEFAULT_LOCALE,
    INTERMEDIATE_CEILING,
    accuracy_band,
    difficulty_label,
)
from schemas import ConceptPerformance, CumulativePerformance, FocusArea

PANEL_CONCEPT_LIMIT = 6


def _weakest_first(cumulative: CumulativePerformance) -> List[ConceptPerformance]:
    return sorted(
        cumulative.concept_performance.values(),
        key=lambda concept: (concept.accuracy, concept.concept_name),
    )


def build_statistics_panel(
    cumulative: Optional[CumulativePerformance],
    *,
    limit: int = PANEL_CONCEPT_LIMIT,
    locale: str = DEFAULT_LOCALE,
) -> Optional[Dict[str, Any]]:
    """Summarise the aggregate for the "your statistics" view.

    Returns ``None`` until at least one quiz has been folded in. Concepts are
    ordered weakest first so the panel surfaces what needs practice.
    """

    if cumulative is None or cumulative.total_tests <= 0:
        return None

    rows = []
    for concept in _weakest_first(cumulative)[: max(0, limit)]:
        rows.append(
            {
                "conceptId": concept.concept_id,
                "conceptName": concept.concept_name,
                "accuracy": concept.accuracy,
                "accuracyDisplay": f"{concept.accuracy:.0f}%",
                "band": accuracy_band(concept.accuracy),
                "suggestedDifficulty": concept.suggested_difficulty,
                "difficultyLabel": difficulty_label(concept.suggested_difficulty, locale),
                "trend": concept.trend,
            }
        )

    return {
        "totalTests": cumulative.total_tests,
        "totalQuestions": cumulative.total_questions,
        "totalCorrectAnswers": cumulative.total_correct_answers,
        "overallAccuracy": cumulative.overall_accuracy,
        "overallAccuracyDisplay": f"{cumulative.overall_accuracy:.0f}%",
        "overallTrend": cumulative.overall_trend,
        "conceptCount": len(cumulative.concept_performance),
        "concepts": rows,
    }


def focus_areas(
    cumulative: Optional[CumulativePerformance],
    *,
    threshold: float = INTERMEDIATE_CEILING,
) -> List[FocusArea]:
    if cumulative is None:
        return []
    areas = []
    for concept in _weakest_first(cumulative):
        if concept.accuracy >= threshold:
            continue
        areas.append(
            FocusArea(
                concept_id=concept.concept_id,
                concept_name=concept.concept_name,
                current_accuracy=concept.accuracy,
                suggested_difficulty=concept.suggested_difficulty,
                priority="high" if concept.accuracy < BASIC_CEILING else "medium",
            )
        )
    return areas
