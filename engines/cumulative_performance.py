"""Cumulative quiz performance across tests.

The tracker folds a freshly graded quiz into the running aggregate kept for a
study session: lifetime totals, per-concept accuracy with a suggested
difficulty tier, and short-term trend signals computed over bounded recency
windows. Every update returns a new snapshot; the previous one is left intact
so callers can keep, persist or discard it independently.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from engines.difficulty_manager import determine_difficulty
from schemas import (
    ConceptPerformance,
    ConceptQuizResult,
    CumulativePerformance,
    RecentQuestion,
    TestQuestion,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CumulativePerformanceTracker",
    "GradedQuestion",
    "calculate_trend",
    "coerce_performance",
    "create_empty_cumulative_performance",
    "determine_difficulty",
    "extract_concept_performance",
    "normalize_question",
    "update_cumulative_performance",
]

RECENT_WINDOW = 10
TREND_WINDOW = 3
UNKNOWN_CONCEPT_ID = "unknown"
UNKNOWN_CONCEPT_NAME = "Unknown"

QuestionLike = Union[TestQuestion, Mapping[str, Any]]
PerformanceLike = Union[CumulativePerformance, Mapping[str, Any], None]


@dataclass(frozen=True)
class GradedQuestion:
    question_id: str
    text: str
    concept_id: str
    concept_name: str
    correct: bool


def _read(raw: Any, alias: str, name: str) -> Any:
    if isinstance(raw, Mapping):
        if alias in raw:
            return raw[alias]
        return raw.get(name)
    return getattr(raw, name, None)


def normalize_question(raw: QuestionLike) -> GradedQuestion:
    """Apply the defaulting rules for absent question fields."""

    question_id = _read(raw, "questionId", "question_id")
    text = _read(raw, "question", "question")
    concept_id = _read(raw, "conceptId", "concept_id")
    concept_name = _read(raw, "conceptName", "concept_name")
    return GradedQuestion(
        question_id=str(question_id) if question_id else "",
        text=str(text) if text else "",
        concept_id=str(concept_id) if concept_id else UNKNOWN_CONCEPT_ID,
        concept_name=str(concept_name) if concept_name else UNKNOWN_CONCEPT_NAME,
        correct=_read(raw, "isCorrect", "is_correct") is True,
    )


def _percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part / whole * 100


def calculate_trend(scores: Sequence[float]) -> float:
    """Return the mean of the last three scores minus the mean of the three before.

    Fewer than two scores, or no scores before the latest three, yield 0. With
    four or five scores the earlier window is averaged over what it holds.
    """

    if len(scores) < 2:
        return 0.0
    recent = list(scores[-TREND_WINDOW:])
    previous = list(scores[-2 * TREND_WINDOW : -TREND_WINDOW])
    if not previous:
        return 0.0
    return statistics.fmean(recent) - statistics.fmean(previous)


def coerce_performance(previous: PerformanceLike) -> Optional[CumulativePerformance]:
    """Return a usable aggregate, or ``None`` when a fresh one must be started.

    Stored blobs without a ``conceptPerformance`` mapping, or that fail
    validation, count as absent.
    """

    if previous is None:
        return None
    if isinstance(previous, CumulativePerformance):
        return previous
    if not isinstance(previous, Mapping):
        logger.warning(
            "Ignoring previous performance of unsupported type %s",
            type(previous).__name__,
        )
        return None

    concepts = previous.get("conceptPerformance", previous.get("concept_performance"))
    if not isinstance(concepts, Mapping):
        if concepts is not None:
            logger.warning("Previous conceptPerformance is not a mapping; starting fresh")
        return None
    try:
        return CumulativePerformance.model_validate(previous)
    except ValidationError as exc:
        logger.warning("Previous cumulative performance is malformed; starting fresh: %s", exc)
        return None


class CumulativePerformanceTracker:
    def __init__(
        self,
        window_size: int = RECENT_WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _tail(self, items: Iterable[Any]) -> List[Any]:
        return list(items)[-self.window_size :]

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    @staticmethod
    def normalize(questions: Iterable[QuestionLike]) -> List[GradedQuestion]:
        return [normalize_question(raw) for raw in questions or ()]

    @staticmethod
    def _group(graded: Sequence[GradedQuestion]) -> Dict[str, ConceptQuizResult]:
        grouped: Dict[str, ConceptQuizResult] = {}
        for item in graded:
            entry = grouped.get(item.concept_id)
            if entry is None:
                entry = ConceptQuizResult(concept_name=item.concept_name)
                grouped[item.concept_id] = entry
            entry.concept_name = item.concept_name
            entry.total_questions += 1
            entry.question_results.append(1 if item.correct else 0)
            if item.correct:
                entry.correct_answers += 1

        for entry in grouped.values():
            entry.accuracy = _percentage(entry.correct_answers, entry.total_questions)
        return grouped

    def extract_concept_performance(
        self, questions: Iterable[QuestionLike]
    ) -> Dict[str, ConceptQuizResult]:
        """Group one quiz's questions by concept and score each group."""

        return self._group(self.normalize(questions))

    def create_empty(self) -> CumulativePerformance:
        return CumulativePerformance()

    def _new_concept(self, concept_id: str, result: ConceptQuizResult, timestamp: str) -> ConceptPerformance:
        return ConceptPerformance(
            concept_id=concept_id,
            concept_name=result.concept_name,
            total_questions=result.total_questions,
            correct_answers=result.correct_answers,
            accuracy=result.accuracy,
            suggested_difficulty=determine_difficulty(result.accuracy),
            last_tested=timestamp,
            recent_scores=self._tail(result.question_results),
            trend=0.0,
        )

    def _merge_concept(
        self, concept_id: str, prev: ConceptPerformance, result: ConceptQuizResult, timestamp: str
    ) -> ConceptPerformance:
        total = prev.total_questions + result.total_questions
        correct = prev.correct_answers + result.correct_answers
        accuracy = _percentage(correct, total)
        scores = self._tail([*prev.recent_scores, *result.question_results])
        return ConceptPerformance(
            concept_id=concept_id,
            concept_name=result.concept_name,
            total_questions=total,
            correct_answers=correct,
            accuracy=accuracy,
            suggested_difficulty=determine_difficulty(accuracy),
            last_tested=timestamp,
            recent_scores=scores,
            # Per-question 0/1 outcomes are compared on the percentage scale.
            trend=calculate_trend([score * 100 for score in scores]),
        )

    def update(
        self, previous: PerformanceLike, questions: Iterable[QuestionLike]
    ) -> CumulativePerformance:
        """Fold one graded quiz into ``previous`` and return the new aggregate."""

        graded = self.normalize(questions)
        per_concept = self._group(graded)
        quiz_total = len(graded)
        quiz_correct = sum(1 for item in graded if item.correct)
        quiz_accuracy = _percentage(quiz_correct, quiz_total)
        timestamp = self._timestamp()
        fresh_recent = [
            RecentQuestion(text=item.text, concept_id=item.concept_id, question_id=item.question_id)
            for item in graded
            if item.text and item.question_id
        ]

        baseline = coerce_performance(previous)
        if baseline is None:
            updated = CumulativePerformance(
                total_tests=1,
                total_questions=quiz_total,
                total_correct_answers=quiz_correct,
                overall_accuracy=quiz_accuracy,
                concept_performance={
                    concept_id: self._new_concept(concept_id, result, timestamp)
                    for concept_id, result in per_concept.items()
                },
                recent_questions=self._tail(fresh_recent),
                recent_test_scores=[quiz_accuracy],
                overall_trend=0.0,
            )
        else:
            concepts = {
                concept_id: perf.model_copy(deep=True)
                for concept_id, perf in baseline.concept_performance.items()
            }
            for concept_id, result in per_concept.items():
                existing = concepts.get(concept_id)
                if existing is None:
                    concepts[concept_id] = self._new_concept(concept_id, result, timestamp)
                else:
                    concepts[concept_id] = self._merge_concept(concept_id, existing, result, timestamp)

            recent_test_scores = self._tail([*baseline.recent_test_scores, quiz_accuracy])
            total_questions = baseline.total_questions + quiz_total
            total_correct = baseline.total_correct_answers + quiz_correct
            updated = CumulativePerformance(
                total_tests=baseline.total_tests + 1,
                total_questions=total_questions,
                total_correct_answers=total_correct,
                overall_accuracy=_percentage(total_correct, total_questions),
                concept_performance=concepts,
                recent_questions=self._tail(
                    [*(q.model_copy() for q in baseline.recent_questions), *fresh_recent]
                ),
                recent_test_scores=recent_test_scores,
                overall_trend=calculate_trend(recent_test_scores),
            )

        logger.debug(
            "Folded quiz with %d questions (%.1f%%); tests=%d overall=%.1f%% concepts=%d",
            quiz_total,
            quiz_accuracy,
            updated.total_tests,
            updated.overall_accuracy,
            len(updated.concept_performance),
        )
        return updated


_DEFAULT_TRACKER = CumulativePerformanceTracker()


def extract_concept_performance(questions: Iterable[QuestionLike]) -> Dict[str, ConceptQuizResult]:
    return _DEFAULT_TRACKER.extract_concept_performance(questions)


def update_cumulative_performance(
    previous: PerformanceLike, current_test_questions: Iterable[QuestionLike]
) -> CumulativePerformance:
    return _DEFAULT_TRACKER.update(previous, current_test_questions)


def create_empty_cumulative_performance() -> CumulativePerformance:
    return _DEFAULT_TRACKER.create_empty()
