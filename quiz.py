"""Quiz grading and session save/load around the cumulative tracker."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from backend_client import KartkowkaClient
from engines.cumulative_performance import (
    CumulativePerformanceTracker,
    PerformanceLike,
    coerce_performance,
    update_cumulative_performance,
)
from schemas import CumulativePerformance, SaveSessionPayload, SessionMaterials, SessionTests

logger = logging.getLogger(__name__)


@dataclass
class GradedQuiz:
    questions: List[Dict[str, Any]]
    cumulative: CumulativePerformance


@dataclass
class LoadedSession:
    session_id: Optional[str]
    subject: str
    topic: str
    materials: Optional[Dict[str, Any]] = None
    tests: Optional[Dict[str, Any]] = None
    curriculum_id: Optional[str] = None
    curriculum_topic_ids: List[str] = field(default_factory=list)
    topic_names: List[str] = field(default_factory=list)
    concept_ids: List[str] = field(default_factory=list)
    cumulative: Optional[CumulativePerformance] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "subject": self.subject,
            "topic": self.topic,
            "materials": self.materials,
            "tests": self.tests,
            "curriculumId": self.curriculum_id,
            "curriculumTopicIds": self.curriculum_topic_ids,
            "topicNames": self.topic_names,
            "conceptIds": self.concept_ids,
            "cumulativePerformance": self.cumulative.to_wire() if self.cumulative else None,
        }


def _answer_for(answers: Mapping[Any, str], index: int) -> Optional[str]:
    # JSON round-trips turn integer keys into strings.
    if index in answers:
        return answers[index]
    return answers.get(str(index))


def apply_grading(
    questions: Sequence[Mapping[str, Any]],
    answers: Mapping[Any, str],
    results: Sequence[Any],
) -> List[Dict[str, Any]]:
    """Attach the learner's answers and the backend verdicts to each question."""

    graded = []
    for index, question in enumerate(questions):
        result = results[index] if index < len(results) else None
        is_correct = result.get("isCorrect") if isinstance(result, Mapping) else None
        graded.append(
            {
                **question,
                "userAnswer": _answer_for(answers, index),
                "isCorrect": is_correct,
            }
        )
    return graded


def grade_quiz(
    client: KartkowkaClient,
    username: str,
    kartkowka_id: Optional[str],
    questions: Sequence[Mapping[str, Any]],
    answers: Mapping[Any, str],
    cumulative: PerformanceLike = None,
    *,
    tracker: Optional[CumulativePerformanceTracker] = None,
) -> GradedQuiz:
    """Grade a submitted quiz and fold the outcome into ``cumulative``.

    The aggregate is only updated once the backend has answered; a
    ``BackendError`` leaves the caller's aggregate untouched.
    """

    response = client.check_test_answers(username, kartkowka_id, questions, answers)
    graded = apply_grading(questions, answers, response["results"])
    if tracker is not None:
        updated = tracker.update(cumulative, graded)
    else:
        updated = update_cumulative_performance(cumulative, graded)

    logger.info(
        "Updated cumulative performance for %s: tests=%d accuracy=%.1f%% concepts=%d",
        username,
        updated.total_tests,
        updated.overall_accuracy,
        len(updated.concept_performance),
    )
    return GradedQuiz(questions=graded, cumulative=updated)


def build_save_payload(
    username: str,
    subject: str,
    topic: str,
    *,
    custom_session_name: Optional[str] = None,
    loaded_session_id: Optional[str] = None,
    curriculum_selection: Optional[Mapping[str, Any]] = None,
    materials: Optional[Mapping[str, Any]] = None,
    tests: Optional[Mapping[str, Any]] = None,
    cumulative: Optional[CumulativePerformance] = None,
) -> SaveSessionPayload:
    if not subject or not topic.strip():
        raise ValueError("subject and topic are required to save a session")

    selection = curriculum_selection or {}
    payload = SaveSessionPayload(
        username=username,
        subject=subject,
        topic=topic,
        custom_session_name=custom_session_name,
        loaded_session_id=loaded_session_id or None,
        curriculum_id=selection.get("curriculumId") or None,
        curriculum_topic_ids=list(selection.get("curriculumTopicIds") or []),
        topic_names=list(selection.get("topicNames") or []),
        concept_ids=list(selection.get("conceptIds") or []),
        materials=SessionMaterials.model_validate(materials) if materials else None,
        # Only the latest quiz is stored with the session.
        tests=SessionTests(questions=list(tests.get("questions") or [])) if tests else None,
        cumulative_performance=cumulative,
    )
    if cumulative is not None:
        logger.info(
            "Saving cumulative performance: tests=%d questions=%d accuracy=%.1f%%",
            cumulative.total_tests,
            cumulative.total_questions,
            cumulative.overall_accuracy,
        )
    return payload


def load_session_state(blob: Mapping[str, Any]) -> LoadedSession:
    """Rebuild the study state from a stored session blob."""

    cumulative = coerce_performance(blob.get("cumulativePerformance"))
    if cumulative is not None:
        logger.info(
            "Loaded cumulative performance: tests=%d accuracy=%.1f%% concepts=%d",
            cumulative.total_tests,
            cumulative.overall_accuracy,
            len(cumulative.concept_performance),
        )

    materials = blob.get("materials")
    tests = blob.get("tests")
    concept_ids = blob.get("conceptIds") or blob.get("primaryConcepts") or []
    session_id = blob.get("id") or blob.get("sessionId")
    return LoadedSession(
        session_id=str(session_id) if session_id else None,
        subject=str(blob.get("subject") or ""),
        topic=str(blob.get("topic") or ""),
        materials=dict(materials) if isinstance(materials, Mapping) else None,
        tests=dict(tests) if isinstance(tests, Mapping) else None,
        curriculum_id=blob.get("curriculumId") or None,
        curriculum_topic_ids=list(blob.get("curriculumTopicIds") or []),
        topic_names=list(blob.get("topicNames") or []),
        concept_ids=list(concept_ids),
        cumulative=cumulative,
    )
