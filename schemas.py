"""Pydantic schemas for quiz grading, cumulative performance and session payloads."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "DifficultyTier",
    "TestQuestion",
    "RecentQuestion",
    "ConceptQuizResult",
    "ConceptPerformance",
    "CumulativePerformance",
    "MaterialUsedInSession",
    "SessionMaterials",
    "SessionTests",
    "SaveSessionPayload",
    "SaveSessionResult",
    "FocusArea",
    "SavedSessionSummary",
    "parse_json_safe",
]

DifficultyTier = Literal["basic", "intermediate", "advanced"]


class WireModel(BaseModel):
    """Base model accepting snake_case names or camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TestQuestion(WireModel):
    """A quiz question after grading by the backend."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="allow",
    )

    question_id: str = ""
    question: str = ""
    concept_id: str | None = None
    concept_name: str | None = None
    correct_answer: str | None = None
    user_answer: str | None = None
    is_correct: bool | None = Field(
        default=None,
        description="Only an explicit True counts as correct; None and False are both incorrect.",
    )
    difficulty: str | None = None

    @field_validator("is_correct", mode="before")
    @classmethod
    def booleans_only(cls, value: Any) -> bool | None:
        # "true", 1 and the like are not a verdict.
        return value if isinstance(value, bool) else None


def _none_as_empty(value: Any) -> Any:
    return [] if value is None else value


def _none_as_zero(value: Any) -> Any:
    return 0.0 if value is None else value


class RecentQuestion(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    text: str
    concept_id: str
    question_id: str


class ConceptQuizResult(WireModel):
    """Per-concept outcome of a single quiz, before merging into the aggregate."""

    concept_name: str
    total_questions: int = 0
    correct_answers: int = 0
    accuracy: float = 0.0
    question_results: List[int] = Field(default_factory=list)


class ConceptPerformance(WireModel):
    concept_id: str
    concept_name: str = "Unknown"
    total_questions: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    accuracy: float = 0.0
    suggested_difficulty: DifficultyTier = "basic"
    last_tested: str = Field(default="", description="ISO-8601 timestamp of the latest update.")
    recent_scores: List[int] = Field(
        default_factory=list,
        description="Latest per-question outcomes (1 correct, 0 incorrect), oldest first.",
    )
    trend: float = Field(
        default=0.0,
        description="Percentage-point delta between the latest and the preceding recent scores.",
    )

    @field_validator("recent_scores", mode="before")
    @classmethod
    def empty_scores_for_null(cls, value: Any) -> Any:
        return _none_as_empty(value)

    @field_validator("trend", mode="before")
    @classmethod
    def flat_trend_for_null(cls, value: Any) -> Any:
        return _none_as_zero(value)


class CumulativePerformance(WireModel):
    total_tests: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    total_correct_answers: int = Field(default=0, ge=0)
    overall_accuracy: float = 0.0
    concept_performance: Dict[str, ConceptPerformance] = Field(default_factory=dict)
    recent_questions: List[RecentQuestion] = Field(default_factory=list)
    recent_test_scores: List[float] = Field(
        default_factory=list,
        description="Overall accuracy of the latest quizzes, oldest first.",
    )
    overall_trend: float = 0.0

    @field_validator("recent_questions", "recent_test_scores", mode="before")
    @classmethod
    def empty_windows_for_null(cls, value: Any) -> Any:
        return _none_as_empty(value)

    @field_validator("overall_trend", mode="before")
    @classmethod
    def flat_trend_for_null(cls, value: Any) -> Any:
        return _none_as_zero(value)


class MaterialUsedInSession(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    material_id: str
    concept_id: str | None = None
    concept_name: str | None = None
    curriculum_topic_id: str | None = None
    curriculum_id: str | None = None
    content_type: str | None = None
    topic: str | None = None


class SessionMaterials(WireModel):
    notes: str = ""
    flashcards: str = ""
    mind_map_description: str = ""
    materials_used_in_session: List[MaterialUsedInSession] = Field(default_factory=list)
    consistency_warning: str | None = None
    embedding_plot: str | None = None


class SessionTests(WireModel):
    questions: List[Dict[str, Any]] = Field(default_factory=list)


class SaveSessionPayload(WireModel):
    username: str
    subject: str
    topic: str
    custom_session_name: str | None = None
    loaded_session_id: str | None = None
    curriculum_id: str | None = None
    curriculum_topic_ids: List[str] = Field(default_factory=list)
    topic_names: List[str] = Field(default_factory=list)
    concept_ids: List[str] = Field(default_factory=list)
    materials: SessionMaterials | None = None
    tests: SessionTests | None = None
    cumulative_performance: CumulativePerformance | None = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class SaveSessionResult(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="allow",
    )

    session_id: str


class FocusArea(WireModel):
    concept_id: str | None = None
    concept_name: str | None = None
    current_accuracy: float | None = None
    suggested_difficulty: str | None = None
    priority: str | None = None


class SessionPerformanceSummary(WireModel):
    overall_score: float | None = None


class SessionRecommendations(WireModel):
    focus_areas: List[Union[str, FocusArea]] = Field(
        default_factory=list,
        description="Older sessions store plain concept names, newer ones structured focus areas.",
    )


class SavedSessionSummary(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    subject: str = ""
    topic: str = ""
    created_at: str = ""
    last_modified_at: str = ""
    performance: SessionPerformanceSummary | None = None
    recommendations: SessionRecommendations | None = None
    session_type: str | None = None
    primary_concepts: List[str] = Field(default_factory=list)


_T = TypeVar("_T", bound=BaseModel)


def _find_first_json_object(text: str) -> tuple[str, int, int]:
    start = text.find("{")
    while start != -1:
        depth = 0
        for idx in range(start, len(text)):
            char = text[idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start : idx + 1]
                    try:
                        json.loads(candidate)
                    except ValueError:
                        break
                    return candidate, start, idx + 1
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in provided text")


def parse_json_safe(text: str, model: Type[_T]) -> _T:
    """Parse ``text`` into ``model``, falling back to the first embedded JSON object.

    Leading noise (log prefixes, BOMs, proxies that wrap bodies) is tolerated;
    trailing content after the object is not.
    """

    first_error: Exception | None = None
    try:
        return model.model_validate_json(text)
    except (ValidationError, ValueError, TypeError) as exc:
        first_error = exc

    try:
        snippet, _, end = _find_first_json_object(text)
    except ValueError:
        raise first_error

    if text[end:].strip():
        if isinstance(first_error, ValidationError):
            raise first_error
        raise ValueError("Trailing content detected after JSON object")

    return model.model_validate_json(snippet)
