import json

import pytest
from pydantic import ValidationError

from schemas import (
    CumulativePerformance,
    SavedSessionSummary,
    SaveSessionPayload,
    SaveSessionResult,
    TestQuestion,
    parse_json_safe,
)


def test_test_question_keeps_backend_extras():
    question = TestQuestion.model_validate(
        {
            "questionId": 12,
            "question": "Which organelle?",
            "options": {"A": "Nucleus", "B": "Ribosome"},
            "isCorrect": False,
        }
    )

    assert question.question_id == "12"
    assert question.is_correct is False
    assert question.to_wire()["options"] == {"A": "Nucleus", "B": "Ribosome"}


def test_cumulative_performance_accepts_snake_and_camel_names():
    camel = CumulativePerformance.model_validate({"totalTests": 2, "overallTrend": -5})
    snake = CumulativePerformance(total_tests=2, overall_trend=-5)

    assert camel == snake


def test_cumulative_performance_rejects_negative_counters():
    with pytest.raises(ValidationError):
        CumulativePerformance.model_validate({"totalQuestions": -1})


def test_save_payload_omits_unset_sections():
    payload = SaveSessionPayload(username="ola", subject="Biologia", topic="Komórka")

    wire = payload.to_wire()

    assert wire["username"] == "ola"
    assert wire["curriculumTopicIds"] == []
    assert "materials" not in wire
    assert "cumulativePerformance" not in wire


def test_saved_session_summary_mixes_focus_area_shapes():
    summary = SavedSessionSummary.model_validate(
        {
            "id": "s1",
            "subject": "Chemia",
            "topic": "Kwasy",
            "recommendations": {"focusAreas": ["pH", {"conceptName": "Zasady", "priority": "high"}]},
        }
    )

    first, second = summary.recommendations.focus_areas
    assert first == "pH"
    assert second.concept_name == "Zasady"


def test_parse_json_safe_accepts_clean_json():
    result = parse_json_safe(json.dumps({"sessionId": "abc"}), SaveSessionResult)

    assert result.session_id == "abc"


def test_parse_json_safe_skips_leading_noise():
    result = parse_json_safe('saved: {"sessionId": 42}', SaveSessionResult)

    assert result.session_id == "42"


def test_parse_json_safe_rejects_trailing_payload():
    with pytest.raises((ValidationError, ValueError)):
        parse_json_safe('{"sessionId": "abc"} and more', SaveSessionResult)


def test_parse_json_safe_without_object_raises_validation_error():
    with pytest.raises(ValidationError):
        parse_json_safe("no json here", SaveSessionResult)
