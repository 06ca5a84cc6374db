import pytest

from schemas import FocusArea, SavedSessionSummary
from sessions import filter_and_sort_sessions, render_focus_area


def _sessions():
    raw = [
        {"id": "s1", "subject": "Biologia", "topic": "Komórka", "lastModifiedAt": "2025-01-10T10:00:00Z", "performance": {"overallScore": 40}},
        {"id": "s2", "subject": "Chemia", "topic": "Kwasy", "lastModifiedAt": "2025-02-01T08:00:00Z", "performance": {"overallScore": 90}},
        {"id": "s3", "subject": "Biologia", "topic": "Genetyka", "lastModifiedAt": "2025-01-20T09:30:00Z"},
        {"id": "s4", "subject": "Biologia", "topic": "Komórka", "lastModifiedAt": ""},
    ]
    return [SavedSessionSummary.model_validate(entry) for entry in raw]


def test_default_order_is_most_recent_first():
    ordered = filter_and_sort_sessions(_sessions())

    assert [s.id for s in ordered] == ["s2", "s3", "s1", "s4"]


def test_sort_by_score_treats_missing_as_zero():
    ordered = filter_and_sort_sessions(_sessions(), sort_by="score")

    assert [s.id for s in ordered][:2] == ["s2", "s1"]


def test_subject_topic_and_search_filters():
    assert [s.id for s in filter_and_sort_sessions(_sessions(), subject="Biologia", topic="Komórka")] == ["s1", "s4"]
    assert [s.id for s in filter_and_sort_sessions(_sessions(), search="KWAS")] == ["s2"]
    assert [s.id for s in filter_and_sort_sessions(_sessions(), search="bio")] == ["s3", "s1", "s4"]


def test_curriculum_filter_overrides_subject():
    ordered = filter_and_sort_sessions(_sessions(), subject="Biologia", curriculum_filter=True)

    assert len(ordered) == 4


def test_unknown_sort_order_is_rejected():
    with pytest.raises(ValueError):
        filter_and_sort_sessions(_sessions(), sort_by="name")


def test_render_focus_area_handles_both_shapes():
    assert render_focus_area("Mitoza") == "Mitoza"
    assert render_focus_area(FocusArea(concept_name="Mejoza")) == "Mejoza"
    assert render_focus_area(FocusArea()) == "Unknown"
