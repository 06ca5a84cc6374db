"""Filtering and ordering of a learner's saved sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

from schemas import FocusArea, SavedSessionSummary

SORT_BY_DATE = "date"
SORT_BY_SCORE = "score"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _score(session: SavedSessionSummary) -> float:
    if session.performance is None:
        return 0.0
    return session.performance.overall_score or 0.0


def filter_and_sort_sessions(
    sessions: Sequence[SavedSessionSummary],
    *,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = SORT_BY_DATE,
    curriculum_filter: bool = False,
) -> List[SavedSessionSummary]:
    """Apply the saved-sessions view filters.

    The subject filter is ignored while a curriculum filter is active because
    the backend has already narrowed the list to one curriculum topic.
    """

    if sort_by not in {SORT_BY_DATE, SORT_BY_SCORE}:
        raise ValueError(f"Unsupported sort order: {sort_by}")

    filtered = list(sessions)
    if subject and not curriculum_filter:
        filtered = [s for s in filtered if s.subject == subject]
    if topic:
        filtered = [s for s in filtered if s.topic == topic]
    if search:
        query = search.lower()
        filtered = [
            s for s in filtered if query in s.topic.lower() or query in s.subject.lower()
        ]

    if sort_by == SORT_BY_DATE:
        filtered.sort(key=lambda s: _parse_timestamp(s.last_modified_at), reverse=True)
    else:
        filtered.sort(key=_score, reverse=True)
    return filtered


def render_focus_area(area: Union[str, FocusArea]) -> str:
    if isinstance(area, str):
        return area
    return area.concept_name or "Unknown"
