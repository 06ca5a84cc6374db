# app.py: Kartkówka performance service
# - Hosts the cumulative performance tracker over HTTP
# - Proxies grading and session storage to the study backend
# - Stages loaded sessions locally until the study page consumes them

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import Field

import db, quiz, sessions
from backend_client import BackendError, KartkowkaClient
from engines.cumulative_performance import (
    coerce_performance,
    create_empty_cumulative_performance,
    update_cumulative_performance,
)
from engines.performance_summary import PANEL_CONCEPT_LIMIT, build_statistics_panel, focus_areas
from engines.usage_limits import usage_status
from env_validation import DEFAULT_DAILY_REQUEST_LIMIT, get_env_int
from schemas import WireModel

logger = logging.getLogger("kartkowka.api")


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info("Study backend: %s", _backend().base_url)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Kartkówka performance service", version="1.0.0", lifespan=_lifespan)

_BACKEND: Optional[KartkowkaClient] = None


def _backend() -> KartkowkaClient:
    global _BACKEND
    if _BACKEND is None:
        _BACKEND = KartkowkaClient.from_env()
    return _BACKEND


def _backend_failure(exc: BackendError) -> HTTPException:
    detail = str(exc)
    if exc.body:
        detail = f"{detail}: {exc.body}"
    return HTTPException(status_code=502, detail=detail)


class PerformanceUpdateBody(WireModel):
    previous: Optional[Dict[str, Any]] = None
    questions: List[Dict[str, Any]] = Field(default_factory=list)


class PerformanceSummaryBody(WireModel):
    cumulative: Optional[Dict[str, Any]] = None
    limit: int = PANEL_CONCEPT_LIMIT
    locale: str = "pl"


class QuizCheckBody(WireModel):
    username: str
    kartkowka_id: Optional[str] = None
    questions: List[Dict[str, Any]]
    answers: Dict[str, str] = Field(default_factory=dict)
    cumulative_performance: Optional[Dict[str, Any]] = None


class SaveSessionBody(WireModel):
    username: str
    subject: str
    topic: str
    custom_session_name: Optional[str] = None
    loaded_session_id: Optional[str] = None
    curriculum_selection: Optional[Dict[str, Any]] = None
    materials: Optional[Dict[str, Any]] = None
    tests: Optional[Dict[str, Any]] = None
    cumulative_performance: Optional[Dict[str, Any]] = None


@app.get("/health")
def health():
    return {"status": "ok"}


# ---------- Performance ----------
@app.get("/performance/empty")
def performance_empty():
    return create_empty_cumulative_performance().to_wire()


@app.post("/performance/update")
def performance_update(body: PerformanceUpdateBody):
    updated = update_cumulative_performance(body.previous, body.questions)
    return updated.to_wire()


@app.post("/performance/summary")
def performance_summary(body: PerformanceSummaryBody):
    cumulative = coerce_performance(body.cumulative)
    panel = build_statistics_panel(cumulative, limit=body.limit, locale=body.locale)
    return {
        "panel": panel,
        "focusAreas": [area.to_wire() for area in focus_areas(cumulative)],
    }


# ---------- Quiz ----------
@app.post("/quiz/check")
def quiz_check(body: QuizCheckBody):
    if not body.questions:
        raise HTTPException(status_code=400, detail="questions required")
    try:
        graded = quiz.grade_quiz(
            _backend(),
            body.username,
            body.kartkowka_id,
            body.questions,
            body.answers,
            body.cumulative_performance,
        )
    except BackendError as exc:
        raise _backend_failure(exc) from exc
    return {
        "questions": graded.questions,
        "cumulativePerformance": graded.cumulative.to_wire(),
    }


# ---------- Sessions ----------
@app.post("/sessions/save")
def sessions_save(body: SaveSessionBody):
    cumulative = coerce_performance(body.cumulative_performance)
    try:
        payload = quiz.build_save_payload(
            body.username,
            body.subject,
            body.topic,
            custom_session_name=body.custom_session_name,
            loaded_session_id=body.loaded_session_id,
            curriculum_selection=body.curriculum_selection,
            materials=body.materials,
            tests=body.tests,
            cumulative=cumulative,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        session_id = _backend().save_learning_session(payload)
    except BackendError as exc:
        raise _backend_failure(exc) from exc

    if cumulative is not None:
        try:
            db.save_performance(body.username, session_id, cumulative)
        except Exception:
            logger.exception("Failed to cache cumulative performance for session %s", session_id)
    return {"status": "success", "sessionId": session_id}


@app.get("/sessions")
def sessions_list(
    username: str,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = sessions.SORT_BY_DATE,
    curriculum_topic_id: Optional[str] = None,
):
    if not username:
        raise HTTPException(status_code=400, detail="username required")
    try:
        saved = _backend().get_user_sessions(username, curriculum_topic_id=curriculum_topic_id)
    except BackendError as exc:
        raise _backend_failure(exc) from exc

    try:
        ordered = sessions.filter_and_sort_sessions(
            saved,
            subject=subject,
            topic=topic,
            search=search,
            sort_by=sort_by,
            curriculum_filter=bool(curriculum_topic_id),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [session.to_wire() for session in ordered]


@app.post("/sessions/{session_id}/load")
def sessions_load(session_id: str, username: str):
    if not username:
        raise HTTPException(status_code=400, detail="username required")
    try:
        blob = _backend().get_session_by_id(session_id)
    except BackendError as exc:
        if exc.status_code == 404:
            raise HTTPException(status_code=404, detail="session not found") from exc
        raise _backend_failure(exc) from exc

    db.stage_loaded_session(username, blob)
    logger.info("Staged session %s for %s", session_id, username)
    return {"status": "staged", "sessionId": session_id}


@app.get("/sessions/staged")
def sessions_staged(username: str):
    blob = db.consume_staged_session(username)
    if blob is None:
        raise HTTPException(status_code=404, detail="no staged session")

    state = quiz.load_session_state(blob)
    if state.cumulative is None and state.session_id:
        state.cumulative = db.load_performance(username, state.session_id)
    return state.to_dict()


# ---------- Usage ----------
@app.get("/usage")
def usage(used_today: int, daily_limit: Optional[int] = None):
    limit = daily_limit if daily_limit is not None else get_env_int(
        "DAILY_REQUEST_LIMIT", DEFAULT_DAILY_REQUEST_LIMIT
    )
    try:
        status = usage_status(used_today, limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return status.to_dict()
