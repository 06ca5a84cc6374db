"""HTTP client for the external study backend.

The backend owns material and test generation, answer checking and session
storage. This module only shapes requests and responses; failures surface as
``BackendError`` and are not retried.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from pydantic import ValidationError

from env_validation import backend_settings
from schemas import SavedSessionSummary, SaveSessionPayload, SaveSessionResult, parse_json_safe

logger = logging.getLogger(__name__)

_BODY_PREVIEW = 300


class BackendError(Exception):
    """Raised when the backend is unreachable or answers with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class KartkowkaClient:
    def __init__(
        self,
        base_url: str,
        function_key: Optional[str] = None,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.function_key = function_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_env(cls) -> "KartkowkaClient":
        return cls(**backend_settings())

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.function_key:
            headers["x-functions-key"] = self.function_key
        return headers

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Any = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Backend request %s %s failed: %s", method, endpoint, exc)
            raise BackendError(f"{endpoint}: {exc}") from exc

        if not response.ok:
            body = (response.text or "")[:_BODY_PREVIEW]
            logger.warning("Backend %s returned HTTP %s: %s", endpoint, response.status_code, body)
            raise BackendError(
                f"{endpoint} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response

    def _json(self, response: requests.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                f"{endpoint} returned invalid JSON",
                status_code=response.status_code,
                body=(response.text or "")[:_BODY_PREVIEW],
            ) from exc

    # ---------- generation ----------
    def generate_learning_materials(
        self,
        subject: str,
        topic: str,
        username: str,
        *,
        curriculum_topic_ids: Sequence[str] = (),
        concept_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        payload = {
            "subject": subject,
            "topic": topic,
            "username": username,
            "curriculumTopicIds": list(curriculum_topic_ids),
            "conceptIds": list(concept_ids),
        }
        response = self._send("POST", "generateLearningMaterials", payload=payload)
        return self._json(response, "generateLearningMaterials")

    def generate_tests(
        self,
        subject: str,
        topic: str,
        username: str,
        *,
        kartkowka_id: Optional[str] = None,
        curriculum_topic_ids: Sequence[str] = (),
        concept_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        payload = {
            "subject": subject,
            "topic": topic,
            "username": username,
            "kartkowkaId": kartkowka_id,
            "curriculumTopicIds": list(curriculum_topic_ids),
            "conceptIds": list(concept_ids),
        }
        response = self._send("POST", "generateTests", payload=payload)
        return self._json(response, "generateTests")

    # ---------- grading ----------
    def check_test_answers(
        self,
        username: str,
        kartkowka_id: Optional[str],
        questions: Sequence[Mapping[str, Any]],
        answers: Mapping[int, str],
    ) -> Dict[str, Any]:
        """Ask the backend to grade ``answers`` (keyed by question index)."""
        payload = {
            "username": username,
            "kartkowkaId": kartkowka_id,
            "questions": [dict(question) for question in questions],
            "answers": {str(index): answer for index, answer in answers.items()},
        }
        response = self._send("POST", "checkTestAnswers", payload=payload)
        data = self._json(response, "checkTestAnswers")
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise BackendError("checkTestAnswers response has no results list", status_code=response.status_code)
        return data

    # ---------- sessions ----------
    def save_learning_session(self, payload: SaveSessionPayload) -> str:
        response = self._send("POST", "saveLearningSession", payload=payload.to_wire())
        try:
            result = parse_json_safe(response.text, SaveSessionResult)
        except (ValidationError, ValueError) as exc:
            raise BackendError(
                "saveLearningSession response has no sessionId",
                status_code=response.status_code,
                body=(response.text or "")[:_BODY_PREVIEW],
            ) from exc
        return result.session_id

    def get_user_sessions(
        self, username: str, *, curriculum_topic_id: Optional[str] = None
    ) -> List[SavedSessionSummary]:
        params = {"username": username}
        if curriculum_topic_id:
            params["curriculumTopicId"] = curriculum_topic_id
        response = self._send("GET", "getUserSessions", params=params)
        data = self._json(response, "getUserSessions")
        if not isinstance(data, list):
            raise BackendError("getUserSessions did not return a list", status_code=response.status_code)

        sessions = []
        for entry in data:
            try:
                sessions.append(SavedSessionSummary.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping malformed saved session: %s", exc)
        return sessions

    def get_session_by_id(self, session_id: str) -> Dict[str, Any]:
        response = self._send("GET", "getSessionById", params={"sessionId": session_id})
        data = self._json(response, "getSessionById")
        if not isinstance(data, dict):
            raise BackendError("getSessionById did not return an object", status_code=response.status_code)
        return data
