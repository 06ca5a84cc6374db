import asyncio
import json
import unittest
from unittest.mock import MagicMock, patch
from urllib.parse import urlencode

import pytest

import app
import db
from backend_client import BackendError, KartkowkaClient
from schemas import SavedSessionSummary


def _call(method: str, path: str, payload=None, query=None) -> tuple[int, object]:
    async def _run():
        body = json.dumps(payload).encode("utf-8") if payload is not None else b""
        received_once = False

        async def receive():
            nonlocal received_once
            if not received_once:
                received_once = True
                return {"type": "http.request", "body": body, "more_body": False}
            return {"type": "http.disconnect"}

        messages = []

        async def send(message):
            messages.append(message)

        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "scheme": "http",
            "query_string": urlencode(query or {}).encode(),
            "headers": [
                (b"host", b"testserver"),
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ],
            "client": ("testclient", 12345),
            "server": ("testserver", 80),
            "state": {},
        }

        await app.app(scope, receive, send)
        return messages

    messages = asyncio.run(_run())
    status = 500
    body_bytes = b""

    for message in messages:
        if message["type"] == "http.response.start":
            status = message["status"]
        elif message["type"] == "http.response.body":
            body_bytes += message.get("body", b"")

    data = json.loads(body_bytes.decode("utf-8") or "{}")
    return status, data


def _question(question_id, concept_id, is_correct):
    return {
        "questionId": question_id,
        "question": f"Pytanie {question_id}",
        "conceptId": concept_id,
        "conceptName": concept_id.upper(),
        "isCorrect": is_correct,
    }


class PerformanceEndpointTests(unittest.TestCase):
    def test_empty_aggregate(self):
        status, payload = _call("GET", "/performance/empty")

        self.assertEqual(status, 200)
        self.assertEqual(payload["totalTests"], 0)
        self.assertEqual(payload["conceptPerformance"], {})
        self.assertEqual(payload["recentTestScores"], [])

    def test_update_chains_snapshots(self):
        status, first = _call(
            "POST",
            "/performance/update",
            {"previous": None, "questions": [_question("q1", "c1", True), _question("q2", "c1", False)]},
        )
        self.assertEqual(status, 200)
        self.assertEqual(first["overallAccuracy"], 50)

        status, second = _call(
            "POST",
            "/performance/update",
            {"previous": first, "questions": [_question("q3", "c1", True), _question("q4", "c1", True)]},
        )
        self.assertEqual(status, 200)
        self.assertEqual(second["totalTests"], 2)
        self.assertEqual(second["overallAccuracy"], 75)
        self.assertEqual(second["conceptPerformance"]["c1"]["suggestedDifficulty"], "advanced")

    def test_summary_lists_weak_concepts(self):
        _, aggregate = _call(
            "POST",
            "/performance/update",
            {"questions": [_question("q1", "c1", False), _question("q2", "c2", True)]},
        )

        status, payload = _call("POST", "/performance/summary", {"cumulative": aggregate, "locale": "en"})

        self.assertEqual(status, 200)
        self.assertEqual(payload["panel"]["concepts"][0]["conceptId"], "c1")
        self.assertEqual(payload["panel"]["concepts"][0]["difficultyLabel"], "Basic")
        self.assertEqual([area["conceptId"] for area in payload["focusAreas"]], ["c1"])

    def test_summary_without_aggregate(self):
        status, payload = _call("POST", "/performance/summary", {})

        self.assertEqual(status, 200)
        self.assertIsNone(payload["panel"])
        self.assertEqual(payload["focusAreas"], [])


class QuizEndpointTests(unittest.TestCase):
    def setUp(self):
        self.backend = MagicMock(spec=KartkowkaClient)
        patcher = patch("app._backend", return_value=self.backend)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_check_grades_and_updates_aggregate(self):
        self.backend.check_test_answers.return_value = {"results": [{"isCorrect": True}, {"isCorrect": False}]}
        questions = [
            {"questionId": "q1", "question": "A?", "conceptId": "c1"},
            {"questionId": "q2", "question": "B?", "conceptId": "c2"},
        ]

        status, payload = _call(
            "POST",
            "/quiz/check",
            {"username": "ola", "kartkowkaId": "k1", "questions": questions, "answers": {"0": "A", "1": "B"}},
        )

        self.assertEqual(status, 200)
        self.assertEqual(payload["questions"][0]["userAnswer"], "A")
        self.assertTrue(payload["questions"][0]["isCorrect"])
        self.assertEqual(payload["cumulativePerformance"]["totalCorrectAnswers"], 1)
        self.assertEqual(payload["cumulativePerformance"]["conceptPerformance"]["c2"]["accuracy"], 0)

    def test_check_reports_backend_failure(self):
        self.backend.check_test_answers.side_effect = BackendError("checkTestAnswers returned HTTP 500", status_code=500, body="boom")

        status, payload = _call(
            "POST",
            "/quiz/check",
            {"username": "ola", "questions": [{"questionId": "q1"}], "answers": {}},
        )

        self.assertEqual(status, 502)
        self.assertIn("boom", payload["detail"])

    def test_check_requires_questions(self):
        status, payload = _call("POST", "/quiz/check", {"username": "ola", "questions": []})

        self.assertEqual(status, 400)
        self.assertEqual(payload["detail"], "questions required")


@pytest.mark.usefixtures("temp_db")
class SessionEndpointTests(unittest.TestCase):
    def setUp(self):
        self.backend = MagicMock(spec=KartkowkaClient)
        patcher = patch("app._backend", return_value=self.backend)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_save_forwards_payload_and_caches_aggregate(self):
        self.backend.save_learning_session.return_value = "s1"
        _, aggregate = _call("POST", "/performance/update", {"questions": [_question("q1", "c1", True)]})

        status, payload = _call(
            "POST",
            "/sessions/save",
            {"username": "ola", "subject": "Biologia", "topic": "Komórka", "cumulativePerformance": aggregate},
        )

        self.assertEqual(status, 200)
        self.assertEqual(payload["sessionId"], "s1")
        sent = self.backend.save_learning_session.call_args.args[0]
        self.assertEqual(sent.cumulative_performance.total_tests, 1)
        self.assertEqual(db.load_performance("ola", "s1").total_tests, 1)

    def test_save_rejects_blank_topic(self):
        status, _ = _call("POST", "/sessions/save", {"username": "ola", "subject": "Biologia", "topic": " "})

        self.assertEqual(status, 400)
        self.backend.save_learning_session.assert_not_called()

    def test_list_filters_and_sorts(self):
        self.backend.get_user_sessions.return_value = [
            SavedSessionSummary(id="s1", subject="Biologia", topic="Komórka", last_modified_at="2025-01-01T00:00:00Z"),
            SavedSessionSummary(id="s2", subject="Biologia", topic="Genetyka", last_modified_at="2025-03-01T00:00:00Z"),
            SavedSessionSummary(id="s3", subject="Chemia", topic="Kwasy", last_modified_at="2025-02-01T00:00:00Z"),
        ]

        status, payload = _call("GET", "/sessions", query={"username": "ola", "subject": "Biologia"})

        self.assertEqual(status, 200)
        self.assertEqual([entry["id"] for entry in payload], ["s2", "s1"])

    def test_list_rejects_unknown_sort(self):
        self.backend.get_user_sessions.return_value = []

        status, _ = _call("GET", "/sessions", query={"username": "ola", "sort_by": "name"})

        self.assertEqual(status, 400)

    def test_load_then_consume_staged_session(self):
        self.backend.save_learning_session.return_value = "s1"
        _, aggregate = _call("POST", "/performance/update", {"questions": [_question("q1", "c1", False)]})
        _call(
            "POST",
            "/sessions/save",
            {"username": "ola", "subject": "Fizyka", "topic": "Ruch", "cumulativePerformance": aggregate},
        )
        self.backend.get_session_by_id.return_value = {"id": "s1", "subject": "Fizyka", "topic": "Ruch"}

        status, payload = _call("POST", "/sessions/s1/load", query={"username": "ola"})
        self.assertEqual(status, 200)
        self.assertEqual(payload["status"], "staged")

        status, state = _call("GET", "/sessions/staged", query={"username": "ola"})
        self.assertEqual(status, 200)
        self.assertEqual(state["topic"], "Ruch")
        self.assertEqual(state["cumulativePerformance"]["totalTests"], 1)

        status, _ = _call("GET", "/sessions/staged", query={"username": "ola"})
        self.assertEqual(status, 404)

    def test_load_missing_session(self):
        self.backend.get_session_by_id.side_effect = BackendError("getSessionById returned HTTP 404", status_code=404)

        status, payload = _call("POST", "/sessions/missing/load", query={"username": "ola"})

        self.assertEqual(status, 404)
        self.assertEqual(payload["detail"], "session not found")


class UsageEndpointTests(unittest.TestCase):
    def test_usage_uses_configured_limit(self):
        with patch.dict("os.environ", {"DAILY_REQUEST_LIMIT": "5"}):
            status, payload = _call("GET", "/usage", query={"used_today": 4})

        self.assertEqual(status, 200)
        self.assertEqual(payload["level"], "warning")
        self.assertEqual(payload["dailyLimit"], 5)

    def test_usage_rejects_invalid_limit(self):
        status, _ = _call("GET", "/usage", query={"used_today": 1, "daily_limit": 0})

        self.assertEqual(status, 400)


if __name__ == "__main__":
    unittest.main()
