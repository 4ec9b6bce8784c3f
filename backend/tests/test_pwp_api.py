"""
End-to-end tests for the /api/pwp routes through FastAPI's TestClient.
The service dependency is overridden with in-memory stores and a FakeLLM.
"""
import sys
import os

# Ensure the backend/ directory is on the path when running from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.pwp_service import get_pwp_service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_pwp_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _start(client, lesson=12, subject="dog", subject_type="animal"):
    return client.post("/api/pwp/start-session", json={
        "pupilId": "pupil-1",
        "lessonNumber": lesson,
        "subject": subject,
        "subjectType": subject_type,
    })


def _submit(client, session_id, number, sentence):
    return client.post("/api/pwp/submit-formula", json={
        "sessionId": session_id,
        "formulaNumber": number,
        "sentence": sentence,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Lesson 12 walkthrough
# ─────────────────────────────────────────────────────────────────────────────

class TestLesson12Flow:
    def test_start_session_shape(self, client):
        resp = _start(client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["sessionId"]
        assert body["lessonNumber"] == 12
        assert body["subject"] == "dog"
        assert body["formulasTotal"] == 4
        assert [f["number"] for f in body["formulas"]] == [1, 2, 3, 4]
        assert [f["structure"] for f in body["formulas"]] == [
            ["subject", "verb"],
            ["determiner", "subject", "verb"],
            ["determiner", "adjective", "subject", "verb"],
            ["determiner", "adjective", "subject", "verb"],
        ]
        first = body["formulas"][0]
        for key in ("example", "wordBank", "newElements", "hintText", "labelledParts", "concepts"):
            assert key in first
        assert first["wordBank"] == []

    def test_dog_runs_advances_with_word_bank(self, client):
        sid = _start(client).json()["sessionId"]
        resp = _submit(client, sid, 1, "Dog runs")
        assert resp.status_code == 200
        body = resp.json()
        assert body["isCorrect"] is True
        assert body["feedback"]["type"] == "success"
        assert body["attempt"] == 1
        assert body["issues"] == []
        assert body["nextFormula"]["number"] == 2
        assert body["nextFormula"]["wordBank"] == ["Dog", "runs"]

    def test_rule_failure_response(self, client):
        sid = _start(client).json()["sessionId"]
        body = _submit(client, sid, 2, "Cat runs").json()
        assert body["isCorrect"] is False
        assert body["feedback"]["type"] == "error"
        assert "determiner" in body["feedback"]["message"]
        assert len(body["issues"]) == 1

        again = _submit(client, sid, 2, "").json()
        assert again["attempt"] == 2
        assert again["issues"] == ["Please write a sentence"]

    def test_last_formula_next_is_null(self, client):
        sid = _start(client, lesson=10).json()["sessionId"]
        assert _submit(client, sid, 2, "Dog runs").json()["nextFormula"] is None

    def test_snake_case_input_accepted(self, client):
        sid = _start(client).json()["sessionId"]
        resp = client.post("/api/pwp/submit-formula", json={
            "session_id": sid, "formula_number": 1, "pupil_sentence": "Dog runs",
        })
        assert resp.status_code == 200
        assert resp.json()["isCorrect"] is True

    def test_complete_and_summary_are_stable(self, client):
        sid = _start(client).json()["sessionId"]
        _submit(client, sid, 1, "Dog runs")
        _submit(client, sid, 2, "The dog runs")
        _submit(client, sid, 3, "The happy dog runs")

        resp = client.post("/api/pwp/complete-session", json={"sessionId": sid})
        assert resp.status_code == 200
        summary = resp.json()["sessionSummary"]
        assert summary == {"formulasCompleted": 3, "formulasTotal": 4, "accuracyPercentage": 75}

        first = client.get(f"/api/pwp/sessions/{sid}/summary").json()
        second = client.get(f"/api/pwp/sessions/{sid}/summary").json()
        assert first == second == {"sessionSummary": summary}

        again = client.post("/api/pwp/complete-session", json={"sessionId": sid}).json()
        assert again["sessionSummary"] == summary

    def test_session_detail(self, client):
        sid = _start(client).json()["sessionId"]
        _submit(client, sid, 1, "Dog runs")
        body = client.get(f"/api/pwp/sessions/{sid}").json()
        assert body["status"] == "in_progress"
        assert body["formulasCompleted"] == 1
        assert body["formulas"][0]["pupilSentence"] == "Dog runs"
        assert body["formulas"][0]["isCorrect"] is True
        assert body["formulas"][1]["attempts"] == 0

    def test_mastery_endpoint(self, client):
        sid = _start(client).json()["sessionId"]
        _submit(client, sid, 1, "Dog runs")
        body = client.get("/api/pwp/pupils/pupil-1/mastery").json()
        assert body["pupilId"] == "pupil-1"
        concepts = {c["concept"]: c for c in body["concepts"]}
        assert set(concepts) == {"noun", "verb"}
        assert concepts["verb"]["totalUses"] == 1
        assert concepts["verb"]["score"] == 100
        assert concepts["verb"]["masteryStatus"] == "practicing"


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────────────

class TestErrors:
    @pytest.mark.parametrize("lesson", [-2, 0, 1, 9, 16])
    def test_unknown_lesson_is_400(self, client, lesson):
        resp = _start(client, lesson=lesson)
        assert resp.status_code == 400

    def test_blank_subject_is_400(self, client):
        assert _start(client, subject="   ").status_code == 400

    def test_bad_subject_type_is_422(self, client):
        assert _start(client, subject_type="vehicle").status_code == 422

    def test_missing_field_is_422(self, client):
        resp = client.post("/api/pwp/submit-formula", json={"sessionId": "x", "formulaNumber": 1})
        assert resp.status_code == 422

    def test_unknown_session_is_404(self, client):
        assert _submit(client, "missing", 1, "Dog runs").status_code == 404
        assert client.post("/api/pwp/complete-session", json={"sessionId": "missing"}).status_code == 404
        assert client.get("/api/pwp/sessions/missing").status_code == 404
        assert client.get("/api/pwp/sessions/missing/summary").status_code == 404

    def test_unknown_formula_is_404(self, client):
        sid = _start(client).json()["sessionId"]
        assert _submit(client, sid, 7, "Dog runs").status_code == 404

    def test_completed_session_is_409(self, client):
        sid = _start(client).json()["sessionId"]
        client.post("/api/pwp/complete-session", json={"sessionId": sid})
        assert _submit(client, sid, 1, "Dog runs").status_code == 409

    def test_store_failure_is_500(self, client, service):
        service.store = MagicMock()
        service.store.get_session.side_effect = RuntimeError("connection reset")
        resp = _submit(client, "any", 1, "Dog runs")
        assert resp.status_code == 500
        assert "connection reset" not in resp.text


# ─────────────────────────────────────────────────────────────────────────────
# Curriculum / health
# ─────────────────────────────────────────────────────────────────────────────

class TestReadOnlyRoutes:
    def test_curriculum(self, client):
        body = client.get("/api/pwp/curriculum", params={"lesson": 12}).json()
        assert body["lessonNumber"] == 12
        assert body["formulaCount"] == 4
        assert body["formulas"][2]["newElements"] == ["adjective"]

    def test_curriculum_unknown_is_404(self, client):
        assert client.get("/api/pwp/curriculum", params={"lesson": 20}).status_code == 404

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["lessons"] == [10, 11, 12, 13, 14, 15]

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"
