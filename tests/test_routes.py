"""HTTP-level tests: auth gate, access rules and the persisting endpoints."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from eduimprove.db import records
from eduimprove.db.database import connect, get_db
from eduimprove.routes.auth import create_token
from eduimprove.routes.quiz import get_answer_judge
from eduimprove.routes.reports import get_transport
from eduimprove.server import app
from eduimprove.services.ai_client import AINotConfigured
from eduimprove.services.answer_judge import AnswerJudge
from helpers import sample_questions, setup_test_db


class FakeTransport:
    def __init__(self):
        self.sent = []

    async def send(self, to, body):
        self.sent.append((to, body))
        return True


async def _seed(path):
    db = await setup_test_db(path)
    try:
        dav = await records.create_school(db, "DAV Public School", district="Patna")
        kv = await records.create_school(db, "Kendriya Vidyalaya", district="Patna")
        banned_school = await records.create_school(db, "Closed School", is_banned=True)
        return {
            "dav": dav,
            "kv": kv,
            "banned_school": banned_school,
            "admin": await records.create_admin(db, "Ops"),
            "aarav": await records.create_student(db, "Aarav", "8", dav, "Patna", "9876543210"),
            "diya": await records.create_student(db, "Diya", "8", dav, "Patna"),
            "kabir": await records.create_student(db, "Kabir", "8", kv, "Patna"),
        }
    finally:
        await db.close()


def _query(path, fn):
    async def run():
        db = await connect(path)
        try:
            return await fn(db)
        finally:
            await db.close()

    return asyncio.run(run())


@pytest.fixture
def api(tmp_path):
    db_path = str(tmp_path / "api.db")
    ids = asyncio.run(_seed(db_path))

    async def override_get_db():
        db = await connect(db_path)
        try:
            yield db
        finally:
            await db.close()

    transport = FakeTransport()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transport] = lambda: transport
    # Lifespan (migrations) is not run without the context manager
    client = TestClient(app)
    yield client, ids, db_path, transport
    app.dependency_overrides.clear()


def auth(subject_id, role="student"):
    return {"Authorization": f"Bearer {create_token(subject_id, role)}"}


class TestAuthGate:
    def test_health_is_public(self, api):
        client, *_ = api
        assert client.get("/health").json() == {"status": "ok"}

    def test_api_requires_token(self, api):
        client, *_ = api
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Not authenticated"

    def test_invalid_token(self, api):
        client, *_ = api
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_unknown_subject(self, api):
        client, *_ = api
        assert client.get("/api/auth/me", headers=auth(999)).status_code == 401

    def test_me(self, api):
        client, ids, *_ = api
        body = client.get("/api/auth/me", headers=auth(ids["aarav"])).json()
        assert body == {"id": ids["aarav"], "role": "student", "name": "Aarav", "schoolId": ids["dav"]}

    def test_unknown_role_cannot_be_issued(self):
        with pytest.raises(ValueError):
            create_token(1, "parent")


class TestAnalyzeAnswer:
    payload = {
        "question": "What is H2O?",
        "correctAnswer": "Water",
        "studentAnswer": "pani",
        "topic": "Chemistry",
    }

    def _judge(self, reply):
        async def chat(messages, **kwargs):
            if isinstance(reply, Exception):
                raise reply
            return reply

        return AnswerJudge(chat=chat, primary_model="primary", fallback_model="fallback")

    def test_verdict(self, api):
        client, ids, *_ = api
        verdict = json.dumps({"isCorrect": True, "confidence": 0.9, "feedback": "Sahi!"})
        app.dependency_overrides[get_answer_judge] = lambda: self._judge(verdict)
        resp = client.post("/api/analyze-answer", json=self.payload, headers=auth(ids["aarav"]))
        assert resp.status_code == 200
        assert resp.json()["isCorrect"] is True
        assert resp.json()["confidence"] == 90

    def test_missing_key_is_500(self, api):
        client, ids, *_ = api
        app.dependency_overrides[get_answer_judge] = lambda: self._judge(AINotConfigured("OPENAI_API_KEY is not set"))
        resp = client.post("/api/analyze-answer", json=self.payload, headers=auth(ids["aarav"]))
        assert resp.status_code == 500
        assert resp.json()["error"] == "OPENAI_API_KEY is not set"


class TestQuizAttempts:
    def _body(self, student_id, answers):
        return {
            "studentId": student_id,
            "topic": "Mixed",
            "questions": [q.model_dump(by_alias=True, mode="json") for q in sample_questions()],
            "answers": answers,
        }

    def test_attempt_is_scored_and_saved(self, api):
        client, ids, db_path, _ = api
        resp = client.post(
            "/api/quiz/attempts",
            json=self._body(ids["aarav"], ["paris", "False", " h2o "]),
            headers=auth(ids["aarav"]),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["result"]["correct"] == [True, False, True]
        assert body["result"]["accuracy"] == 67
        assert body["result"]["understanding"] == "partial"

        attempts = _query(db_path, lambda db: records.get_quiz_attempts(db, ids["aarav"]))
        assert len(attempts) == 1
        assert attempts[0].id == body["attemptId"]
        assert attempts[0].correct_answers == 2
        assert attempts[0].topic == "Mixed"

    def test_answer_count_must_match(self, api):
        client, ids, *_ = api
        resp = client.post("/api/quiz/attempts", json=self._body(ids["aarav"], ["Paris"]), headers=auth(ids["aarav"]))
        assert resp.status_code == 400

    def test_students_submit_only_for_themselves(self, api):
        client, ids, *_ = api
        resp = client.post(
            "/api/quiz/attempts",
            json=self._body(ids["diya"], ["Paris", "True", "H2O"]),
            headers=auth(ids["aarav"]),
        )
        assert resp.status_code == 403


class TestStudySessions:
    def test_topic_detected_from_messages(self, api):
        client, ids, db_path, _ = api
        resp = client.post(
            "/api/sessions",
            json={
                "studentId": ids["aarav"],
                "messages": [{"role": "user", "content": "Chemistry ka ek doubt hai"}],
                "timeSpent": 0,
                "improvementScore": 72,
                "weakAreas": ["Valency"],
            },
            headers=auth(ids["aarav"]),
        )
        assert resp.status_code == 200
        assert resp.json()["topic"] == "Chemistry"
        assert resp.json()["timeSpent"] == 1

        sessions = _query(db_path, lambda db: records.get_study_sessions(db, ids["aarav"]))
        assert sessions[0].weak_areas == ["Valency"]
        assert sessions[0].improvement_score == 72

    def test_default_topic_and_elapsed_minutes(self, api):
        client, ids, *_ = api
        resp = client.post(
            "/api/sessions",
            json={
                "studentId": ids["aarav"],
                "startedAt": "2026-10-18T10:00:00Z",
                "endedAt": "2026-10-18T10:25:40Z",
            },
            headers=auth(ids["aarav"]),
        )
        assert resp.json() == {"id": 1, "topic": "General Study", "timeSpent": 26}


class TestStudentAccess:
    def test_student_sees_own_progress(self, api):
        client, ids, *_ = api
        resp = client.get(f"/api/students/{ids['aarav']}/progress", headers=auth(ids["aarav"]))
        assert resp.status_code == 200
        assert resp.json()["studentId"] == ids["aarav"]

    def test_student_cannot_see_classmate(self, api):
        client, ids, *_ = api
        resp = client.get(f"/api/students/{ids['diya']}/progress", headers=auth(ids["aarav"]))
        assert resp.status_code == 403

    def test_school_sees_only_own_students(self, api):
        client, ids, *_ = api
        headers = auth(ids["dav"], "school")
        assert client.get(f"/api/students/{ids['aarav']}/progress", headers=headers).status_code == 200
        assert client.get(f"/api/students/{ids['kabir']}/progress", headers=headers).status_code == 403

    def test_banned_school(self, api):
        client, ids, *_ = api
        resp = client.get(f"/api/students/{ids['aarav']}/progress", headers=auth(ids["banned_school"], "school"))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "School is banned"

    def test_school_listing(self, api):
        client, ids, *_ = api
        body = client.get("/api/students", headers=auth(ids["dav"], "school")).json()
        assert {s["full_name"] for s in body["students"]} == {"Aarav", "Diya"}
        assert body["school"]["name"] == "DAV Public School"

    def test_admin_listing(self, api):
        client, ids, *_ = api
        body = client.get("/api/students", headers=auth(ids["admin"], "admin")).json()
        assert len(body["students"]) == 3
        assert len(body["schools"]) == 3

    def test_student_cannot_list(self, api):
        client, ids, *_ = api
        assert client.get("/api/students", headers=auth(ids["aarav"])).status_code == 403

    def test_report_for_school(self, api):
        client, ids, *_ = api
        resp = client.get(f"/api/students/{ids['aarav']}/report", headers=auth(ids["dav"], "school"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["student"]["school"]["name"] == "DAV Public School"
        assert body["classAverages"]["avgImprovementScore"] == 50

    def test_report_not_for_students(self, api):
        client, ids, *_ = api
        resp = client.get(f"/api/students/{ids['aarav']}/report", headers=auth(ids["aarav"]))
        assert resp.status_code == 403


class TestChatBoundary:
    def test_empty_message_rejected(self, api):
        client, ids, *_ = api
        resp = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "  "}]},
            headers=auth(ids["aarav"]),
        )
        assert resp.status_code == 400

    def test_tts_needs_text(self, api):
        client, ids, *_ = api
        resp = client.post("/api/tts", json={"text": ""}, headers=auth(ids["aarav"]))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No text provided"


class TestReportsAndLeaderboard:
    def test_weekly_reports_admin_only(self, api):
        client, ids, *_ = api
        assert client.post("/api/reports/weekly", headers=auth(ids["aarav"])).status_code == 403

    def test_weekly_reports_test_mode(self, api):
        client, ids, _, transport = api
        resp = client.post(
            "/api/reports/weekly",
            json={"studentId": ids["aarav"], "testMode": True},
            headers=auth(ids["admin"], "admin"),
        )
        assert resp.status_code == 200
        assert resp.json()["reports"] == [{"studentName": "Aarav", "sent": True}]
        assert transport.sent[0][0] == "9876543210"
        assert "Aarav" in transport.sent[0][1]

    def test_student_leaderboard(self, api):
        client, ids, *_ = api
        client.post(
            "/api/sessions",
            json={"studentId": ids["aarav"], "timeSpent": 30, "improvementScore": 80},
            headers=auth(ids["aarav"]),
        )
        body = client.get(f"/api/leaderboard/students/{ids['aarav']}", headers=auth(ids["aarav"])).json()
        assert body["schoolRank"]["rank"] == 1
        assert body["totalSchoolStudents"] == 1
        assert body["schoolName"] == "DAV Public School"
        assert body["rankingHistory"] == []

    def test_mark_notification_read(self, api):
        client, ids, db_path, _ = api
        note_id = _query(
            db_path,
            lambda db: records.create_rank_notification(db, ids["aarav"], "rank_up", "Badhai ho!", 2, 1, "school"),
        )
        assert client.post(
            f"/api/leaderboard/notifications/{note_id}/read", headers=auth(ids["diya"])
        ).status_code == 404
        assert client.post(
            f"/api/leaderboard/notifications/{note_id}/read", headers=auth(ids["aarav"])
        ).json() == {"success": True}
