"""Tests for the database query helpers against an in-memory schema."""

import asyncio
from datetime import timedelta

from eduimprove.db import records
from helpers import NOW, setup_test_db


def run_with_db(coro_fn):
    async def wrapper():
        db = await setup_test_db()
        try:
            return await coro_fn(db)
        finally:
            await db.close()

    return asyncio.run(wrapper())


class TestStudents:
    def test_student_profile_round_trip(self):
        async def body(db):
            school_id = await records.create_school(db, "DAV Public School", district="Patna")
            student_id = await records.create_student(
                db, "Aarav Sharma", "8", school_id, "Patna", parent_whatsapp="9876543210"
            )
            return await records.get_student(db, student_id), await records.get_student(db, 999)

        profile, missing = run_with_db(body)
        assert profile.full_name == "Aarav Sharma"
        assert profile.parent_whatsapp == "9876543210"
        assert profile.is_banned is False
        assert missing is None

    def test_school_listing_hides_banned(self):
        async def body(db):
            school_id = await records.create_school(db, "DAV")
            await records.create_student(db, "Aarav", "8", school_id)
            await records.create_student(db, "Banned", "8", school_id, is_banned=True)
            await records.create_student(db, "Elsewhere", "8", None)
            return (
                await records.list_students_for_school(db, school_id),
                await records.list_students_with_school(db),
                await records.list_student_ids_in_class(db, "8"),
            )

        school_students, everyone, class_ids = run_with_db(body)
        assert [s.full_name for s in school_students] == ["Aarav"]
        assert [s["full_name"] for s in everyone] == ["Elsewhere", "Banned", "Aarav"]
        assert everyone[-1]["school_name"] == "DAV"
        assert sorted(class_ids) == [1, 2, 3]


class TestStudySessions:
    def test_window_and_order(self):
        async def body(db):
            student_id = await records.create_student(db, "Aarav")
            await records.create_study_session(
                db, student_id, "Physics", "Physics", 30, 70, "good",
                weak_areas=["Motion"], strong_areas=["Units"], created_at=NOW - timedelta(days=10),
            )
            await records.create_study_session(db, student_id, "Maths", created_at=NOW - timedelta(days=2))
            await records.create_study_session(db, student_id, "Biology", created_at=NOW - timedelta(days=1))
            return (
                await records.get_study_sessions(db, student_id),
                await records.get_study_sessions(db, student_id, since=NOW - timedelta(days=7)),
                await records.get_study_sessions(db, student_id, limit=1, newest_first=True),
            )

        every, recent, latest = run_with_db(body)
        assert [s.topic for s in every] == ["Physics", "Maths", "Biology"]
        assert every[0].weak_areas == ["Motion"]
        assert every[0].created_at == NOW - timedelta(days=10)
        assert every[1].improvement_score is None
        assert [s.topic for s in recent] == ["Maths", "Biology"]
        assert [s.topic for s in latest] == ["Biology"]

    def test_sessions_for_many_students(self):
        async def body(db):
            a = await records.create_student(db, "A")
            b = await records.create_student(db, "B")
            c = await records.create_student(db, "C")
            for student_id in (a, b, c):
                await records.create_study_session(db, student_id, "Maths", created_at=NOW)
            return (
                await records.get_study_sessions_for_students(db, [a, c]),
                await records.get_study_sessions_for_students(db, []),
            )

        sessions, none = run_with_db(body)
        assert sorted(s.student_id for s in sessions) == [1, 3]
        assert none == []


class TestQuizAttempts:
    def test_results_are_stored(self):
        async def body(db):
            student_id = await records.create_student(db, "Aarav")
            await records.create_quiz_attempt(
                db, student_id, "Chemistry", 66.67, 3, 2, "good",
                results_json={"results": [{"questionId": "q1", "isCorrect": True}]},
                created_at=NOW,
            )
            cursor = await db.execute("SELECT results_json FROM quiz_attempts")
            raw = (await cursor.fetchone())[0]
            return await records.get_quiz_attempts(db, student_id), raw

        attempts, raw = run_with_db(body)
        assert attempts[0].accuracy_percentage == 66.67
        assert attempts[0].correct_answers == 2
        assert '"questionId": "q1"' in raw


class TestNotifications:
    def test_mark_read_only_own(self):
        async def body(db):
            aarav = await records.create_student(db, "Aarav")
            diya = await records.create_student(db, "Diya")
            note = await records.create_rank_notification(db, aarav, "rank_up", "Badhai ho!", 3, 1, "school")
            wrong_owner = await records.mark_notification_read(db, note, diya)
            marked = await records.mark_notification_read(db, note, aarav)
            return (
                wrong_owner,
                marked,
                await records.get_rank_notifications(db, aarav, unread_only=True),
                await records.get_rank_notifications(db, aarav),
            )

        wrong_owner, marked, unread, every = run_with_db(body)
        assert wrong_owner is False
        assert marked is True
        assert unread == []
        assert every[0]["is_read"] is True

    def test_report_dispatch_log(self):
        async def body(db):
            student_id = await records.create_student(db, "Aarav")
            await records.record_report_dispatch(db, student_id, sent=False, error="No parent WhatsApp number")
            await records.record_report_dispatch(db, student_id, sent=True)
            return await records.get_report_dispatches(db, student_id)

        dispatches = run_with_db(body)
        assert [d["sent"] for d in dispatches] == [False, True]
        assert dispatches[0]["error"] == "No parent WhatsApp number"
