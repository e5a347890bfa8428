"""Tests for weekly rankings, achievements and rank-change notifications."""

import asyncio
from datetime import timedelta

import pytest

from eduimprove.db import records
from eduimprove.models.study import StudentProfile
from eduimprove.services.ranking import (
    achievement_for,
    compute_rankings,
    format_study_time,
    rank_change_notification,
    rank_students,
    snapshot_weekly_rankings,
    student_standing,
    total_score,
    week_bounds,
)
from eduimprove.services.weekly_report import QuizStats, WeeklyMetrics
from helpers import NOW, setup_test_db


def student(student_id, name="Student"):
    return StudentProfile(id=student_id, full_name=f"{name} {student_id}", school_id=1, district="Patna")


def metrics(avg_score=0, consistency=0, accuracy=0, sessions=1, attempts=0, minutes=0, days=1):
    return WeeklyMetrics(
        total_sessions=sessions,
        total_minutes=minutes,
        avg_score=avg_score,
        days_studied=days,
        study_consistency=consistency,
        quiz=QuizStats(total_attempts=attempts, avg_accuracy=accuracy),
    )


class TestHelpers:
    def test_week_bounds_on_sunday(self):
        assert week_bounds(NOW) == ("2026-10-12", "2026-10-18")

    def test_week_bounds_on_monday(self):
        assert week_bounds(NOW + timedelta(days=1)) == ("2026-10-19", "2026-10-25")

    @pytest.mark.parametrize("minutes,expected", [(0, "0m"), (45, "45m"), (60, "1h"), (135, "2h 15m")])
    def test_format_study_time(self, minutes, expected):
        assert format_study_time(minutes) == expected

    def test_total_score_uses_report_weights(self):
        assert total_score(metrics(avg_score=80, consistency=50, accuracy=60)) == 65.0
        assert total_score(metrics(avg_score=75, consistency=14, accuracy=0)) == 34.2


class TestRankStudents:
    def test_highest_score_first(self):
        board = rank_students([
            (student(1), metrics(avg_score=50)),
            (student(2), metrics(avg_score=90)),
            (student(3), metrics(avg_score=70)),
        ])
        assert [(e.student_id, e.rank) for e in board] == [(2, 1), (3, 2), (1, 3)]

    def test_tie_keeps_lower_id_first(self):
        board = rank_students([(student(5), metrics(avg_score=60)), (student(4), metrics(avg_score=60))])
        assert [e.student_id for e in board] == [4, 5]
        assert [e.rank for e in board] == [1, 2]

    def test_inactive_students_are_not_ranked(self):
        board = rank_students([
            (student(1), metrics(avg_score=0, sessions=0, days=0)),
            (student(2), metrics(sessions=0, attempts=1, accuracy=40, days=0)),
        ])
        assert [e.student_id for e in board] == [2]

    def test_daily_study_time(self):
        board = rank_students([(student(1), metrics(avg_score=60, minutes=150))])
        assert board[0].daily_study_time == 21
        assert board[0].model_dump(by_alias=True)["dailyStudyTime"] == 21


class TestBadgesAndNotifications:
    def test_top_three_badges(self):
        assert achievement_for(1, "school")["title"] == "School Champion"
        assert achievement_for(2, "district")["achievement_type"] == "district_rank_2"
        assert achievement_for(3, "school")["badge_icon"] == "medal"
        assert achievement_for(4, "school") is None

    def test_rank_up(self):
        kind, message = rank_change_notification(5, 2, "school")
        assert kind == "rank_up"
        assert "#5" in message and "#2" in message

    def test_rank_down(self):
        assert rank_change_notification(1, 3, "district")[0] == "rank_down"

    @pytest.mark.parametrize("old,new", [(None, 1), (2, None), (3, 3)])
    def test_no_change(self, old, new):
        assert rank_change_notification(old, new, "school") is None


async def _seed(db):
    school_id = await records.create_school(db, "DAV Public School", district="Patna")
    other_school = await records.create_school(db, "Kendriya Vidyalaya", district="Patna")
    aarav = await records.create_student(db, "Aarav", "8", school_id, "Patna")
    diya = await records.create_student(db, "Diya", "8", school_id, "Patna")
    kabir = await records.create_student(db, "Kabir", "9", other_school, "Patna")
    banned = await records.create_student(db, "Banned", "8", school_id, "Patna", is_banned=True)
    return school_id, aarav, diya, kabir, banned


class TestRankingsFromDatabase:
    def test_compute_rankings(self):
        async def run():
            db = await setup_test_db()
            try:
                school_id, aarav, diya, kabir, banned = await _seed(db)
                yesterday = NOW - timedelta(days=1)
                await records.create_study_session(db, aarav, "Physics", improvement_score=80, created_at=yesterday)
                await records.create_study_session(db, diya, "Maths", improvement_score=60, created_at=yesterday)
                await records.create_study_session(db, banned, "Maths", improvement_score=100, created_at=yesterday)
                rankings = await compute_rankings(db, NOW)
                standing = await student_standing(db, await records.get_student(db, diya), NOW)
                return school_id, aarav, diya, rankings, standing
            finally:
                await db.close()

        school_id, aarav, diya, rankings, standing = asyncio.run(run())
        assert [e.student_id for e in rankings["school"][school_id]] == [aarav, diya]
        assert [e.student_id for e in rankings["district"]["Patna"]] == [aarav, diya]
        assert standing.school_rank.rank == 2
        assert standing.total_school_students == 2
        assert standing.total_district_students == 2

    def test_weekly_snapshots_award_and_notify(self):
        async def run():
            db = await setup_test_db()
            try:
                _, aarav, diya, _, _ = await _seed(db)
                week1 = NOW - timedelta(days=1)
                await records.create_study_session(db, aarav, "Physics", improvement_score=80, created_at=week1)
                await records.create_study_session(db, diya, "Maths", improvement_score=60, created_at=week1)
                first = await snapshot_weekly_rankings(db, NOW)

                next_week = NOW + timedelta(days=7)
                week2 = next_week - timedelta(days=1)
                await records.create_study_session(db, aarav, "Physics", improvement_score=40, created_at=week2)
                await records.create_study_session(db, diya, "Maths", improvement_score=90, created_at=week2)
                second = await snapshot_weekly_rankings(db, next_week)

                return (
                    first,
                    second,
                    await records.get_ranking_history(db, aarav),
                    await records.get_achievements(db, diya),
                    await records.get_rank_notifications(db, aarav),
                )
            finally:
                await db.close()

        first, second, history, diya_badges, aarav_notes = asyncio.run(run())
        assert first == {
            "weekStart": "2026-10-12",
            "weekEnd": "2026-10-18",
            "rankedStudents": 2,
            "achievements": 4,
            "notifications": 0,
        }
        assert second["notifications"] == 4
        assert [h["week_start"] for h in history] == ["2026-10-19", "2026-10-12"]
        assert [h["school_rank"] for h in history] == [2, 1]
        assert {b["achievement_type"] for b in diya_badges} == {
            "school_rank_1", "district_rank_1", "school_rank_2", "district_rank_2",
        }
        assert {n["notification_type"] for n in aarav_notes} == {"rank_down"}
        assert all(n["is_read"] is False for n in aarav_notes)
