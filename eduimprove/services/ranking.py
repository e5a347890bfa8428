"""
ranking.py - Weekly school/district rankings, achievements and rank notifications

A student's weekly total score uses the same weighting as the report grade
(improvement score, study consistency, quiz accuracy over the trailing 7
days). Only students with at least one session or quiz in the window are
ranked; ties keep the lower student id first.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from eduimprove.db import records
from eduimprove.models.quiz import CamelModel
from eduimprove.models.study import StudentProfile
from eduimprove.services.scoring_policy import DEFAULT_POLICY, ScoringPolicy, round_half_up
from eduimprove.services.weekly_report import REPORT_WINDOW_DAYS, WeeklyMetrics, compute_weekly_metrics

logger = logging.getLogger(__name__)

SCHOOL = "school"
DISTRICT = "district"

# rank -> (badge icon, title suffix)
RANK_BADGES = {
    1: ("crown", "Champion"),
    2: ("trophy", "Runner-up"),
    3: ("medal", "Top 3"),
}


class RankEntry(CamelModel):
    student_id: int
    full_name: str
    rank: int
    total_score: float
    improvement_score: int
    daily_study_time: int
    weekly_study_days: int


class StudentStanding(CamelModel):
    student_id: int
    school_rank: Optional[RankEntry] = None
    district_rank: Optional[RankEntry] = None
    total_school_students: int = 0
    total_district_students: int = 0
    school_leaderboard: list[RankEntry] = []
    district_leaderboard: list[RankEntry] = []


def week_bounds(now: datetime) -> tuple[str, str]:
    """Monday and Sunday (ISO dates) of the UTC week containing ``now``."""
    today = now.astimezone(timezone.utc).date()
    start = today - timedelta(days=today.weekday())
    return start.isoformat(), (start + timedelta(days=6)).isoformat()


def format_study_time(minutes: int) -> str:
    if minutes >= 60:
        hours, mins = divmod(minutes, 60)
        return f"{hours}h {mins}m" if mins else f"{hours}h"
    return f"{minutes}m"


def total_score(metrics: WeeklyMetrics, policy: ScoringPolicy = DEFAULT_POLICY) -> float:
    weighted = policy.weighted_score(metrics.avg_score, metrics.study_consistency, metrics.quiz.avg_accuracy)
    return round_half_up(weighted * 10) / 10


def is_active(metrics: WeeklyMetrics) -> bool:
    return metrics.total_sessions > 0 or metrics.quiz.total_attempts > 0


def rank_students(
    entries: Sequence[tuple[StudentProfile, WeeklyMetrics]],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> list[RankEntry]:
    """Rank active students by total score, highest first."""
    scored = [
        (student, metrics, total_score(metrics, policy))
        for student, metrics in entries
        if is_active(metrics)
    ]
    scored.sort(key=lambda t: (-t[2], t[0].id))
    return [
        RankEntry(
            student_id=student.id,
            full_name=student.full_name,
            rank=i + 1,
            total_score=score,
            improvement_score=metrics.avg_score,
            daily_study_time=round_half_up(metrics.total_minutes / REPORT_WINDOW_DAYS),
            weekly_study_days=metrics.days_studied,
        )
        for i, (student, metrics, score) in enumerate(scored)
    ]


def _group(entries, key) -> dict:
    groups: dict = {}
    for student, metrics in entries:
        k = key(student)
        if k is None or k == "":
            continue
        groups.setdefault(k, []).append((student, metrics))
    return groups


def achievement_for(rank: int, ranking_type: str) -> Optional[dict]:
    """Badge earned for a top-3 rank, or None."""
    if rank not in RANK_BADGES:
        return None
    icon, suffix = RANK_BADGES[rank]
    scope = "School" if ranking_type == SCHOOL else "District"
    return {
        "achievement_type": f"{ranking_type}_rank_{rank}",
        "title": f"{scope} {suffix}",
        "description": f"Ranked #{rank} in {ranking_type} this week",
        "badge_icon": icon,
    }


def rank_change_notification(
    old_rank: Optional[int],
    new_rank: Optional[int],
    ranking_type: str,
) -> Optional[tuple[str, str]]:
    """(notification_type, message) when a ranked student moved, else None."""
    if old_rank is None or new_rank is None or old_rank == new_rank:
        return None
    if new_rank < old_rank:
        return "rank_up", f"Badhai ho! Aapki {ranking_type} rank #{old_rank} se #{new_rank} ho gayi! 🎉"
    return "rank_down", f"Aapki {ranking_type} rank #{old_rank} se #{new_rank} ho gayi. Thodi aur mehnat karo! 💪"


async def _weekly_entries(db, students: Sequence[StudentProfile], now: datetime, policy: ScoringPolicy):
    since = now - timedelta(days=REPORT_WINDOW_DAYS)
    entries = []
    for student in students:
        sessions = await records.get_study_sessions(db, student.id, since=since)
        quizzes = await records.get_quiz_attempts(db, student.id, since=since)
        entries.append((student, compute_weekly_metrics(sessions, quizzes, now, policy)))
    return entries


async def compute_rankings(
    db,
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> dict:
    """Live rankings for every non-banned student.

    Returns {"school": {school_id: [RankEntry]}, "district": {district: [RankEntry]}}.
    """
    now = now or datetime.now(timezone.utc)
    students = [s for s in await records.list_students(db) if not s.is_banned]
    entries = await _weekly_entries(db, students, now, policy)
    return {
        SCHOOL: {k: rank_students(v, policy) for k, v in _group(entries, lambda s: s.school_id).items()},
        DISTRICT: {k: rank_students(v, policy) for k, v in _group(entries, lambda s: s.district).items()},
    }


def _find(board: Sequence[RankEntry], student_id: int) -> Optional[RankEntry]:
    for entry in board:
        if entry.student_id == student_id:
            return entry
    return None


async def student_standing(
    db,
    student: StudentProfile,
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> StudentStanding:
    rankings = await compute_rankings(db, now, policy)
    school_board = rankings[SCHOOL].get(student.school_id, []) if student.school_id is not None else []
    district_board = rankings[DISTRICT].get(student.district, []) if student.district else []
    return StudentStanding(
        student_id=student.id,
        school_rank=_find(school_board, student.id),
        district_rank=_find(district_board, student.id),
        total_school_students=len(school_board),
        total_district_students=len(district_board),
        school_leaderboard=school_board,
        district_leaderboard=district_board,
    )


async def snapshot_weekly_rankings(
    db,
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> dict:
    """Store this week's ranks, award top-3 achievements and notify rank changes."""
    now = now or datetime.now(timezone.utc)
    week_start, week_end = week_bounds(now)
    rankings = await compute_rankings(db, now, policy)

    ranks: dict[int, dict] = {}
    for ranking_type in (SCHOOL, DISTRICT):
        for board in rankings[ranking_type].values():
            for entry in board:
                slot = ranks.setdefault(entry.student_id, {"score": entry.total_score, SCHOOL: None, DISTRICT: None})
                slot[ranking_type] = entry.rank

    achievements = notifications = 0
    for student_id, slot in ranks.items():
        previous = await records.get_previous_ranking(db, student_id, week_start)
        await records.create_ranking_snapshot(
            db, student_id, week_start, week_end, slot[SCHOOL], slot[DISTRICT], slot["score"]
        )

        for ranking_type in (SCHOOL, DISTRICT):
            rank = slot[ranking_type]
            if rank is None:
                continue
            badge = achievement_for(rank, ranking_type)
            if badge:
                await records.create_achievement(
                    db, student_id, badge["achievement_type"], badge["title"], badge["description"],
                    badge["badge_icon"], ranking_type, rank, week_start,
                )
                achievements += 1

            old_rank = previous.get(f"{ranking_type}_rank") if previous else None
            change = rank_change_notification(old_rank, rank, ranking_type)
            if change:
                notification_type, message = change
                await records.create_rank_notification(
                    db, student_id, notification_type, message, old_rank, rank, ranking_type
                )
                notifications += 1

    logger.info(
        "Ranking snapshot for week %s: %d students, %d achievements, %d notifications",
        week_start, len(ranks), achievements, notifications,
    )
    return {
        "weekStart": week_start,
        "weekEnd": week_end,
        "rankedStudents": len(ranks),
        "achievements": achievements,
        "notifications": notifications,
    }
