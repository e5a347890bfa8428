"""Student progress dashboard aggregations.

Pure functions over a student's study-session (and quiz-attempt) history,
ordered oldest first. Groupings keep first-seen order, so sorts that tie
fall back to the order in which the group first appeared.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from eduimprove.models.quiz import CamelModel
from eduimprove.models.study import QuizAttemptRecord, StudySessionRecord
from eduimprove.services.scoring_policy import (
    DEFAULT_POLICY,
    UNDERSTANDING_LEVELS,
    ScoringPolicy,
    percentage,
    round_half_up,
)

PROGRESS_WINDOW_DAYS = 30
TOP_SUBJECTS = 5
TOP_AREAS = 5
SUBJECT_LABEL_MAX = 12

WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class TimelinePoint(CamelModel):
    date: str
    day: str
    score: int
    time: int


class SubjectPerformance(CamelModel):
    subject: str
    key: str
    avg_score: int
    total_time: int
    sessions: int


class WeekdayMinutes(CamelModel):
    day: str
    minutes: int


class DistributionSlice(CamelModel):
    name: str
    value: int


class AreaCount(CamelModel):
    area: str
    count: int


class AreaAnalysis(CamelModel):
    weak: list[AreaCount] = []
    strong: list[AreaCount] = []


class OverallStats(CamelModel):
    total_sessions: int
    total_minutes: int
    avg_score: int
    consistency: int


class QuizTrendPoint(CamelModel):
    date: str
    accuracy: int
    total_questions: int


class QuizTrend(CamelModel):
    attempts: int = 0
    avg_accuracy: int = 0
    points: list[QuizTrendPoint] = []


class ProgressReport(CamelModel):
    student_id: int
    stats: OverallStats
    improvement: list[TimelinePoint] = []
    subjects: list[SubjectPerformance] = []
    weekdays: list[WeekdayMinutes] = []
    understanding: list[DistributionSlice] = []
    areas: AreaAnalysis
    quizzes: QuizTrend


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _in_window(sessions: Sequence[StudySessionRecord], now: datetime, days: int) -> list[StudySessionRecord]:
    since = now - timedelta(days=days)
    return [s for s in sessions if s.created_at >= since]


def _short_date(day) -> str:
    return f"{_MONTHS[day.month - 1]} {day.day}"


def _mean(values: Sequence[float]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def subject_key(session: StudySessionRecord) -> str:
    return session.subject or session.topic or "Other"


def subject_label(key: str) -> str:
    """Display label; long subject names are cut to 12 characters."""
    if len(key) > SUBJECT_LABEL_MAX:
        return key[:SUBJECT_LABEL_MAX] + "..."
    return key


def improvement_timeline(
    sessions: Sequence[StudySessionRecord],
    now: Optional[datetime] = None,
    days: int = PROGRESS_WINDOW_DAYS,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> list[TimelinePoint]:
    buckets: dict = {}
    for session in _in_window(sessions, _now(now), days):
        day = session.created_at.date()
        bucket = buckets.setdefault(day, {"scores": [], "time": 0})
        bucket["scores"].append(policy.improvement_score(session.improvement_score))
        bucket["time"] += policy.time_spent(session.time_spent)

    return [
        TimelinePoint(date=_short_date(day), day=day.isoformat(), score=_mean(b["scores"]), time=b["time"])
        for day, b in buckets.items()
    ]


def subject_performance(
    sessions: Sequence[StudySessionRecord],
    limit: int = TOP_SUBJECTS,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> list[SubjectPerformance]:
    groups: dict[str, dict] = {}
    for session in sessions:
        g = groups.setdefault(subject_key(session), {"sessions": 0, "total_score": 0.0, "total_time": 0})
        g["sessions"] += 1
        g["total_score"] += policy.improvement_score(session.improvement_score)
        g["total_time"] += policy.time_spent(session.time_spent)

    rows = [
        SubjectPerformance(
            subject=subject_label(key),
            key=key,
            avg_score=round_half_up(g["total_score"] / g["sessions"]),
            total_time=g["total_time"],
            sessions=g["sessions"],
        )
        for key, g in groups.items()
    ]
    rows.sort(key=lambda r: -r.sessions)
    return rows[:limit]


def weekday_pattern(
    sessions: Sequence[StudySessionRecord],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> list[WeekdayMinutes]:
    minutes = dict.fromkeys(WEEKDAYS, 0)
    for session in sessions:
        # isoweekday: Mon=1..Sun=7 -> Sun=0..Sat=6
        day = WEEKDAYS[session.created_at.isoweekday() % 7]
        minutes[day] += policy.time_spent(session.time_spent)
    return [WeekdayMinutes(day=day, minutes=m) for day, m in minutes.items()]


def understanding_distribution(
    sessions: Sequence[StudySessionRecord],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> list[DistributionSlice]:
    counts = dict.fromkeys(UNDERSTANDING_LEVELS, 0)
    for session in sessions:
        level = policy.understanding(session.understanding_level)
        if level in counts:
            counts[level] += 1
    return [
        DistributionSlice(name=level.capitalize(), value=count)
        for level, count in counts.items()
        if count > 0
    ]


def _top_areas(area_lists, limit: int) -> list[AreaCount]:
    counts: dict[str, int] = {}
    for areas in area_lists:
        for area in areas:
            counts[area] = counts.get(area, 0) + 1
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [AreaCount(area=a, count=c) for a, c in ranked[:limit]]


def area_analysis(sessions: Sequence[StudySessionRecord], limit: int = TOP_AREAS) -> AreaAnalysis:
    return AreaAnalysis(
        weak=_top_areas((s.weak_areas for s in sessions), limit),
        strong=_top_areas((s.strong_areas for s in sessions), limit),
    )


def overall_stats(
    sessions: Sequence[StudySessionRecord],
    now: Optional[datetime] = None,
    days: int = PROGRESS_WINDOW_DAYS,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> OverallStats:
    recent_days = {s.created_at.date() for s in _in_window(sessions, _now(now), days)}
    return OverallStats(
        total_sessions=len(sessions),
        total_minutes=sum(policy.time_spent(s.time_spent) for s in sessions),
        avg_score=_mean([policy.improvement_score(s.improvement_score) for s in sessions]),
        consistency=percentage(len(recent_days), days),
    )


def quiz_trend(quizzes: Sequence[QuizAttemptRecord]) -> QuizTrend:
    points = [
        QuizTrendPoint(
            date=_short_date(q.created_at.date()),
            accuracy=round_half_up(q.accuracy_percentage or 0),
            total_questions=q.total_questions or 0,
        )
        for q in quizzes
    ]
    return QuizTrend(
        attempts=len(points),
        avg_accuracy=_mean([p.accuracy for p in points]),
        points=points,
    )


def build_progress_report(
    student_id: int,
    sessions: Sequence[StudySessionRecord],
    quizzes: Sequence[QuizAttemptRecord] = (),
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ProgressReport:
    now = _now(now)
    return ProgressReport(
        student_id=student_id,
        stats=overall_stats(sessions, now, policy=policy),
        improvement=improvement_timeline(sessions, now, policy=policy),
        subjects=subject_performance(sessions, policy=policy),
        weekdays=weekday_pattern(sessions, policy=policy),
        understanding=understanding_distribution(sessions, policy=policy),
        areas=area_analysis(sessions),
        quizzes=quiz_trend(quizzes),
    )


class ClassAverages(CamelModel):
    avg_sessions: float = 0
    avg_time_spent: int = 0
    avg_accuracy: int = 0
    avg_quizzes: float = 0
    avg_improvement_score: int = 50


def _one_decimal(value: float) -> float:
    return round_half_up(value * 10) / 10


def class_averages(
    student_count: int,
    sessions: Sequence[StudySessionRecord],
    quizzes: Sequence[QuizAttemptRecord],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[ClassAverages]:
    """Per-student averages over a class's sessions and quizzes. None for an empty class."""
    if student_count <= 0:
        return None
    improvement = [policy.improvement_score(s.improvement_score) for s in sessions]
    return ClassAverages(
        avg_sessions=_one_decimal(len(sessions) / student_count),
        avg_time_spent=round_half_up(sum(policy.time_spent(s.time_spent) for s in sessions) / student_count),
        avg_accuracy=_mean([q.accuracy_percentage or 0 for q in quizzes]),
        avg_quizzes=_one_decimal(len(quizzes) / student_count),
        avg_improvement_score=_mean(improvement) if improvement else policy.default_improvement_score,
    )
