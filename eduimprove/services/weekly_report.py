"""
weekly_report.py - Weekly parent report compiler and WhatsApp dispatch

Provides:
- compute_weekly_metrics(sessions, quizzes, now) - trailing 7-day numbers
- improvement_summary(name, metrics) - Hinglish summary from a fixed decision table
- overall_grade(avg_score, consistency, quiz_accuracy) - letter grade
- render_report(report) - bilingual WhatsApp message text
- send_weekly_reports(db, transport, ...) - compile and dispatch for every student
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from eduimprove.config import settings
from eduimprove.db import records
from eduimprove.models.study import QuizAttemptRecord, StudentProfile, StudySessionRecord
from eduimprove.services.scoring_policy import (
    DEFAULT_POLICY,
    ScoringPolicy,
    percentage,
    round_half_up,
)
from eduimprove.services.whatsapp import MessageTransport

logger = logging.getLogger(__name__)

REPORT_WINDOW_DAYS = 7

# Summary decision table cut-offs
SUMMARY_HIGH = 70
SUMMARY_FAIR = 40
QUIZ_HIGH = 70
QUIZ_FAIR = 50

WEAK_UNDERSTANDING = ("weak", "average")

MAX_TOPICS_SHOWN = 5
MAX_WEAK_SHOWN = 3
RULE = "━━━━━━━━━━━━━━━━━━━━"
BOX_TOP = "┌────────────────────"
BOX_BOTTOM = "└────────────────────"


class QuizStats(BaseModel):
    total_attempts: int = 0
    avg_accuracy: int = 0
    best_score: int = 0
    questions_attempted: int = 0


class WeeklyMetrics(BaseModel):
    total_sessions: int = 0
    total_minutes: int = 0
    avg_score: int = 0
    days_studied: int = 0
    study_consistency: int = 0
    topics_covered: list[str] = []
    weak_subjects: list[str] = []
    quiz: QuizStats = Field(default_factory=QuizStats)


class StudentReport(BaseModel):
    student_id: int
    student_name: str
    parent_whatsapp: Optional[str] = None
    metrics: WeeklyMetrics
    improvement_summary: str
    grade: str
    period_start: datetime
    period_end: datetime


def _unique(values) -> list[str]:
    """Distinct truthy values in first-seen order."""
    seen: dict[str, None] = {}
    for v in values:
        if v and v not in seen:
            seen[v] = None
    return list(seen)


def compute_quiz_stats(quizzes: Sequence[QuizAttemptRecord]) -> QuizStats:
    if not quizzes:
        return QuizStats()
    accuracies = [q.accuracy_percentage or 0 for q in quizzes]
    return QuizStats(
        total_attempts=len(quizzes),
        avg_accuracy=round_half_up(sum(accuracies) / len(accuracies)),
        best_score=round_half_up(max(accuracies)),
        questions_attempted=sum(q.total_questions or 0 for q in quizzes),
    )


def compute_weekly_metrics(
    sessions: Sequence[StudySessionRecord],
    quizzes: Sequence[QuizAttemptRecord] = (),
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> WeeklyMetrics:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=REPORT_WINDOW_DAYS)
    sessions = [s for s in sessions if s.created_at >= since]
    quizzes = [q for q in quizzes if q.created_at >= since]

    total_sessions = len(sessions)
    avg_score = 0
    if total_sessions:
        avg_score = round_half_up(
            sum(policy.improvement_score(s.improvement_score) for s in sessions) / total_sessions
        )
    days_studied = len({s.created_at.date() for s in sessions})
    weak_sessions = [
        s for s in sessions if s.understanding_level in WEAK_UNDERSTANDING
    ]

    return WeeklyMetrics(
        total_sessions=total_sessions,
        total_minutes=sum(policy.time_spent(s.time_spent) for s in sessions),
        avg_score=avg_score,
        days_studied=days_studied,
        study_consistency=percentage(days_studied, REPORT_WINDOW_DAYS),
        topics_covered=_unique(s.topic for s in sessions),
        weak_subjects=_unique(s.subject or s.topic for s in weak_sessions),
        quiz=compute_quiz_stats(quizzes),
    )


def improvement_summary(name: str, metrics: WeeklyMetrics) -> str:
    consistency = metrics.study_consistency
    avg_score = metrics.avg_score

    if metrics.total_sessions == 0:
        summary = f"{name} ne is hafte padhai nahi ki. Please daily app use karne ke liye encourage karein!"
    elif consistency >= SUMMARY_HIGH and avg_score >= SUMMARY_HIGH:
        summary = f"Bahut badhiya! {name} regular padh raha hai aur achhe marks la raha hai. Keep it up!"
    elif consistency >= SUMMARY_HIGH:
        summary = f"{name} ki consistency achhi hai lekin score improve ho sakta hai. Focus on practice!"
    elif avg_score >= SUMMARY_HIGH:
        summary = f"Jab {name} padhta hai toh achha karta hai, par aur regularly padhna chahiye."
    elif consistency >= SUMMARY_FAIR:
        summary = f"Effort theek hai. Daily practice se {name} aur improve kar sakta hai."
    else:
        summary = f"{name} ko daily study habit develop karni hogi. Thoda encourage karein!"

    if metrics.quiz.total_attempts > 0:
        if metrics.quiz.avg_accuracy >= QUIZ_HIGH:
            summary += " Quiz mein achhi performance hai! 🌟"
        elif metrics.quiz.avg_accuracy >= QUIZ_FAIR:
            summary += " Quiz practice se concepts aur clear honge."

    return summary


def overall_grade(
    avg_score: float,
    consistency: float,
    quiz_accuracy: float,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> str:
    return policy.grade(policy.weighted_score(avg_score, consistency, quiz_accuracy))


def compile_report(
    student: StudentProfile,
    sessions: Sequence[StudySessionRecord],
    quizzes: Sequence[QuizAttemptRecord] = (),
    now: Optional[datetime] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> StudentReport:
    now = now or datetime.now(timezone.utc)
    metrics = compute_weekly_metrics(sessions, quizzes, now, policy)
    return StudentReport(
        student_id=student.id,
        student_name=student.full_name,
        parent_whatsapp=student.parent_whatsapp,
        metrics=metrics,
        improvement_summary=improvement_summary(student.full_name, metrics),
        grade=overall_grade(metrics.avg_score, metrics.study_consistency, metrics.quiz.avg_accuracy, policy),
        period_start=now - timedelta(days=REPORT_WINDOW_DAYS),
        period_end=now,
    )


# ── Rendering ────────────────────────────────────────────────────────

def performance_emoji(score: float) -> str:
    if score >= 80:
        return "🌟"
    if score >= 60:
        return "👍"
    if score >= 40:
        return "📈"
    return "💪"


def consistency_emoji(consistency: float) -> str:
    if consistency >= 80:
        return "🔥"
    if consistency >= 60:
        return "⭐"
    if consistency >= 40:
        return "📅"
    return "⏰"


def _date(dt: datetime) -> str:
    return f"{dt.day}/{dt.month}/{dt.year}"


def render_report(report: StudentReport) -> str:
    m = report.metrics
    hours, minutes = divmod(m.total_minutes, 60)

    lines = [
        f"🎓 *{report.student_name} का Weekly Report*",
        RULE,
        f"📅 *Period:* {_date(report.period_start)} - {_date(report.period_end)}",
        f"🏆 *Overall Grade:* {report.grade} {performance_emoji(m.avg_score)}",
        "",
        "📊 *Study Summary:*",
        BOX_TOP,
        f"│ 📚 Sessions: {m.total_sessions}",
        f"│ ⏱️ Time: {hours}h {minutes}m",
        f"│ {consistency_emoji(m.study_consistency)} Consistency: {m.study_consistency}%",
        f"│ 📈 Avg Score: {m.avg_score}%",
        BOX_BOTTOM,
    ]

    if m.quiz.total_attempts > 0:
        lines += [
            "",
            "🧠 *Quiz Performance:*",
            BOX_TOP,
            f"│ 📝 Quizzes: {m.quiz.total_attempts}",
            f"│ ✅ Accuracy: {m.quiz.avg_accuracy}%",
            f"│ 🎯 Best Score: {m.quiz.best_score}%",
            f"│ ❓ Questions: {m.quiz.questions_attempted}",
            BOX_BOTTOM,
        ]

    lines += ["", "📖 *Topics Padhe:*"]
    if m.topics_covered:
        lines += [f"  ✓ {t}" for t in m.topics_covered[:MAX_TOPICS_SHOWN]]
    else:
        lines.append("  • Koi topic record nahi hua")

    if m.weak_subjects:
        lines += ["", "⚠️ *Improvement Areas:*"]
        lines += [f"  → {s}" for s in m.weak_subjects[:MAX_WEAK_SHOWN]]
    else:
        lines += ["", "✨ *No Weak Areas!* Bahut badhiya progress!"]

    lines += [
        "",
        "💡 *AI Feedback:*",
        f'"{report.improvement_summary}"',
        "",
        RULE,
        "📱 _EduImprove AI - Aapke bachche ka study partner_",
        "🌐 Daily progress track karein app mein!",
    ]
    return "\n".join(lines)


# ── Dispatch ─────────────────────────────────────────────────────────

async def _report_for_student(db, transport: MessageTransport, student: StudentProfile, now: datetime) -> bool:
    since = now - timedelta(days=REPORT_WINDOW_DAYS)
    sessions = await records.get_study_sessions(db, student.id, since=since)
    quizzes = await records.get_quiz_attempts(db, student.id, since=since)
    report = compile_report(student, sessions, quizzes, now)

    if not student.parent_whatsapp:
        logger.warning(f"Student {student.id} has no parent WhatsApp number, skipping")
        return False
    return await transport.send(student.parent_whatsapp, render_report(report))


async def send_weekly_reports(
    db,
    transport: MessageTransport,
    student_id: Optional[int] = None,
    test_mode: bool = False,
    now: Optional[datetime] = None,
    delay: Optional[float] = None,
) -> dict:
    """Compile and send every student's weekly report, one at a time.

    A failure for one student is logged and recorded; the batch continues.
    """
    now = now or datetime.now(timezone.utc)
    delay = settings.report_dispatch_delay if delay is None else delay

    logger.info("Starting report generation...%s", " (Test Mode)" if test_mode else "")
    only_id = student_id if (student_id is not None and test_mode) else None
    students = await records.list_students(db, student_id=only_id)
    logger.info(f"Found {len(students)} students")

    reports = []
    for i, student in enumerate(students):
        error = None
        try:
            sent = await _report_for_student(db, transport, student, now)
        except Exception as e:
            logger.error(f"Weekly report failed for student {student.id}: {e}")
            sent, error = False, str(e)

        try:
            await records.record_report_dispatch(db, student.id, sent, error)
        except Exception as e:
            logger.error(f"Could not record dispatch for student {student.id}: {e}")

        reports.append({"studentName": student.full_name, "sent": sent})

        if delay > 0 and i < len(students) - 1:
            await asyncio.sleep(delay)

    logger.info("Weekly reports completed: %s", reports)
    return {
        "success": True,
        "message": f"Processed {len(reports)} students",
        "reports": reports,
    }
