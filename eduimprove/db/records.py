"""
records.py - Database helper queries for EduImprove

Provides insert/fetch functions for:
- schools, admins, students
- study_sessions
- quiz_attempts
- report_dispatches
- ranking_history, achievements, rank_notifications
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from eduimprove.models.study import QuizAttemptRecord, StudentProfile, StudySessionRecord


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _placeholders(values: List[Any]) -> str:
    return ", ".join("?" for _ in values)


# ══════════════════════════════════════════════════════════════════════════════
# SCHOOLS & ADMINS
# ══════════════════════════════════════════════════════════════════════════════

async def create_school(
    db: aiosqlite.Connection,
    name: str,
    district: Optional[str] = None,
    is_banned: bool = False,
    fee_paid: bool = False,
) -> int:
    """Create a school. Returns the new school ID."""
    cursor = await db.execute(
        "INSERT INTO schools (name, district, is_banned, fee_paid, created_at) VALUES (?, ?, ?, ?, ?)",
        (name, district, int(is_banned), int(fee_paid), _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_school(db: aiosqlite.Connection, school_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM schools WHERE id = ?", (school_id,))
    row = await cursor.fetchone()
    if not row:
        return None
    return _row_to_dict(row, bool_fields=["is_banned", "fee_paid"])


async def list_schools(db: aiosqlite.Connection) -> List[Dict[str, Any]]:
    cursor = await db.execute("SELECT * FROM schools ORDER BY created_at DESC, id DESC")
    rows = await cursor.fetchall()
    return [_row_to_dict(r, bool_fields=["is_banned", "fee_paid"]) for r in rows]


async def create_admin(db: aiosqlite.Connection, name: str, role: str = "admin") -> int:
    cursor = await db.execute(
        "INSERT INTO admins (name, role, created_at) VALUES (?, ?, ?)",
        (name, role, _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_admin(db: aiosqlite.Connection, admin_id: int) -> Optional[Dict[str, Any]]:
    cursor = await db.execute("SELECT id, name, role FROM admins WHERE id = ?", (admin_id,))
    row = await cursor.fetchone()
    return _row_to_dict(row) if row else None


# ══════════════════════════════════════════════════════════════════════════════
# STUDENTS
# ══════════════════════════════════════════════════════════════════════════════

async def create_student(
    db: aiosqlite.Connection,
    full_name: str,
    student_class: Optional[str] = None,
    school_id: Optional[int] = None,
    district: Optional[str] = None,
    parent_whatsapp: Optional[str] = None,
    is_banned: bool = False,
) -> int:
    """Create a student. Returns the new student ID."""
    cursor = await db.execute(
        """INSERT INTO students
           (full_name, student_class, school_id, district, parent_whatsapp, is_banned, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (full_name, student_class, school_id, district, parent_whatsapp, int(is_banned), _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_student(db: aiosqlite.Connection, student_id: int) -> Optional[StudentProfile]:
    cursor = await db.execute("SELECT * FROM students WHERE id = ?", (student_id,))
    row = await cursor.fetchone()
    if not row:
        return None
    return StudentProfile(**_row_to_dict(row, bool_fields=["is_banned"]))


async def list_students(
    db: aiosqlite.Connection,
    student_id: Optional[int] = None,
) -> List[StudentProfile]:
    """All students (or just one when student_id is given), oldest first."""
    if student_id is not None:
        cursor = await db.execute("SELECT * FROM students WHERE id = ?", (student_id,))
    else:
        cursor = await db.execute("SELECT * FROM students ORDER BY id")
    rows = await cursor.fetchall()
    return [StudentProfile(**_row_to_dict(r, bool_fields=["is_banned"])) for r in rows]


async def list_students_for_school(
    db: aiosqlite.Connection,
    school_id: int,
    include_banned: bool = False,
) -> List[StudentProfile]:
    """Students of one school, newest first."""
    query = "SELECT * FROM students WHERE school_id = ?"
    if not include_banned:
        query += " AND is_banned = 0"
    cursor = await db.execute(query + " ORDER BY created_at DESC, id DESC", (school_id,))
    rows = await cursor.fetchall()
    return [StudentProfile(**_row_to_dict(r, bool_fields=["is_banned"])) for r in rows]


async def list_students_with_school(db: aiosqlite.Connection) -> List[Dict[str, Any]]:
    """Every student with their school's name, newest first."""
    cursor = await db.execute(
        """SELECT s.*, sc.name AS school_name
           FROM students s LEFT JOIN schools sc ON sc.id = s.school_id
           ORDER BY s.created_at DESC, s.id DESC"""
    )
    rows = await cursor.fetchall()
    return [_row_to_dict(r, bool_fields=["is_banned"]) for r in rows]


async def list_student_ids_in_class(db: aiosqlite.Connection, student_class: str) -> List[int]:
    cursor = await db.execute("SELECT id FROM students WHERE student_class = ?", (student_class,))
    rows = await cursor.fetchall()
    return [r[0] for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# STUDY SESSIONS
# ══════════════════════════════════════════════════════════════════════════════

async def create_study_session(
    db: aiosqlite.Connection,
    student_id: int,
    topic: Optional[str],
    subject: Optional[str] = None,
    time_spent: Optional[int] = None,
    improvement_score: Optional[float] = None,
    understanding_level: Optional[str] = None,
    weak_areas: Optional[List[str]] = None,
    strong_areas: Optional[List[str]] = None,
    created_at: Optional[datetime] = None,
) -> int:
    """Insert a finished study session. Returns the new session ID."""
    cursor = await db.execute(
        """INSERT INTO study_sessions
           (student_id, topic, subject, time_spent, improvement_score,
            understanding_level, weak_areas, strong_areas, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            student_id,
            topic,
            subject,
            time_spent,
            improvement_score,
            understanding_level,
            json.dumps(weak_areas or []),
            json.dumps(strong_areas or []),
            _iso(created_at) or _now_iso(),
        ),
    )
    await db.commit()
    return cursor.lastrowid


async def get_study_sessions(
    db: aiosqlite.Connection,
    student_id: int,
    since: Optional[datetime] = None,
    limit: Optional[int] = None,
    newest_first: bool = False,
) -> List[StudySessionRecord]:
    """A student's study sessions, oldest first unless newest_first is set."""
    query = "SELECT * FROM study_sessions WHERE student_id = ?"
    params: List[Any] = [student_id]
    if since is not None:
        query += " AND created_at >= ?"
        params.append(_iso(since))
    query += " ORDER BY created_at DESC, id DESC" if newest_first else " ORDER BY created_at ASC, id ASC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    cursor = await db.execute(query, params)
    rows = await cursor.fetchall()
    return [StudySessionRecord(**_row_to_dict(r)) for r in rows]


async def get_study_sessions_for_students(
    db: aiosqlite.Connection,
    student_ids: Iterable[int],
    since: Optional[datetime] = None,
) -> List[StudySessionRecord]:
    ids = list(student_ids)
    if not ids:
        return []
    query = f"SELECT * FROM study_sessions WHERE student_id IN ({_placeholders(ids)})"
    params: List[Any] = list(ids)
    if since is not None:
        query += " AND created_at >= ?"
        params.append(_iso(since))
    cursor = await db.execute(query + " ORDER BY created_at ASC, id ASC", params)
    rows = await cursor.fetchall()
    return [StudySessionRecord(**_row_to_dict(r)) for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# QUIZ ATTEMPTS
# ══════════════════════════════════════════════════════════════════════════════

async def create_quiz_attempt(
    db: aiosqlite.Connection,
    student_id: int,
    topic: Optional[str],
    accuracy_percentage: float,
    total_questions: int,
    correct_answers: int,
    understanding: str,
    results_json: Optional[Dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> int:
    """Insert a completed quiz attempt. Returns the new attempt ID."""
    cursor = await db.execute(
        """INSERT INTO quiz_attempts
           (student_id, topic, accuracy_percentage, total_questions, correct_answers,
            understanding, results_json, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            student_id,
            topic,
            accuracy_percentage,
            total_questions,
            correct_answers,
            understanding,
            json.dumps(results_json) if results_json else None,
            _iso(created_at) or _now_iso(),
        ),
    )
    await db.commit()
    return cursor.lastrowid


async def get_quiz_attempts(
    db: aiosqlite.Connection,
    student_id: int,
    since: Optional[datetime] = None,
    newest_first: bool = False,
) -> List[QuizAttemptRecord]:
    query = "SELECT * FROM quiz_attempts WHERE student_id = ?"
    params: List[Any] = [student_id]
    if since is not None:
        query += " AND created_at >= ?"
        params.append(_iso(since))
    query += " ORDER BY created_at DESC, id DESC" if newest_first else " ORDER BY created_at ASC, id ASC"

    cursor = await db.execute(query, params)
    rows = await cursor.fetchall()
    return [QuizAttemptRecord(**_row_to_dict(r)) for r in rows]


async def get_quiz_attempts_for_students(
    db: aiosqlite.Connection,
    student_ids: Iterable[int],
    since: Optional[datetime] = None,
) -> List[QuizAttemptRecord]:
    ids = list(student_ids)
    if not ids:
        return []
    query = f"SELECT * FROM quiz_attempts WHERE student_id IN ({_placeholders(ids)})"
    params: List[Any] = list(ids)
    if since is not None:
        query += " AND created_at >= ?"
        params.append(_iso(since))
    cursor = await db.execute(query + " ORDER BY created_at ASC, id ASC", params)
    rows = await cursor.fetchall()
    return [QuizAttemptRecord(**_row_to_dict(r)) for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# REPORT DISPATCHES
# ══════════════════════════════════════════════════════════════════════════════

async def record_report_dispatch(
    db: aiosqlite.Connection,
    student_id: int,
    sent: bool,
    error: Optional[str] = None,
) -> int:
    cursor = await db.execute(
        "INSERT INTO report_dispatches (student_id, sent, error, created_at) VALUES (?, ?, ?, ?)",
        (student_id, int(sent), error, _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_report_dispatches(db: aiosqlite.Connection, student_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM report_dispatches WHERE student_id = ? ORDER BY id",
        (student_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_dict(r, bool_fields=["sent"]) for r in rows]


# ══════════════════════════════════════════════════════════════════════════════
# RANKINGS, ACHIEVEMENTS & NOTIFICATIONS
# ══════════════════════════════════════════════════════════════════════════════

async def create_ranking_snapshot(
    db: aiosqlite.Connection,
    student_id: int,
    week_start: str,
    week_end: str,
    school_rank: Optional[int],
    district_rank: Optional[int],
    total_score: float,
) -> int:
    cursor = await db.execute(
        """INSERT INTO ranking_history
           (student_id, week_start, week_end, school_rank, district_rank, total_score, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (student_id, week_start, week_end, school_rank, district_rank, total_score, _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_ranking_history(
    db: aiosqlite.Connection,
    student_id: int,
    limit: int = 8,
) -> List[Dict[str, Any]]:
    """Ranking snapshots for a student, most recent week first."""
    cursor = await db.execute(
        """SELECT week_start, week_end, school_rank, district_rank, total_score
           FROM ranking_history WHERE student_id = ?
           ORDER BY week_start DESC, id DESC LIMIT ?""",
        (student_id, limit),
    )
    rows = await cursor.fetchall()
    return [_row_to_dict(r) for r in rows]


async def get_previous_ranking(
    db: aiosqlite.Connection,
    student_id: int,
    before_week: str,
) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        """SELECT * FROM ranking_history
           WHERE student_id = ? AND week_start < ?
           ORDER BY week_start DESC, id DESC LIMIT 1""",
        (student_id, before_week),
    )
    row = await cursor.fetchone()
    return _row_to_dict(row) if row else None


async def create_achievement(
    db: aiosqlite.Connection,
    student_id: int,
    achievement_type: str,
    title: str,
    description: str,
    badge_icon: str,
    ranking_type: str,
    rank_achieved: int,
    week_start: str,
) -> int:
    cursor = await db.execute(
        """INSERT INTO achievements
           (student_id, achievement_type, achievement_title, achievement_description,
            badge_icon, ranking_type, rank_achieved, week_start, achieved_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (student_id, achievement_type, title, description, badge_icon, ranking_type,
         rank_achieved, week_start, _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_achievements(db: aiosqlite.Connection, student_id: int) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM achievements WHERE student_id = ? ORDER BY achieved_at DESC, id DESC",
        (student_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_dict(r, bool_fields=["is_read"]) for r in rows]


async def create_rank_notification(
    db: aiosqlite.Connection,
    student_id: int,
    notification_type: str,
    message: str,
    old_rank: Optional[int],
    new_rank: Optional[int],
    ranking_type: str,
) -> int:
    cursor = await db.execute(
        """INSERT INTO rank_notifications
           (student_id, notification_type, message, old_rank, new_rank, ranking_type, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (student_id, notification_type, message, old_rank, new_rank, ranking_type, _now_iso()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_rank_notifications(
    db: aiosqlite.Connection,
    student_id: int,
    unread_only: bool = False,
) -> List[Dict[str, Any]]:
    query = "SELECT * FROM rank_notifications WHERE student_id = ?"
    if unread_only:
        query += " AND is_read = 0"
    cursor = await db.execute(query + " ORDER BY created_at DESC, id DESC", (student_id,))
    rows = await cursor.fetchall()
    return [_row_to_dict(r, bool_fields=["is_read"]) for r in rows]


async def mark_notification_read(
    db: aiosqlite.Connection,
    notification_id: int,
    student_id: int,
) -> bool:
    """Mark one of the student's notifications read. Returns False if it does not exist."""
    cursor = await db.execute(
        "UPDATE rank_notifications SET is_read = 1 WHERE id = ? AND student_id = ?",
        (notification_id, student_id),
    )
    await db.commit()
    return cursor.rowcount > 0


# ══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def _row_to_dict(
    row: aiosqlite.Row,
    bool_fields: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Convert a database row to a dictionary, converting 0/1 flag fields to bool."""
    result = dict(row)

    for field in bool_fields or []:
        if field in result and result[field] is not None:
            result[field] = bool(result[field])

    return result
