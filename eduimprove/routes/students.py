"""Student listing, progress dashboard and per-student weekly report data."""

import logging
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from eduimprove.db.database import get_db
from eduimprove.db import records
from eduimprove.routes.auth import get_current_user, require_student_access
from eduimprove.services.progress_aggregator import build_progress_report, class_averages
from eduimprove.services.weekly_report import REPORT_WINDOW_DAYS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/students", tags=["students"])

RECENT_SESSIONS = 10


@router.get("")
async def list_students(request: Request, db=Depends(get_db)):
    """Schools see their active students with recent sessions; admins see everyone."""
    user = await get_current_user(request, db)

    if user["role"] == "school":
        school = await records.get_school(db, user["id"])
        if school["is_banned"]:
            raise HTTPException(status_code=403, detail="School is banned")
        students = []
        for student in await records.list_students_for_school(db, user["id"]):
            sessions = await records.get_study_sessions(db, student.id, limit=RECENT_SESSIONS, newest_first=True)
            students.append({
                **student.model_dump(),
                "study_sessions": [s.model_dump(mode="json") for s in sessions],
            })
        return {"students": students, "school": school}

    if user["role"] == "admin":
        return {
            "students": await records.list_students_with_school(db),
            "schools": await records.list_schools(db),
        }

    raise HTTPException(status_code=403, detail="Access denied")


@router.get("/{student_id}/progress")
async def student_progress(student_id: int, request: Request, db=Depends(get_db)):
    await require_student_access(request, student_id, db)
    if not await records.get_student(db, student_id):
        raise HTTPException(status_code=404, detail="Student not found")

    sessions = await records.get_study_sessions(db, student_id)
    quizzes = await records.get_quiz_attempts(db, student_id)
    report = build_progress_report(student_id, sessions, quizzes)
    return report.model_dump(by_alias=True)


@router.get("/{student_id}/report")
async def student_report(student_id: int, request: Request, db=Depends(get_db)):
    """Last 7 days of sessions and quizzes, with averages for the student's class."""
    user = await require_student_access(request, student_id, db)
    if user["role"] == "student":
        raise HTTPException(status_code=403, detail="Access denied")

    student = await records.get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    since = datetime.now(timezone.utc) - timedelta(days=REPORT_WINDOW_DAYS)
    sessions = await records.get_study_sessions(db, student_id, since=since, newest_first=True)
    quizzes = await records.get_quiz_attempts(db, student_id, since=since, newest_first=True)

    averages = None
    if student.student_class:
        class_ids = await records.list_student_ids_in_class(db, student.student_class)
        class_sessions = await records.get_study_sessions_for_students(db, class_ids, since=since)
        class_quizzes = await records.get_quiz_attempts_for_students(db, class_ids, since=since)
        averages = class_averages(len(class_ids), class_sessions, class_quizzes)

    school = await records.get_school(db, student.school_id) if student.school_id is not None else None
    return {
        "student": {**student.model_dump(), "school": school},
        "sessions": [s.model_dump(mode="json") for s in sessions],
        "quizzes": [q.model_dump(mode="json") for q in quizzes],
        "classAverages": averages.model_dump(by_alias=True) if averages else None,
    }
