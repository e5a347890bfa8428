import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from eduimprove.db.database import get_db
from eduimprove.db import records
from eduimprove.models.study import StudySessionCreate, parse_timestamp
from eduimprove.routes.auth import require_student_access
from eduimprove.services.study_chat import DEFAULT_TOPIC, detect_topic, session_minutes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _time_spent(body: StudySessionCreate) -> int:
    if body.time_spent is not None:
        return max(body.time_spent, 1)
    if body.started_at is not None:
        ended_at = body.ended_at or datetime.now(timezone.utc)
        return session_minutes(parse_timestamp(body.started_at), parse_timestamp(ended_at))
    return 1


@router.post("")
async def end_study_session(body: StudySessionCreate, request: Request, db=Depends(get_db)):
    """Persist a finished study session."""
    await require_student_access(request, body.student_id, db)
    if not await records.get_student(db, body.student_id):
        raise HTTPException(status_code=404, detail="Student not found")

    topic = body.topic or detect_topic(body.messages) or DEFAULT_TOPIC
    time_spent = _time_spent(body)
    session_id = await records.create_study_session(
        db,
        student_id=body.student_id,
        topic=topic,
        subject=body.subject,
        time_spent=time_spent,
        improvement_score=body.improvement_score,
        understanding_level=body.understanding_level,
        weak_areas=body.weak_areas,
        strong_areas=body.strong_areas,
    )
    logger.info("Study session %s saved for student %s (%s, %d min)", session_id, body.student_id, topic, time_spent)
    return {"id": session_id, "topic": topic, "timeSpent": time_spent}
