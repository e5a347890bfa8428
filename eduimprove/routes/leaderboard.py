from fastapi import APIRouter, Depends, HTTPException, Request
from eduimprove.db.database import get_db
from eduimprove.db import records
from eduimprove.routes.auth import get_current_user, require_role, require_student_access
from eduimprove.services.ranking import compute_rankings, snapshot_weekly_rankings, student_standing

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("/students/{student_id}")
async def student_leaderboard(student_id: int, request: Request, db=Depends(get_db)):
    """School and district standing, history, badges and rank notifications for one student."""
    await require_student_access(request, student_id, db)
    student = await records.get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    standing = await student_standing(db, student)
    school = await records.get_school(db, student.school_id) if student.school_id is not None else None
    return {
        **standing.model_dump(by_alias=True),
        "schoolName": school["name"] if school else None,
        "district": student.district,
        "rankingHistory": await records.get_ranking_history(db, student_id),
        "achievements": await records.get_achievements(db, student_id),
        "notifications": await records.get_rank_notifications(db, student_id),
    }


@router.get("/schools/{school_id}")
async def school_leaderboard(school_id: int, request: Request, db=Depends(get_db)):
    user = await get_current_user(request, db)
    if user["role"] == "school" and user["id"] != school_id:
        raise HTTPException(status_code=403, detail="Access denied")
    if user["role"] == "student" and user["school_id"] != school_id:
        raise HTTPException(status_code=403, detail="Access denied")

    rankings = await compute_rankings(db)
    entries = rankings["school"].get(school_id, [])
    return {"period": "weekly", "entries": [e.model_dump(by_alias=True) for e in entries]}


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: int, request: Request, db=Depends(get_db)):
    user = await require_role("student")(request, db)
    if not await records.mark_notification_read(db, notification_id, user["id"]):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.post("/snapshot")
async def snapshot(request: Request, db=Depends(get_db)):
    """Store this week's rankings and award achievements (admin only)."""
    await require_role("admin")(request, db)
    return await snapshot_weekly_rankings(db)
