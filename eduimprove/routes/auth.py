import jwt
import aiosqlite
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from eduimprove.db.database import get_db
from eduimprove.db import records
from eduimprove.config import settings

router = APIRouter(prefix="/api/auth", tags=["auth"])

JWT_SECRET = settings.jwt_secret
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 72

ROLES = ("student", "school", "admin")


def create_token(subject_id: int, role: str = "student") -> str:
    """Issue a bearer token. Login lives with the identity provider; this is for tooling and tests."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    payload = {
        "sub": str(subject_id),
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRY_HOURS),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def _load_subject(db: aiosqlite.Connection, role: str, subject_id: int) -> dict | None:
    if role == "student":
        student = await records.get_student(db, subject_id)
        if not student:
            return None
        return {"name": student.full_name, "school_id": student.school_id, "is_banned": student.is_banned}
    if role == "school":
        school = await records.get_school(db, subject_id)
        if not school:
            return None
        return {"name": school["name"], "school_id": school["id"], "is_banned": school["is_banned"]}
    if role == "admin":
        admin = await records.get_admin(db, subject_id)
        if not admin:
            return None
        return {"name": admin["name"], "school_id": None, "is_banned": False}
    return None


async def get_current_user(request: Request, db: aiosqlite.Connection) -> dict:
    """Extract and validate the current user from the JWT token.

    The subject must still exist in the table for its role.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Empty token")

    payload = decode_token(token)
    role = payload.get("role", "student")
    try:
        subject_id = int(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = await _load_subject(db, role, subject_id)
    if not subject:
        raise HTTPException(status_code=401, detail="User not found")
    return {"id": subject_id, "role": role, **subject}


# ── Convenience helpers for route-level auth ────────────────────────

def require_role(*allowed_roles: str):
    """Return a checker that the user has one of the allowed roles.

    Usage in a route:
        user = await require_role("admin")(request, db)
    """
    async def _check(request: Request, db: aiosqlite.Connection) -> dict:
        user = await get_current_user(request, db)
        if user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required role: {', '.join(allowed_roles)}",
            )
        return user
    return _check


async def require_student_access(request: Request, student_id: int, db: aiosqlite.Connection) -> dict:
    """Get current user and verify they may see this student's data.

    Students see only themselves, schools see their own students, admins see everyone.
    """
    user = await get_current_user(request, db)
    if user["role"] == "admin":
        return user
    if user["role"] == "student":
        if user["id"] != student_id:
            raise HTTPException(status_code=403, detail="Access denied")
        return user

    if user["is_banned"]:
        raise HTTPException(status_code=403, detail="School is banned")
    student = await records.get_student(db, student_id)
    if student and student.school_id != user["school_id"]:
        raise HTTPException(status_code=403, detail="Student is not in your school")
    return user


@router.get("/me")
async def me(request: Request, db=Depends(get_db)):
    user = await get_current_user(request, db)
    return {"id": user["id"], "role": user["role"], "name": user["name"], "schoolId": user["school_id"]}
