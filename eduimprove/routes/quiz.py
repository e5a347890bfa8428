"""Quiz endpoints: answer analysis, quiz generation and attempt submission."""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from eduimprove.db.database import get_db
from eduimprove.db import records
from eduimprove.models.quiz import AnalyzeRequest, QuizAttemptSubmission, QuizGenerateRequest, QuizResult
from eduimprove.routes.auth import get_current_user, require_student_access
from eduimprove.services.ai_client import AINotConfigured
from eduimprove.services.answer_judge import AnswerJudge
from eduimprove.services.quiz_generator import QuizGenerationError, generate_quiz
from eduimprove.services.quiz_session import QuizSession, QuizSessionError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quiz"])


def get_answer_judge() -> AnswerJudge:
    return AnswerJudge()


@router.post("/api/analyze-answer")
async def analyze_answer(
    body: AnalyzeRequest,
    request: Request,
    db=Depends(get_db),
    judge: AnswerJudge = Depends(get_answer_judge),
):
    """Judge whether a student's answer means the same as the expected one."""
    await get_current_user(request, db)
    result = await judge.analyze(
        question=body.question,
        correct_answer=body.correct_answer,
        student_answer=body.student_answer,
        topic=body.topic,
        question_type=body.question_type,
    )
    payload = result.model_dump(by_alias=True, exclude_none=True)
    if result.error:
        return JSONResponse(status_code=500, content=payload)
    return payload


@router.post("/api/quiz/generate")
async def generate(body: QuizGenerateRequest, request: Request, db=Depends(get_db)):
    await get_current_user(request, db)
    try:
        questions = await generate_quiz(body.messages, topic=body.topic, student_level=body.student_level)
    except AINotConfigured as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    except QuizGenerationError as e:
        logger.error("Quiz generation failed: %s", e)
        return {"success": False, "error": str(e)}

    return {
        "success": True,
        "quiz": {"questions": [q.model_dump(by_alias=True) for q in questions]},
    }


@router.post("/api/quiz/attempts")
async def submit_attempt(body: QuizAttemptSubmission, request: Request, db=Depends(get_db)):
    """Replay a finished quiz through the session machine, persist and return the result."""
    await require_student_access(request, body.student_id, db)
    if not await records.get_student(db, body.student_id):
        raise HTTPException(status_code=404, detail="Student not found")
    if len(body.answers) != len(body.questions):
        raise HTTPException(
            status_code=400,
            detail=f"Expected {len(body.questions)} answers, got {len(body.answers)}",
        )

    saved: dict = {}

    async def persist(result: QuizResult) -> None:
        saved["id"] = await records.create_quiz_attempt(
            db,
            student_id=body.student_id,
            topic=body.topic or (body.questions[0].topic if body.questions else None),
            accuracy_percentage=result.accuracy,
            total_questions=result.total,
            correct_answers=result.correct_count,
            understanding=result.understanding,
            results_json={"correct": result.correct, "answers": result.answers},
        )

    try:
        # The client already showed each reveal, so no settle delay here
        session = QuizSession(body.questions, on_complete=persist, settle_delay=0)
        result = None
        for answer in body.answers:
            session.submit_answer(answer)
            result = await session.advance()
    except QuizSessionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Quiz attempt %s saved for student %s", saved.get("id"), body.student_id)
    return {"attemptId": saved.get("id"), "result": result.model_dump(by_alias=True)}
