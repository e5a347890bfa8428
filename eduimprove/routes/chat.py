import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from eduimprove.db.database import get_db
from eduimprove.models.study import ChatRequest, TTSRequest
from eduimprove.routes.auth import get_current_user, require_student_access
from eduimprove.services.ai_client import AINotConfigured
from eduimprove.services.study_chat import ChatValidationError, study_chat
from eduimprove.services.tts import TTSError, TTSInputError, synthesize_speech

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/api/chat")
async def chat(body: ChatRequest, request: Request, db=Depends(get_db)):
    if body.student_id is not None:
        await require_student_access(request, body.student_id, db)
    else:
        await get_current_user(request, db)

    try:
        reply = await study_chat(body.messages, analyze=body.analyze_session)
    except ChatValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AINotConfigured as e:
        return JSONResponse(status_code=500, content={"error": str(e)})

    return reply.model_dump(by_alias=True, exclude_none=True)


@router.post("/api/tts")
async def text_to_speech(body: TTSRequest, request: Request, db=Depends(get_db)):
    await get_current_user(request, db)
    try:
        audio = await synthesize_speech(body.text, voice_id=body.voice_id)
    except TTSInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TTSError as e:
        logger.error("TTS Error: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})
    return {"audioContent": audio}
