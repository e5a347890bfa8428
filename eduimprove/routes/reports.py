import logging
from fastapi import APIRouter, Depends, Request
from eduimprove.db.database import get_db
from eduimprove.models.study import WeeklyReportRequest
from eduimprove.routes.auth import require_role
from eduimprove.services.weekly_report import send_weekly_reports
from eduimprove.services.whatsapp import MessageTransport, TwilioWhatsApp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


def get_transport() -> MessageTransport:
    return TwilioWhatsApp()


@router.post("/weekly")
async def weekly_reports(
    request: Request,
    body: WeeklyReportRequest | None = None,
    db=Depends(get_db),
    transport: MessageTransport = Depends(get_transport),
):
    """Compile and send the weekly parent reports (admin only)."""
    await require_role("admin")(request, db)
    body = body or WeeklyReportRequest()
    return await send_weekly_reports(db, transport, student_id=body.student_id, test_mode=body.test_mode)
