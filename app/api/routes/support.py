"""
Support Routes
Public contact form; messages are emailed to the support inbox via Resend.
"""
from fastapi import APIRouter

from app.schemas.support import SupportRequest
from app.services.support_email import send_support_request

router = APIRouter()


@router.post("")
def submit_support_request(request: SupportRequest):
    message_id = send_support_request(
        name=request.name,
        email=request.email,
        subject=request.subject,
        message=request.message,
    )
    return {
        "success": True,
        "message": "Support request sent successfully",
        "id": message_id,
    }
