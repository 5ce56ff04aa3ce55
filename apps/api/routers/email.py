"""
Email API endpoint.

Lets the client trigger a templated email to the signed-in user
(e.g. "welcome back" after sign-in).
"""
from fastapi import APIRouter, Depends
import logging

from core.auth import get_current_user
from models import User
from schemas import EmailSendRequest
from services.email_service import category_for, email_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/email", tags=["email"])


@router.post("/send")
def send_email(
    request: EmailSendRequest,
    current_user: User = Depends(get_current_user),
):
    data = {"first_name": current_user.name or ""}
    data.update({k: str(v) for k, v in request.data.items()})

    sent = email_service.send_templated(
        current_user.email,
        request.type,
        request.language or current_user.language,
        data,
    )
    return {"success": sent, "category": category_for(request.type), "type": request.type}
