"""
Cron endpoints.

Called by an external scheduler with `Authorization: Bearer {CRON_SECRET}`.
The Celery beat schedule runs the same jobs; this is the HTTP trigger.
"""
import hmac
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session
import logging

from core.config import settings
from core.database import get_db
from core.exceptions import ErrorCode, UnauthorizedError
from services.ai_feedback import generate_for_all_users

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    expected = settings.CRON_SECRET
    if not expected or not authorization:
        raise UnauthorizedError("Unauthorized", error_code=ErrorCode.UNAUTHORIZED)
    if not hmac.compare_digest(authorization, f"Bearer {expected}"):
        raise UnauthorizedError("Unauthorized", error_code=ErrorCode.UNAUTHORIZED)


@router.post("/feedback", dependencies=[Depends(verify_cron_secret)])
def generate_feedback(
    type: Literal["weekly", "monthly"] = Query("weekly"),
    db: Session = Depends(get_db),
):
    logger.info(f"Cron-triggered {type} feedback generation")
    results = generate_for_all_users(db, type)
    return {"success": True, "feedback_type": type, "results": results}
