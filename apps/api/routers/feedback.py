"""
AI feedback API endpoints.

Feedback is generated in the background (weekly and monthly); these
endpoints read it and track what the user has seen.
"""
from datetime import date
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user, require_feature
from core.database import get_db
from models import User
from schemas import CurrentFeedbackResponse, FeedbackResponse
from services import ai_feedback

router = APIRouter(prefix="/v1/feedback", tags=["feedback"])


@router.get("/current", response_model=CurrentFeedbackResponse)
def get_current_feedback(
    type: Literal["weekly", "monthly"] = Query("weekly"),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    current_user: User = Depends(require_feature("ai_feedback")),
    db: Session = Depends(get_db),
):
    """
    Feedback for the latest complete week or month, or an explicit period.

    Returns {"feedback": null} when nothing has been generated for it yet.
    """
    return ai_feedback.get_current_feedback(db, current_user, type, period_start, period_end)


@router.get("", response_model=List[FeedbackResponse])
def list_feedback(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [ai_feedback.to_out(f) for f in ai_feedback.list_feedback(db, current_user, limit)]


@router.get("/unread-count")
def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"count": ai_feedback.unread_count(db, current_user)}


@router.post("/read-all")
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"count": ai_feedback.mark_all_read(db, current_user)}


@router.post("/{feedback_id}/read", response_model=FeedbackResponse)
def mark_read(
    feedback_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ai_feedback.to_out(ai_feedback.mark_read(db, current_user, feedback_id))
