"""
Profile API endpoints.

Read and update the signed-in user's profile, or delete the account.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
import logging

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import ValidationError
from models import User
from schemas import ProfileUpdate, UserResponse
from services.email_service import email_service
from services.media_storage import delete_user_files
from services.time_utils import is_valid_timezone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/profile", tags=["profile"])


@router.get("", response_model=UserResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("", response_model=UserResponse)
def update_profile(
    update: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if update.timezone is not None and not is_valid_timezone(update.timezone):
        raise ValidationError(f"Unknown timezone: {update.timezone}")

    for field, value in update.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if field == "name":
            value = value.strip() or current_user.name
        setattr(current_user, field, value)

    db.commit()
    db.refresh(current_user)
    return current_user


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete the account and everything it owns.

    Rows cascade through the users foreign keys; uploaded photos are
    removed from disk.
    """
    email, language, name, user_id = current_user.email, current_user.language, current_user.name, current_user.id

    db.delete(current_user)
    db.commit()
    delete_user_files(user_id)

    logger.info(f"Deleted account {user_id}")
    background_tasks.add_task(email_service.send_templated, email, "goodbye", language, {"first_name": name})
