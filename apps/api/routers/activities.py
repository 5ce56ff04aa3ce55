"""
Activities API endpoints.

CRUD for the user's activity categories. Deleting an activity hides it;
sessions logged against it keep their reference.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User
from schemas import ActivityCreate, ActivityResponse, ActivityUpdate
from services import activities as activity_service

router = APIRouter(prefix="/v1/activities", tags=["activities"])


@router.get("", response_model=List[ActivityResponse])
def list_activities(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return activity_service.list_activities(db, current_user)


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def create_activity(
    payload: ActivityCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return activity_service.create_activity(db, current_user, payload)


@router.get("/{activity_id}", response_model=ActivityResponse)
def get_activity(
    activity_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return activity_service.get_activity(db, current_user, activity_id)


@router.patch("/{activity_id}", response_model=ActivityResponse)
def update_activity(
    activity_id: UUID,
    payload: ActivityUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return activity_service.update_activity(db, current_user, activity_id, payload)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity_service.delete_activity(db, current_user, activity_id)
