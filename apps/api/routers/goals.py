"""
Goals API endpoints.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User
from schemas import GoalCreate, GoalResponse, GoalUpdate
from services import goals as goal_service

router = APIRouter(prefix="/v1/goals", tags=["goals"])


@router.get("", response_model=List[GoalResponse])
def list_goals(
    active_only: bool = Query(False, description="Only goals with status 'active'"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [goal_service.to_out(g) for g in goal_service.list_goals(db, current_user, active_only)]


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: GoalCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return goal_service.to_out(goal_service.create_goal(db, current_user, payload))


@router.get("/{goal_id}", response_model=GoalResponse)
def get_goal(
    goal_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return goal_service.to_out(goal_service.get_goal(db, current_user, goal_id))


@router.patch("/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: UUID,
    payload: GoalUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return goal_service.to_out(goal_service.update_goal(db, current_user, goal_id, payload))


@router.post("/{goal_id}/complete", response_model=GoalResponse)
def complete_goal(
    goal_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return goal_service.to_out(goal_service.complete_goal(db, current_user, goal_id))


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(
    goal_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    goal_service.delete_goal(db, current_user, goal_id)
