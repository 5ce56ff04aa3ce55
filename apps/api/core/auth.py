"""
Authentication dependencies.

Provides FastAPI dependencies for:
- Getting the current authenticated user
- Plan-based feature gating
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from core.database import get_db
from core.exceptions import ErrorCode, PlanLimitError, UnauthorizedError
from core.security import decode_access_token
from models import User
from services import plans

# auto_error=False so a missing header is a 401 rather than FastAPI's 403
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from JWT token.

    Raises 401 AUTH_REQUIRED if the token is missing, invalid, or points
    at a user that no longer exists.
    """
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        user_id_uuid = UUID(user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user ID format")

    user = db.query(User).filter(User.id == user_id_uuid).first()
    if not user:
        raise UnauthorizedError("User not found")

    return user


def require_feature(feature: str):
    """
    Dependency factory for plan feature gating.

    Usage:
        @router.get("/feedback/current")
        def current(user: User = Depends(require_feature("ai_feedback"))):
            ...
    """
    def feature_checker(current_user: User = Depends(get_current_user)) -> User:
        if not plans.has_feature(current_user.subscription_status, feature):
            raise PlanLimitError(
                f"Feature '{feature}' is not available on the {current_user.subscription_status} plan",
                error_code=ErrorCode.FEATURE_NOT_AVAILABLE,
            )
        return current_user

    return feature_checker
