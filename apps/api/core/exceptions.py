"""
Custom exception classes and error codes.

Clients only ever see an error code and an HTTP status; the underlying
cause is logged server-side by whoever raises.
"""
from enum import Enum
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_FAILED = "AUTH_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"

    GOAL_FETCH_FAILED = "GOAL_FETCH_FAILED"
    GOAL_ADD_FAILED = "GOAL_ADD_FAILED"
    GOAL_UPDATE_FAILED = "GOAL_UPDATE_FAILED"
    GOAL_DELETE_FAILED = "GOAL_DELETE_FAILED"
    GOAL_COMPLETE_FAILED = "GOAL_COMPLETE_FAILED"
    GOAL_NOT_FOUND = "GOAL_NOT_FOUND"
    GOAL_LIMIT_REACHED = "GOAL_LIMIT_REACHED"

    SESSION_FETCH_FAILED = "SESSION_FETCH_FAILED"
    SESSION_ADD_FAILED = "SESSION_ADD_FAILED"
    SESSION_UPDATE_FAILED = "SESSION_UPDATE_FAILED"
    SESSION_DELETE_FAILED = "SESSION_DELETE_FAILED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_ALREADY_ACTIVE = "SESSION_ALREADY_ACTIVE"
    SESSION_INVALID_STATE = "SESSION_INVALID_STATE"

    ACTIVITY_FETCH_FAILED = "ACTIVITY_FETCH_FAILED"
    ACTIVITY_ADD_FAILED = "ACTIVITY_ADD_FAILED"
    ACTIVITY_UPDATE_FAILED = "ACTIVITY_UPDATE_FAILED"
    ACTIVITY_DELETE_FAILED = "ACTIVITY_DELETE_FAILED"
    ACTIVITY_NOT_FOUND = "ACTIVITY_NOT_FOUND"
    ACTIVITY_LIMIT_REACHED = "ACTIVITY_LIMIT_REACHED"

    PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"
    PROFILE_UPDATE_FAILED = "PROFILE_UPDATE_FAILED"
    SUBSCRIPTION_FETCH_FAILED = "SUBSCRIPTION_FETCH_FAILED"

    AI_FEEDBACK_GENERATE_FAILED = "AI_FEEDBACK_GENERATE_FAILED"
    AI_FEEDBACK_FETCH_FAILED = "AI_FEEDBACK_FETCH_FAILED"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"

    MEDIA_INVALID_TYPE = "MEDIA_INVALID_TYPE"
    MEDIA_TOO_LARGE = "MEDIA_TOO_LARGE"

    GENERIC_ERROR = "GENERIC_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    ACTIVE_USERS_FETCH_FAILED = "ACTIVE_USERS_FETCH_FAILED"
    INVALID_ORIGIN = "INVALID_ORIGIN"


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code.value if isinstance(error_code, ErrorCode) else error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, error_code: ErrorCode = ErrorCode.NOT_FOUND):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
            error_code=error_code
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=ErrorCode.VALIDATION_ERROR
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required", error_code: ErrorCode = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """Access denied."""

    def __init__(self, detail: str = "Access denied", error_code: ErrorCode = ErrorCode.UNAUTHORIZED):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (duplicate entry, invalid state transition)."""

    def __init__(self, detail: str, error_code: ErrorCode = ErrorCode.VALIDATION_ERROR):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class PlanLimitError(ForbiddenError):
    """The user's plan does not allow this."""

    def __init__(self, detail: str, error_code: ErrorCode = ErrorCode.FEATURE_NOT_AVAILABLE):
        super().__init__(detail=detail, error_code=error_code)
