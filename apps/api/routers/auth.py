"""
Authentication API endpoints.

Provides:
- User registration
- Login (JWT token generation)
- Current user lookup
- Account lockout protection
"""
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
import logging

from core.auth import get_current_user
from core.account_security import record_login_attempt, is_account_locked
from core.database import get_db
from core.exceptions import APIException, ConflictError, ErrorCode, UnauthorizedError, ValidationError
from core.security import verify_password, get_password_hash, create_access_token
from models import User
from schemas import TokenResponse, UserLogin, UserRegister, UserResponse
from services.email_service import email_service
from services.time_utils import DEFAULT_TIMEZONE, is_valid_timezone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


def _token_response(user: User) -> dict:
    access_token = create_access_token(data={"sub": str(user.id), "email": user.email})
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserResponse.model_validate(user),
    }


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Register a new user account.

    Issues a token immediately so the client can proceed without a second
    login call.
    """
    email = user_data.email.lower()

    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered", error_code=ErrorCode.AUTH_FAILED)

    timezone_name = user_data.timezone or DEFAULT_TIMEZONE
    if not is_valid_timezone(timezone_name):
        raise ValidationError(f"Unknown timezone: {timezone_name}")

    user = User(
        email=email,
        password_hash=get_password_hash(user_data.password),
        name=(user_data.name or "").strip() or email.split("@")[0],
        timezone=timezone_name,
        language=user_data.language,
        subscription_status="free",
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Registered user {user.id}")
    background_tasks.add_task(
        email_service.send_templated, user.email, "welcome", user.language, {"first_name": user.name}
    )

    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token.

    Locks the email for 15 minutes after 5 failed attempts.
    """
    email = credentials.email.lower()

    locked, seconds_remaining = is_account_locked(email)
    if locked:
        minutes_remaining = (seconds_remaining or 0) // 60 + 1
        raise APIException(
            status_code=status.HTTP_423_LOCKED,
            detail=f"Account temporarily locked. Try again in {minutes_remaining} minutes.",
            error_code=ErrorCode.AUTH_FAILED,
            headers={"Retry-After": str(seconds_remaining)},
        )

    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        # Recorded for unknown emails too, so lockout can't be used for enumeration
        record_login_attempt(email, success=False)
        raise UnauthorizedError("Invalid email or password", error_code=ErrorCode.AUTH_FAILED)

    record_login_attempt(email, success=True)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current authenticated user information."""
    return current_user
