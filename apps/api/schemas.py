from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from datetime import datetime, date, timezone
from uuid import UUID
from typing import Optional, List, Literal


Language = Literal["ja", "en"]
FeedbackType = Literal["weekly", "monthly"]


# --- Users / auth ---

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None
    language: Language = "ja"


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str]
    timezone: str
    language: str
    subscription_status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None
    language: Optional[Language] = None


# --- Activities ---

class ActivityCreate(BaseModel):
    name: str = Field(min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    goal_id: Optional[UUID] = None


class ActivityUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    goal_id: Optional[UUID] = None


class ActivityResponse(BaseModel):
    id: UUID
    name: str
    icon: Optional[str]
    color: str
    goal_id: Optional[UUID]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Goals ---

class GoalCreate(BaseModel):
    title: str = Field(min_length=1)
    motivation: Optional[str] = None
    deadline: Optional[date] = None
    weekday_hours: float = Field(default=0, ge=0, le=24)
    weekend_hours: float = Field(default=0, ge=0, le=24)
    # Client-side estimate; recomputed from the deadline when omitted.
    calculated_hours: Optional[int] = Field(default=None, ge=0)
    dont_list: List[str] = Field(default_factory=list, max_length=10)


class GoalUpdate(BaseModel):
    """Partial update. add_duration (seconds) logs progress instead of editing fields."""
    title: Optional[str] = Field(default=None, min_length=1)
    motivation: Optional[str] = None
    deadline: Optional[date] = None
    weekday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    weekend_hours: Optional[float] = Field(default=None, ge=0, le=24)
    calculated_hours: Optional[int] = Field(default=None, ge=0)
    dont_list: Optional[List[str]] = Field(default=None, max_length=10)
    status: Optional[Literal["active", "completed", "paused"]] = None
    add_duration: Optional[int] = None


class GoalResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    deadline: Optional[date]
    unit: str
    target_duration: int
    current_value: int
    weekday_hours: float
    weekend_hours: float
    calculated_hours: int
    dont_list: List[str]
    status: str
    progress_percent: int
    weekly_hours: float
    monthly_hours: float
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# --- Sessions ---

def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are UTC, the same as stored values."""
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class SessionStart(BaseModel):
    activity_id: UUID
    goal_id: Optional[UUID] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class SessionEnd(BaseModel):
    notes: Optional[str] = None
    location: Optional[str] = None


class SessionCreate(BaseModel):
    """Manually logged session with known start/end."""
    activity_id: UUID
    goal_id: Optional[UUID] = None
    start_time: datetime
    end_time: datetime
    duration: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    location: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, v):
        return _as_utc(v)


class SessionUpdate(BaseModel):
    activity_id: Optional[UUID] = None
    goal_id: Optional[UUID] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    location: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, v):
        return _as_utc(v)


class PlaceholderRequest(BaseModel):
    """Context for the reflection field suggestion; `is_pre_generation` marks the draft made at start."""
    activity_id: UUID
    goal_id: Optional[UUID] = None
    current_mood: Optional[int] = Field(default=None, ge=1, le=5)
    current_duration: Optional[int] = Field(default=None, ge=0)
    is_pre_generation: bool = False
    language: Optional[Language] = None


class PlaceholderResponse(BaseModel):
    placeholder: str


class SessionResponse(BaseModel):
    id: UUID
    activity_id: UUID
    activity_name: Optional[str]
    activity_icon: Optional[str]
    activity_color: Optional[str]
    goal_id: Optional[UUID]
    start_time: datetime
    end_time: Optional[datetime]
    duration: int
    elapsed_seconds: int
    session_date: date
    status: str
    notes: Optional[str]
    location: Optional[str]
    mood_score: Optional[int] = None
    created_at: datetime


# --- Reflections / media ---

class ReflectionUpsert(BaseModel):
    mood_score: int = Field(ge=1, le=5)
    mood_notes: Optional[str] = None
    additional_notes: Optional[str] = None
    reflection_duration: Optional[int] = Field(default=None, ge=0)


class ReflectionResponse(BaseModel):
    id: UUID
    session_id: UUID
    mood_score: int
    mood_notes: Optional[str]
    additional_notes: Optional[str]
    reflection_duration: Optional[int]
    created_at: datetime
    updated_at: datetime


class MediaResponse(BaseModel):
    id: UUID
    session_id: UUID
    media_type: str
    file_name: str
    file_size: int
    mime_type: str
    caption: Optional[str]
    is_main_image: bool
    public_url: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Feedback ---

class FeedbackResponse(BaseModel):
    id: UUID
    feedback_type: str
    content: Optional[str]
    period_start: date
    period_end: date
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime


class CurrentFeedbackResponse(BaseModel):
    feedback: Optional[str]
    period_type: Optional[FeedbackType] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    created_at: Optional[datetime] = None
    is_existing: bool = False


# --- Billing ---

class CheckoutRequest(BaseModel):
    price_id: str = Field(min_length=1)


class UrlResponse(BaseModel):
    url: str


class SubscriptionInfo(BaseModel):
    subscription_status: str
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None


# --- Email ---

class EmailSendRequest(BaseModel):
    type: Literal["welcome", "welcome_back", "goodbye", "upgrade", "downgrade", "downgrade_scheduled"]
    language: Optional[Language] = None
    data: dict = Field(default_factory=dict)


# --- Stats ---

class ActivityStat(BaseModel):
    activity_id: UUID
    name: str
    icon: Optional[str]
    color: str
    total_duration: int
    session_count: int
    formatted_duration: str


class StatsSummary(BaseModel):
    total_duration: int
    formatted_duration: str
    session_count: int
    streak_days: int
    today_duration: int
