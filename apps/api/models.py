from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, Uuid, JSON, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator
from core.database import Base
import uuid
from datetime import datetime, timezone


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    Postgres keeps the offset; SQLite drops it, so naive values coming back
    are re-tagged as UTC before application code does arithmetic on them.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    timezone = Column(Text, default="Asia/Tokyo", nullable=False)
    language = Column(Text, default="ja", nullable=False)  # 'ja' | 'en'

    # Plan entitlement, mirrored from Stripe by the webhook handler.
    subscription_status = Column(Text, default="free", nullable=False)  # free|standard|premium
    stripe_customer_id = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("subscription_status IN ('free', 'standard', 'premium')", name="ck_users_subscription_status"),
    )


class Goal(Base):
    """
    A target with a deadline and an estimated number of hours.

    Durations are stored in seconds: target_duration is the planned total,
    current_value the time logged against it so far.
    """

    __tablename__ = "goals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)  # the user's motivation
    deadline = Column(Date, nullable=True)
    unit = Column(Text, default="hours", nullable=False)

    target_duration = Column(Integer, default=0, nullable=False)
    current_value = Column(Integer, default=0, nullable=False)
    weekday_hours = Column(Float, default=0, nullable=False)
    weekend_hours = Column(Float, default=0, nullable=False)
    calculated_hours = Column(Integer, default=0, nullable=False)

    # Things the user commits to avoid while pursuing the goal.
    dont_list = Column(JSON, nullable=False, default=list)

    status = Column(Text, default="active", nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed', 'paused')", name="ck_goals_status"),
    )


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    goal_id = Column(Uuid, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True)

    name = Column(Text, nullable=False)
    icon = Column(Text, nullable=True)
    color = Column(Text, default="#6366f1", nullable=False)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)
    # Soft delete: historical sessions keep pointing at the row.
    deleted_at = Column(UTCDateTime, nullable=True)

    goal = relationship("Goal")


class ActivitySession(Base):
    """
    A timed occurrence of an activity.

    Open while end_time is NULL (status active or paused). Pause time is
    accumulated in paused_seconds; duration is written once, on end.
    """

    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_id = Column(Uuid, ForeignKey("activities.id"), nullable=False)
    goal_id = Column(Uuid, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True)

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=True)
    duration = Column(Integer, default=0, nullable=False)  # seconds, excluding pauses
    session_date = Column(Date, nullable=False)  # local calendar day of start_time

    status = Column(Text, default="active", nullable=False)
    paused_at = Column(UTCDateTime, nullable=True)
    paused_seconds = Column(Integer, default=0, nullable=False)

    notes = Column(Text, nullable=True)
    location = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    activity = relationship("Activity", lazy="joined")
    reflection = relationship(
        "SessionReflection", uselist=False, back_populates="session", cascade="all, delete-orphan"
    )
    media = relationship("SessionMedia", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_sessions_user_start", "user_id", "start_time"),
        Index("ix_sessions_user_end_time", "user_id", "end_time"),
        # At most one open session per user.
        Index(
            "uq_sessions_one_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
        CheckConstraint("status IN ('active', 'paused', 'ended')", name="ck_sessions_status"),
        CheckConstraint("duration >= 0", name="ck_sessions_duration_nonnegative"),
    )


class SessionReflection(Base):
    """
    Post-session reflection. One per session.

    mood_notes and additional_notes are stored encrypted.
    """

    __tablename__ = "session_reflections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    mood_score = Column(Integer, nullable=False)
    mood_notes = Column(Text, nullable=True)
    additional_notes = Column(Text, nullable=True)
    reflection_duration = Column(Integer, nullable=True)  # seconds spent writing

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    session = relationship("ActivitySession", back_populates="reflection")

    __table_args__ = (
        UniqueConstraint("session_id", name="uq_session_reflections_session"),
        CheckConstraint("mood_score BETWEEN 1 AND 5", name="ck_session_reflections_mood_range"),
    )


class SessionMedia(Base):
    __tablename__ = "session_media"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    media_type = Column(Text, default="image", nullable=False)
    file_path = Column(Text, nullable=False)  # relative to UPLOADS_DIR
    file_name = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(Text, nullable=False)
    caption = Column(Text, nullable=True)
    is_main_image = Column(Boolean, default=False, nullable=False)
    public_url = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)

    session = relationship("ActivitySession", back_populates="media")


class AiFeedback(Base):
    """
    Generated weekly/monthly feedback for one user and one period.

    content is encrypted JSON text ({"overview": ...}).
    """

    __tablename__ = "ai_feedback"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    feedback_type = Column(Text, nullable=False)  # weekly|monthly
    content = Column(Text, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    tone = Column(Text, nullable=True)
    model = Column(Text, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_ai_feedback_user_created", "user_id", "created_at"),
        UniqueConstraint("user_id", "feedback_type", "period_start", name="uq_ai_feedback_user_period"),
        CheckConstraint("feedback_type IN ('weekly', 'monthly')", name="ck_ai_feedback_type"),
    )


class Subscription(Base):
    """
    Stripe subscription mirror.

    Stripe is the billing source of truth; this table stores a minimal, queryable
    mirror for entitlement decisions and support visibility.
    """

    __tablename__ = "subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    stripe_customer_id = Column(Text, nullable=True)
    stripe_subscription_id = Column(Text, nullable=True)
    stripe_price_id = Column(Text, nullable=True)
    plan_type = Column(Text, default="free", nullable=False)

    status = Column(Text, nullable=True)  # active|trialing|past_due|canceled|...
    current_period_end = Column(UTCDateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        Index("ix_subscriptions_stripe_customer_id", "stripe_customer_id"),
        Index("ix_subscriptions_stripe_subscription_id", "stripe_subscription_id"),
    )


class StripeEvent(Base):
    """
    Processed Stripe events (idempotency guard).

    Stripe retries webhook deliveries; storing event ids makes webhook handling safe.
    """

    __tablename__ = "stripe_events"

    event_id = Column(Text, primary_key=True)  # evt_*
    event_type = Column(Text, nullable=False)
    stripe_created = Column(Integer, nullable=True)

    received_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_stripe_events_event_type", "event_type"),
    )
