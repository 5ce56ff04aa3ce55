"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created
fresh for every test and dropped afterwards, so nothing leaks between
tests. Redis is never contacted: the cache and rate limiter see it as
unavailable and degrade the way they do in production.
"""
import os
import sys

# Settings are read at import time; these must be in place before any app import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-1234567890")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CSRF_PROTECTION_ENABLED", "true")
os.environ.setdefault("EMAIL_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("CONTENT_ENCRYPTION_KEY", "x7vP3gNq1a9Zt4bWc2Kd8Lm5Rf6Hs0Yj-UeOiTpXwQE=")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from core import account_security
from core.database import Base, SessionLocal, engine
from core.security import create_access_token, get_password_hash
from main import app
from models import Activity, ActivitySession, User

TEST_ORIGIN = "http://localhost:3000"
TEST_PASSWORD = "correct-horse-battery"
_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture(autouse=True)
def _schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    monkeypatch.setattr("core.cache.get_redis_client", lambda: None)
    monkeypatch.setattr("core.rate_limit.get_redis_client", lambda: None)


@pytest.fixture(autouse=True)
def _reset_lockouts():
    account_security._login_attempts.clear()
    yield
    account_security._login_attempts.clear()


@pytest.fixture(autouse=True)
def _uploads_dir(tmp_path, monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "UPLOADS_DIR", str(tmp_path / "uploads"))


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """Browser-like client: state-changing requests carry an allowed Origin."""
    return TestClient(app, headers={"Origin": TEST_ORIGIN})


@pytest.fixture
def make_user(db_session):
    def _make(plan: str = "free", language: str = "ja", tz: str = "Asia/Tokyo", **kwargs) -> User:
        user = User(
            email=kwargs.pop("email", f"user_{uuid4().hex[:8]}@example.com"),
            password_hash=_PASSWORD_HASH,
            name=kwargs.pop("name", "Test User"),
            timezone=tz,
            language=language,
            subscription_status=plan,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def test_user(make_user):
    return make_user()


@pytest.fixture
def make_activity(db_session):
    def _make(user: User, name: str = "Reading", goal_id=None) -> Activity:
        activity = Activity(user_id=user.id, name=name, color="#6366f1", goal_id=goal_id)
        db_session.add(activity)
        db_session.commit()
        db_session.refresh(activity)
        return activity

    return _make


@pytest.fixture
def make_ended_session(db_session):
    """Insert a finished session directly, bypassing the timer."""
    def _make(user: User, activity: Activity, start: datetime, duration: int, **kwargs) -> ActivitySession:
        from datetime import timedelta
        from services.time_utils import local_date

        session = ActivitySession(
            user_id=user.id,
            activity_id=activity.id,
            start_time=start,
            end_time=start + timedelta(seconds=duration),
            duration=duration,
            session_date=kwargs.pop("session_date", local_date(start, user.timezone)),
            status="ended",
            paused_seconds=0,
            **kwargs,
        )
        db_session.add(session)
        db_session.commit()
        db_session.refresh(session)
        return session

    return _make


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
