"""
Tests for AI feedback generation, retries, fallbacks, batch runs and the
feedback API. Claude is replaced by a scripted fake client.
"""
import json
from datetime import date, datetime, timezone
from types import SimpleNamespace

import anthropic
import httpx
import pytest
from celery.exceptions import SoftTimeLimitExceeded

from conftest import auth_headers
from models import AiFeedback
from services import ai_feedback
from services.content_encryption import decrypt_text, encrypt_text
from services.session_analyzer import SessionRecord, analyze_sessions
from services.time_utils import today_in

WEEK_START, WEEK_END = date(2025, 1, 6), date(2025, 1, 12)
RUN_DAY = date(2025, 1, 15)


class _FakeMessages:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=reply)])


class _FakeClient:
    def __init__(self, *replies):
        self.messages = _FakeMessages(replies)


def _reply(overview: str) -> str:
    # The request prefills the assistant turn with "{".
    return json.dumps({"overview": overview}, ensure_ascii=False)[1:]


def _status_error(code: int) -> anthropic.APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(code, request=request)
    return anthropic.APIStatusError("error", response=response, body=None)


def _analyzed(period_type="weekly"):
    records = [
        SessionRecord(
            duration=3600,
            session_date=date(2025, 1, 7),
            start_time=datetime(2025, 1, 6, 23, 0, tzinfo=timezone.utc),
            activity_name="Reading",
            mood=4,
            mood_notes="Felt calm",
        )
    ]
    return analyze_sessions(records, period_type, WEEK_START, WEEK_END, "Asia/Tokyo")


@pytest.fixture
def fake_client(monkeypatch):
    def _install(*replies):
        client = _FakeClient(*replies)
        monkeypatch.setattr(ai_feedback, "get_anthropic_client", lambda: client)
        return client

    return _install


class TestParseReply:

    def test_valid_json(self):
        assert ai_feedback.parse_reply('"overview": "Good week."}') == {"overview": "Good week."}

    def test_invalid_json_keeps_text(self):
        result = ai_feedback.parse_reply("not json at all")
        assert result["error"] == "format_error"
        assert result["overview"] == "{not json at all"


class TestGenerateFeedback:

    def test_success_uses_prefill_and_model(self, fake_client):
        client = fake_client(_reply("You showed up every day."))
        result, tone_id = ai_feedback.generate_feedback(_analyzed(), "en")

        assert result == {"overview": "You showed up every day."}
        assert tone_id is not None
        call = client.messages.calls[0]
        assert call["messages"][-1] == {"role": "assistant", "content": "{"}
        assert call["max_tokens"] == 600
        assert "Write the feedback in English." in call["system"]

    def test_rate_limit_returns_fallback(self, fake_client):
        fake_client(_status_error(429))
        result, _ = ai_feedback.generate_feedback(_analyzed(), "ja")
        assert result["error"] == "rate_limit"
        assert result["overview"].startswith("先週")

    def test_api_error_returns_fallback(self, fake_client):
        fake_client(_status_error(500))
        result, _ = ai_feedback.generate_feedback(_analyzed("monthly"), "ja")
        assert result["error"] == "api_error"
        assert "先月" in result["overview"]

    def test_empty_reply(self, fake_client):
        fake_client("   ")
        result, _ = ai_feedback.generate_feedback(_analyzed(), "en")
        assert result["error"] == "empty"
        assert result["overview"] == "Take your time, no pressure."

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(ai_feedback, "get_anthropic_client", lambda: None)
        result, _ = ai_feedback.generate_feedback(_analyzed(), "en")
        assert result["error"] == "not_configured"


class TestRetry:

    def test_retries_while_too_long_and_keeps_tone(self, fake_client):
        client = fake_client(_reply("あ" * 600), _reply("短いフィードバック。"))
        result, tone_id = ai_feedback.generate_with_retry(_analyzed(), "ja")

        assert result == {"overview": "短いフィードバック。"}
        assert len(client.messages.calls) == 2
        first, second = (c["system"] for c in client.messages.calls)
        lens = ai_feedback.FEEDBACK_TONES[tone_id].name
        assert f"This week's lens: {lens}." in first
        assert f"This week's lens: {lens}." in second
        # the retry asks for a shorter text
        assert "about 200 characters" in first
        assert "about 180 characters" in second

    def test_gives_up_after_max_attempts(self, fake_client):
        client = fake_client(_reply("a" * 2000))
        result, _ = ai_feedback.generate_with_retry(_analyzed(), "en")
        assert len(client.messages.calls) == 3
        assert len(result["overview"]) == 2000

    def test_rate_limit_is_not_retried(self, fake_client):
        client = fake_client(_status_error(429))
        ai_feedback.generate_with_retry(_analyzed(), "ja")
        assert len(client.messages.calls) == 1


class TestBatch:

    def test_generate_for_all_users(self, db_session, make_user, make_activity, make_ended_session, fake_client):
        fake_client(_reply("A steady week."))
        free = make_user(plan="free")
        standard = make_user(plan="standard")
        idle = make_user(plan="premium")
        for user in (free, standard):
            make_ended_session(
                user, make_activity(user), datetime(2025, 1, 8, 1, 0, tzinfo=timezone.utc), 1800
            )

        results = ai_feedback.generate_for_all_users(db_session, "weekly", today=RUN_DAY)
        assert results == {"total": 3, "success": 1, "skipped": 2, "failed": 0, "errors": [], "timed_out": False}

        row = db_session.query(AiFeedback).one()
        assert row.user_id == standard.id
        assert (row.period_start, row.period_end) == (WEEK_START, WEEK_END)
        assert row.tone in ai_feedback.FEEDBACK_TONES
        assert json.loads(decrypt_text(row.content)) == {"overview": "A steady week."}
        assert idle.id != row.user_id

        again = ai_feedback.generate_for_all_users(db_session, "weekly", today=RUN_DAY)
        assert again["success"] == 0
        assert again["skipped"] == 3

    def test_one_failure_does_not_stop_the_batch(self, db_session, make_user, make_activity, make_ended_session, monkeypatch):
        for _ in range(2):
            user = make_user(plan="standard")
            make_ended_session(user, make_activity(user), datetime(2025, 1, 8, 1, 0, tzinfo=timezone.utc), 1800)

        def _boom(*args, **kwargs):
            raise RuntimeError("model exploded")

        monkeypatch.setattr(ai_feedback, "generate_with_retry", _boom)
        results = ai_feedback.generate_for_all_users(db_session, "weekly", today=RUN_DAY)
        assert results["failed"] == 2
        assert len(results["errors"]) == 2
        assert "model exploded" in results["errors"][0]

    def test_soft_time_limit_ends_the_batch(self, db_session, make_user, make_activity, make_ended_session, monkeypatch):
        for _ in range(2):
            user = make_user(plan="standard")
            make_ended_session(user, make_activity(user), datetime(2025, 1, 8, 1, 0, tzinfo=timezone.utc), 1800)

        calls = []

        def _out_of_time(*args, **kwargs):
            calls.append(args)
            raise SoftTimeLimitExceeded()

        monkeypatch.setattr(ai_feedback, "generate_for_user", _out_of_time)
        results = ai_feedback.generate_for_all_users(db_session, "weekly", today=RUN_DAY)
        assert len(calls) == 1
        assert results["timed_out"] is True
        assert results["failed"] == 0
        assert results["errors"] == []

    def test_unknown_type(self, db_session):
        with pytest.raises(ValueError):
            ai_feedback.generate_for_all_users(db_session, "daily")

    def test_monthly_period(self, db_session, make_user, make_activity, make_ended_session, fake_client):
        fake_client(_reply("A full month."))
        user = make_user(plan="premium")
        make_ended_session(user, make_activity(user), datetime(2024, 12, 20, 1, 0, tzinfo=timezone.utc), 3600)

        results = ai_feedback.generate_for_all_users(db_session, "monthly", today=date(2025, 1, 1))
        assert results["success"] == 1
        row = db_session.query(AiFeedback).one()
        assert (row.period_start, row.period_end) == (date(2024, 12, 1), date(2024, 12, 31))
        assert row.tone is None


def _store_feedback(db_session, user, feedback_type="weekly", overview="Well done.", period=None):
    start, end = period or ai_feedback.period_for(feedback_type, today_in(user.timezone))
    row = AiFeedback(
        user_id=user.id,
        feedback_type=feedback_type,
        content=encrypt_text(json.dumps({"overview": overview})),
        period_start=start,
        period_end=end,
    )
    db_session.add(row)
    db_session.commit()
    return row


class TestFeedbackApi:

    def test_current_requires_paid_plan(self, client, test_user):
        resp = client.get("/v1/feedback/current", headers=auth_headers(test_user))
        assert resp.status_code == 403
        assert resp.json()["error_code"] == "FEATURE_NOT_AVAILABLE"

    def test_current_when_nothing_generated(self, client, make_user):
        resp = client.get("/v1/feedback/current?type=weekly", headers=auth_headers(make_user(plan="standard")))
        assert resp.status_code == 200
        assert resp.json()["feedback"] is None
        assert resp.json()["is_existing"] is False

    def test_current_returns_latest_period(self, client, make_user, db_session):
        user = make_user(plan="standard")
        _store_feedback(db_session, user, overview="Quiet progress.")

        body = client.get("/v1/feedback/current?type=weekly", headers=auth_headers(user)).json()
        assert body["feedback"] == "Quiet progress."
        assert body["period_type"] == "weekly"
        assert body["is_existing"] is True

    def test_current_for_explicit_period(self, client, make_user, db_session):
        user = make_user(plan="standard")
        _store_feedback(db_session, user, "monthly", "Old month.", period=(date(2024, 11, 1), date(2024, 11, 30)))

        resp = client.get(
            "/v1/feedback/current?type=monthly&period_start=2024-11-01&period_end=2024-11-30",
            headers=auth_headers(user),
        )
        assert resp.json()["feedback"] == "Old month."

    def test_list_and_read_tracking(self, client, make_user, db_session):
        user = make_user(plan="standard")
        headers = auth_headers(user)
        first = _store_feedback(db_session, user, period=(date(2025, 1, 6), date(2025, 1, 12)))
        _store_feedback(db_session, user, period=(date(2025, 1, 13), date(2025, 1, 19)))

        listed = client.get("/v1/feedback", headers=headers).json()
        assert len(listed) == 2
        assert listed[0]["content"] == "Well done."
        assert client.get("/v1/feedback/unread-count", headers=headers).json() == {"count": 2}

        resp = client.post(f"/v1/feedback/{first.id}/read", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["is_read"] is True
        assert client.get("/v1/feedback/unread-count", headers=headers).json() == {"count": 1}

        assert client.post("/v1/feedback/read-all", headers=headers).json() == {"count": 1}
        assert client.get("/v1/feedback/unread-count", headers=headers).json() == {"count": 0}

    def test_cannot_read_someone_elses_feedback(self, client, make_user, db_session):
        owner = make_user(plan="standard")
        row = _store_feedback(db_session, owner)
        resp = client.post(f"/v1/feedback/{row.id}/read", headers=auth_headers(make_user(plan="standard")))
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "AI_FEEDBACK_FETCH_FAILED"
