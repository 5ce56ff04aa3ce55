"""
Tests for the AI reflection placeholder.

The Anthropic client is replaced with a recording fake; no network calls.
"""
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from conftest import auth_headers, utc
from models import SessionReflection
from services import reflection_placeholder as rp
from services.content_encryption import encrypt_text

NOTE = "今日は第三章の演習問題を最後まで解くことができた。明日は復習。"


class _FakeMessages:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


@pytest.fixture
def fake_client(monkeypatch):
    def _install(reply):
        client = SimpleNamespace(messages=_FakeMessages(reply))
        monkeypatch.setattr(rp, "get_anthropic_client", lambda: client)
        return client

    return _install


@pytest.fixture
def standard_user(make_user):
    return make_user(plan="standard", name="Taro")


@pytest.fixture
def reading(standard_user, make_activity):
    return make_activity(standard_user)


@pytest.fixture
def last_session(db_session, standard_user, reading, make_ended_session):
    session = make_ended_session(standard_user, reading, utc(2025, 1, 6, 1, 0), 2400, notes=NOTE)
    db_session.add(SessionReflection(
        session_id=session.id,
        user_id=standard_user.id,
        mood_score=3,
        mood_notes=encrypt_text("少し眠かったけれど集中できた時間もあった"),
    ))
    db_session.commit()
    return session


class TestDefaults:

    def test_by_history_size(self):
        assert rp.default_placeholder(0, None, "ja").startswith("最初の記録です")
        assert rp.default_placeholder(1, None, "en") == "Notice any differences from last time?"
        assert rp.default_placeholder(4, None, "en") == "Let's capture today's insights."

    def test_name_prefix(self):
        assert rp.default_placeholder(2, "Taro", "ja").startswith("Taroさん、")
        assert rp.default_placeholder(2, "Taro", "en").startswith("Taro, ")

    def test_unknown_language_is_japanese(self):
        assert rp.default_placeholder(0, None, "fr") == rp.default_placeholder(0, None, "ja")


class TestContext:

    def test_extract_keywords(self):
        assert rp.extract_keywords(NOTE) == ["今日は第三章の演習問題を最後まで解くことができた"]
        assert rp.extract_keywords(None) == []
        long_note = "。".join(["あ" * 40] * 5)
        assert rp.extract_keywords(long_note) == ["あ" * 30] * 3

    def test_duration_label(self):
        assert rp.duration_label(2400, "ja") == "40分"
        assert rp.duration_label(5400, "ja") == "1時間30分"
        assert rp.duration_label(5400, "en") == "1h 30m"

    def test_draft_has_history_but_no_comparison(self):
        history = [{"duration": 2400, "notes": NOTE, "mood": 3, "mood_notes": None}]
        context = rp.build_context(history, "Reading", None, "Taro", 5, 3600, True, "ja")

        assert context["generationType"] == "draft"
        assert context["sessionCount"] == 2
        assert context["previousMood"] == {"score": 3, "label": "ふつう"}
        assert context["previousDuration"]["displayText"] == "40分"
        assert context["previousNotes"]["keywords"] == rp.extract_keywords(NOTE)
        assert "previousMoodNotes" not in context
        assert "moodComparison" not in context
        assert "durationComparison" not in context

    def test_final_compares_with_last_time(self):
        history = [{"duration": 2400, "notes": None, "mood": 3, "mood_notes": None}]
        context = rp.build_context(history, "Reading", "Pass the exam", None, 4, 3600, False, "en")

        assert context["generationType"] == "final"
        assert context["goalTitle"] == "Pass the exam"
        assert context["moodComparison"]["trend"] == "improved"
        assert context["durationComparison"] == {
            "previous": 40,
            "current": 60,
            "differenceMinutes": 20,
            "trend": "longer",
            "trendText": "longer",
        }

    @pytest.mark.parametrize("current, trend", [(2400 + 300, "similar"), (2400 - 301, "shorter")])
    def test_duration_tolerance(self, current, trend):
        history = [{"duration": 2400, "notes": None, "mood": None, "mood_notes": None}]
        context = rp.build_context(history, "Reading", None, None, None, current, False, "ja")
        assert context["durationComparison"]["trend"] == trend
        assert "moodComparison" not in context

    def test_clean_reply(self):
        assert rp.clean_reply(" Taroさん、今日は\nどうでしたか。。 ") == "Taroさん、今日はどうでしたか。"


class TestGeneratePlaceholder:

    def test_first_session_skips_the_model(self, db_session, standard_user, reading, fake_client):
        client = fake_client("unused")
        text = rp.generate_placeholder(db_session, standard_user, reading.id)
        assert text == "Taroさん、最初の記録です。今日の取り組みについて、何か思ったことはありましたか？"
        assert client.messages.calls == []

    def test_draft_call_sends_decrypted_history(self, db_session, standard_user, reading, last_session, fake_client):
        client = fake_client("Taroさん、第三章の続きはどうでしたか？\n")
        text = rp.generate_placeholder(db_session, standard_user, reading.id, is_pre_generation=True)

        assert text == "Taroさん、第三章の続きはどうでしたか？"
        call = client.messages.calls[0]
        assert call["max_tokens"] == 200
        assert call["temperature"] == 0.8
        assert "Respond ONLY in Japanese" in call["system"]
        context = json.loads(call["messages"][0]["content"])
        assert context["previousMoodNotes"]["full"] == "少し眠かったけれど集中できた時間もあった"
        assert context["previousNotes"]["full"] == NOTE

    def test_final_uses_request_language(self, db_session, standard_user, reading, last_session, fake_client):
        client = fake_client("Taro, twenty minutes longer today, how did it go?")
        rp.generate_placeholder(
            db_session, standard_user, reading.id,
            current_mood=4, current_duration=3600, language="en",
        )
        call = client.messages.calls[0]
        assert call["max_tokens"] == 150
        assert "Respond ONLY in English" in call["system"]
        assert json.loads(call["messages"][0]["content"])["moodComparison"]["trend"] == "improved"

    def test_history_is_limited_to_the_goal(self, db_session, standard_user, reading, last_session, fake_client):
        from models import Goal

        goal = Goal(user_id=standard_user.id, title="Exam", target_duration=36000, status="active")
        db_session.add(goal)
        db_session.commit()
        client = fake_client("unused")

        text = rp.generate_placeholder(db_session, standard_user, reading.id, goal_id=goal.id)
        assert text.startswith("Taroさん、最初の記録です")
        assert client.messages.calls == []

    def test_api_error_falls_back(self, db_session, standard_user, reading, last_session, fake_client):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        fake_client(anthropic.APIStatusError("overloaded", response=httpx.Response(529, request=request), body=None))

        text = rp.generate_placeholder(db_session, standard_user, reading.id, language="en")
        assert text == "Taro, Notice any differences from last time?"

    def test_empty_reply_falls_back(self, db_session, standard_user, reading, last_session, fake_client):
        fake_client("  \n")
        assert rp.generate_placeholder(db_session, standard_user, reading.id) == "Taroさん、前回との違いなど、気づいたことはありますか？"

    def test_not_configured_falls_back(self, db_session, standard_user, reading, last_session, monkeypatch):
        monkeypatch.setattr(rp, "get_anthropic_client", lambda: None)
        assert rp.generate_placeholder(db_session, standard_user, reading.id).startswith("Taroさん、前回")


class TestPlaceholderApi:

    def test_returns_placeholder(self, client, standard_user, reading, last_session, fake_client):
        fake_client("Taroさん、今日はどこまで進みましたか？")
        resp = client.post(
            "/v1/sessions/placeholder",
            json={"activity_id": str(reading.id), "is_pre_generation": True},
            headers=auth_headers(standard_user),
        )
        assert resp.status_code == 200
        assert resp.json() == {"placeholder": "Taroさん、今日はどこまで進みましたか？"}

    def test_free_plan_is_gated(self, client, test_user, make_activity):
        resp = client.post(
            "/v1/sessions/placeholder",
            json={"activity_id": str(make_activity(test_user).id)},
            headers=auth_headers(test_user),
        )
        assert resp.status_code == 403
        assert resp.json()["error_code"] == "FEATURE_NOT_AVAILABLE"

    def test_unknown_activity(self, client, standard_user):
        resp = client.post(
            "/v1/sessions/placeholder",
            json={"activity_id": "00000000-0000-0000-0000-000000000000"},
            headers=auth_headers(standard_user),
        )
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "ACTIVITY_NOT_FOUND"

    def test_mood_out_of_range(self, client, standard_user, reading):
        resp = client.post(
            "/v1/sessions/placeholder",
            json={"activity_id": str(reading.id), "current_mood": 9},
            headers=auth_headers(standard_user),
        )
        assert resp.status_code == 422

    def test_uses_the_ai_rate_limit_bucket(self):
        from core.rate_limit import RateLimitMiddleware
        from main import app

        limiter = RateLimitMiddleware(app, ai_limit=2, general_limit=3)
        assert limiter._bucket_for("/v1/sessions/placeholder") == ("ai", 2)
