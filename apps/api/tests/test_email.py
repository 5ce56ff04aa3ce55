"""
Tests for email templates and the send endpoint.
"""
import pytest

from conftest import auth_headers
from services.email_service import EmailService, category_for, email_service, fill, render_email


class TestTemplates:

    def test_japanese_welcome(self):
        rendered = render_email("welcome", "ja", {"first_name": "太郎"})
        assert rendered["subject"] == "Shoninへようこそ！"
        assert "<h1>太郎さん、Shoninへようこそ</h1>" in rendered["html"]
        assert rendered["text"].startswith("太郎さん、Shoninへようこそ")

    def test_english_upgrade(self):
        rendered = render_email("upgrade", "en", {"first_name": "Aki", "plan_name": "Premium"})
        assert rendered["subject"] == "Welcome to the Premium plan!"
        assert "Your upgrade to the Premium plan is complete." in rendered["text"]

    def test_defaults_fill_missing_values(self):
        assert render_email("welcome_back", "ja", {})["text"].startswith("ユーザーさん、おかえりなさい")
        assert render_email("welcome_back", "en", {"first_name": ""})["text"].startswith("Welcome back, there")

    def test_unknown_language_falls_back_to_japanese(self):
        assert render_email("goodbye", "fr")["subject"] == "ご利用ありがとうございました"

    def test_downgrade_scheduled(self):
        rendered = render_email(
            "downgrade_scheduled",
            "en",
            {"plan_name": "Free", "current_plan_name": "Standard", "change_date": "2026-01-01"},
        )
        assert "Your plan will change to Free on 2026-01-01." in rendered["text"]
        assert "current Standard plan" in rendered["text"]

    def test_user_values_are_escaped_in_html(self):
        rendered = render_email("welcome", "en", {"first_name": "<b>x</b>"})
        assert "<b>x</b>" not in rendered["html"]
        assert "&lt;b&gt;x&lt;/b&gt;" in rendered["html"]

    def test_fill_leaves_unknown_placeholders(self):
        assert fill("{a} and {b}", {"a": "1"}) == "1 and {b}"

    def test_categories(self):
        assert category_for("welcome") == "auth"
        assert category_for("downgrade_scheduled") == "subscription"
        with pytest.raises(ValueError):
            category_for("newsletter")
        with pytest.raises(ValueError):
            render_email("newsletter", "en")


class TestSending:

    def test_disabled_service_does_not_send(self):
        service = EmailService()
        service.enabled = False
        assert service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False

    def test_missing_recipient(self):
        service = EmailService()
        service.enabled = True
        assert service.send_email("", "Hi", "<p>Hi</p>") is False

    def test_without_smtp_credentials_only_logs(self, monkeypatch):
        service = EmailService()
        service.enabled = True
        service.smtp_username = None

        def _no_smtp(*args, **kwargs):
            raise AssertionError("SMTP must not be used without credentials")

        monkeypatch.setattr("services.email_service.smtplib.SMTP", _no_smtp)
        assert service.send_email("a@example.com", "Hi", "<p>Hi</p>", "Hi") is True

    def test_smtp_failure_returns_false(self, monkeypatch):
        service = EmailService()
        service.enabled = True
        service.smtp_username, service.smtp_password = "user", "pass"

        def _refuse(*args, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr("services.email_service.smtplib.SMTP", _refuse)
        assert service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False


class TestSendEndpoint:

    def test_send_uses_profile_defaults(self, client, make_user, monkeypatch):
        user = make_user(language="en", name="Aki")
        sent = []
        monkeypatch.setattr(email_service, "send_templated", lambda *args, **kwargs: sent.append(args) or True)

        resp = client.post("/v1/email/send", json={"type": "welcome_back"}, headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "category": "auth", "type": "welcome_back"}
        assert sent == [(user.email, "welcome_back", "en", {"first_name": "Aki"})]

    def test_explicit_language_and_data(self, client, test_user, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "send_templated", lambda *args, **kwargs: sent.append(args) or True)

        client.post(
            "/v1/email/send",
            json={"type": "upgrade", "language": "en", "data": {"plan_name": "Premium"}},
            headers=auth_headers(test_user),
        )
        _, _, lang, data = sent[0]
        assert lang == "en"
        assert data["plan_name"] == "Premium"

    def test_disabled_email_reports_failure(self, client, test_user):
        resp = client.post("/v1/email/send", json={"type": "welcome"}, headers=auth_headers(test_user))
        assert resp.status_code == 200
        assert resp.json()["success"] is False

    def test_unknown_type(self, client, test_user):
        resp = client.post("/v1/email/send", json={"type": "newsletter"}, headers=auth_headers(test_user))
        assert resp.status_code == 422

    def test_requires_auth(self, client):
        assert client.post("/v1/email/send", json={"type": "welcome"}).status_code == 401
