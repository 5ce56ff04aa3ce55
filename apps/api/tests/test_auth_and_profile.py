"""
Tests for registration, login lockout, JWT handling and the profile API.
"""
from datetime import timedelta

from jose import jwt

from conftest import TEST_PASSWORD, auth_headers
from core.config import settings
from core.security import create_access_token, decode_access_token, get_password_hash, verify_password
from models import Activity, User
from services.email_service import email_service


class TestPasswordAndTokens:

    def test_password_hash_round_trip(self):
        hashed = get_password_hash("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_long_passwords_hash(self):
        password = "長い" * 40
        hashed = get_password_hash(password)
        assert verify_password(password, hashed) is True

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_token_claims(self):
        payload = decode_access_token(create_access_token({"sub": "abc"}))
        assert payload["sub"] == "abc"
        assert payload["typ"] == "access"
        assert payload["exp"] > payload["iat"]

    def test_foreign_token_type_is_rejected(self):
        token = jwt.encode({"sub": "abc", "typ": "refresh"}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        assert decode_access_token(token) is None

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "abc"}, expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None

    def test_garbage_token_is_rejected(self, client):
        resp = client.get("/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error_code"] == "AUTH_REQUIRED"


class TestRegister:

    def test_register_returns_token_and_sends_welcome(self, client, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "send_templated", lambda *args, **kwargs: sent.append(args) or True)

        resp = client.post(
            "/v1/auth/register",
            json={"email": "New@Example.com", "password": "long-enough-pw", "language": "en"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "new@example.com"
        assert body["user"]["name"] == "new"
        assert body["user"]["timezone"] == "Asia/Tokyo"
        assert body["user"]["subscription_status"] == "free"
        assert sent == [("new@example.com", "welcome", "en", {"first_name": "new"})]

        me = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "new@example.com"

    def test_duplicate_email(self, client, test_user):
        resp = client.post("/v1/auth/register", json={"email": test_user.email, "password": "long-enough-pw"})
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "AUTH_FAILED"

    def test_unknown_timezone(self, client):
        resp = client.post(
            "/v1/auth/register",
            json={"email": "tz@example.com", "password": "long-enough-pw", "timezone": "Mars/Olympus"},
        )
        assert resp.status_code == 422

    def test_short_password(self, client):
        resp = client.post("/v1/auth/register", json={"email": "short@example.com", "password": "short"})
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"


class TestLogin:

    def test_login_success(self, client, test_user):
        resp = client.post("/v1/auth/login", json={"email": test_user.email.upper(), "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == str(test_user.id)

    def test_wrong_password(self, client, test_user):
        resp = client.post("/v1/auth/login", json={"email": test_user.email, "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.json()["error_code"] == "AUTH_FAILED"

    def test_lockout_after_five_failures(self, client, test_user):
        for _ in range(5):
            client.post("/v1/auth/login", json={"email": test_user.email, "password": "nope-nope"})

        resp = client.post("/v1/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 423
        assert resp.json()["error_code"] == "AUTH_FAILED"
        assert int(resp.headers["Retry-After"]) > 0

    def test_success_clears_failures(self, client, test_user):
        for _ in range(4):
            client.post("/v1/auth/login", json={"email": test_user.email, "password": "nope-nope"})
        assert client.post("/v1/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}).status_code == 200

        client.post("/v1/auth/login", json={"email": test_user.email, "password": "nope-nope"})
        assert client.post("/v1/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}).status_code == 200


class TestProfile:

    def test_get_and_update(self, client, test_user):
        headers = auth_headers(test_user)
        assert client.get("/v1/profile", headers=headers).json()["name"] == "Test User"

        resp = client.patch(
            "/v1/profile",
            json={"name": "Aki", "timezone": "Europe/Berlin", "language": "en"},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Aki"
        assert body["timezone"] == "Europe/Berlin"
        assert body["language"] == "en"

    def test_invalid_timezone(self, client, test_user):
        resp = client.patch("/v1/profile", json={"timezone": "Nowhere/Land"}, headers=auth_headers(test_user))
        assert resp.status_code == 422

    def test_invalid_language(self, client, test_user):
        resp = client.patch("/v1/profile", json={"language": "fr"}, headers=auth_headers(test_user))
        assert resp.status_code == 422

    def test_delete_account_cascades(self, client, test_user, make_activity, db_session, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "send_templated", lambda *args, **kwargs: sent.append(args) or True)
        make_activity(test_user)
        headers = auth_headers(test_user)

        assert client.delete("/v1/profile", headers=headers).status_code == 204

        db_session.expire_all()
        assert db_session.query(User).count() == 0
        assert db_session.query(Activity).count() == 0
        assert sent[0][1] == "goodbye"
        assert client.get("/v1/profile", headers=headers).status_code == 401
