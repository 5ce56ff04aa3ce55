"""
Tests for post-session reflections (encrypted at rest) and session photos.
"""
from datetime import timedelta

import pytest

from conftest import auth_headers
from core.config import settings
from models import SessionMedia, SessionReflection
from services.time_utils import utcnow

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def ended_session(test_user, make_activity, make_ended_session):
    return make_ended_session(test_user, make_activity(test_user), utcnow() - timedelta(minutes=5), 1200)


class TestReflections:

    def test_create_then_update(self, client, test_user, ended_session):
        headers = auth_headers(test_user)
        url = f"/v1/sessions/{ended_session.id}/reflection"

        resp = client.put(url, json={"mood_score": 4, "mood_notes": "Calm and focused"}, headers=headers)
        assert resp.status_code == 201
        assert resp.json()["mood_notes"] == "Calm and focused"

        resp = client.put(url, json={"mood_score": 2, "additional_notes": "Tired later"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["mood_score"] == 2
        assert resp.json()["mood_notes"] is None
        assert resp.json()["additional_notes"] == "Tired later"

        assert client.get(url, headers=headers).json()["mood_score"] == 2
        assert client.get(f"/v1/sessions/{ended_session.id}", headers=headers).json()["mood_score"] == 2

    def test_notes_are_encrypted_at_rest(self, client, test_user, ended_session, db_session):
        client.put(
            f"/v1/sessions/{ended_session.id}/reflection",
            json={"mood_score": 5, "mood_notes": "A private thought"},
            headers=auth_headers(test_user),
        )
        db_session.expire_all()
        row = db_session.query(SessionReflection).one()
        assert row.mood_notes is not None
        assert "private" not in row.mood_notes

    def test_mood_out_of_range(self, client, test_user, ended_session):
        resp = client.put(
            f"/v1/sessions/{ended_session.id}/reflection",
            json={"mood_score": 6},
            headers=auth_headers(test_user),
        )
        assert resp.status_code == 422

    def test_missing_reflection_is_404(self, client, test_user, ended_session):
        resp = client.get(f"/v1/sessions/{ended_session.id}/reflection", headers=auth_headers(test_user))
        assert resp.status_code == 404

    def test_reflection_removed_with_session(self, client, test_user, ended_session, db_session):
        headers = auth_headers(test_user)
        client.put(f"/v1/sessions/{ended_session.id}/reflection", json={"mood_score": 3}, headers=headers)
        client.delete(f"/v1/sessions/{ended_session.id}", headers=headers)

        db_session.expire_all()
        assert db_session.query(SessionReflection).count() == 0


class TestMedia:

    def test_upload_list_download_delete(self, client, test_user, ended_session):
        headers = auth_headers(test_user)
        base = f"/v1/sessions/{ended_session.id}/media"

        resp = client.post(
            base,
            files={"file": ("view.png", PNG_BYTES, "image/png")},
            data={"caption": "Desk", "is_main_image": "true"},
            headers=headers,
        )
        assert resp.status_code == 201
        media = resp.json()
        assert media["mime_type"] == "image/png"
        assert media["file_size"] == len(PNG_BYTES)
        assert media["is_main_image"] is True
        assert media["public_url"] == f"{base}/{media['id']}/file"

        assert [m["id"] for m in client.get(base, headers=headers).json()] == [media["id"]]

        download = client.get(media["public_url"], headers=headers)
        assert download.status_code == 200
        assert download.content == PNG_BYTES

        assert client.delete(f"{base}/{media['id']}", headers=headers).status_code == 204
        assert client.get(base, headers=headers).json() == []

    def test_only_one_main_image(self, client, test_user, ended_session, db_session):
        headers = auth_headers(test_user)
        base = f"/v1/sessions/{ended_session.id}/media"
        for name in ("a.png", "b.png"):
            client.post(
                base,
                files={"file": (name, PNG_BYTES, "image/png")},
                data={"is_main_image": "true"},
                headers=headers,
            )

        db_session.expire_all()
        mains = db_session.query(SessionMedia).filter(SessionMedia.is_main_image.is_(True)).all()
        assert [m.file_name for m in mains] == ["b.png"]

    def test_rejects_non_images(self, client, test_user, ended_session):
        resp = client.post(
            f"/v1/sessions/{ended_session.id}/media",
            files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
            headers=auth_headers(test_user),
        )
        assert resp.status_code == 400
        assert resp.json()["error_code"] == "MEDIA_INVALID_TYPE"

    def test_rejects_oversized_file(self, client, test_user, ended_session, monkeypatch):
        monkeypatch.setattr(settings, "MEDIA_MAX_BYTES", 16)
        resp = client.post(
            f"/v1/sessions/{ended_session.id}/media",
            files={"file": ("big.png", PNG_BYTES, "image/png")},
            headers=auth_headers(test_user),
        )
        assert resp.status_code == 413
        assert resp.json()["error_code"] == "MEDIA_TOO_LARGE"

    def test_other_user_cannot_upload(self, client, make_user, ended_session):
        resp = client.post(
            f"/v1/sessions/{ended_session.id}/media",
            files={"file": ("x.png", PNG_BYTES, "image/png")},
            headers=auth_headers(make_user()),
        )
        assert resp.status_code == 404

    def test_failure_after_write_leaves_no_file(self, test_user, ended_session, db_session, monkeypatch):
        from pathlib import Path

        from fastapi.testclient import TestClient

        from conftest import TEST_ORIGIN
        from main import app
        from services import media_storage

        def _fail(*args, **kwargs):
            raise OSError("disk full")

        # Runs after the bytes are on disk, before the row is committed.
        monkeypatch.setattr(media_storage, "clean_text", _fail)
        client = TestClient(app, raise_server_exceptions=False, headers={"Origin": TEST_ORIGIN})

        resp = client.post(
            f"/v1/sessions/{ended_session.id}/media",
            files={"file": ("view.png", PNG_BYTES, "image/png")},
            headers=auth_headers(test_user),
        )
        assert resp.status_code == 500
        assert [p for p in Path(settings.UPLOADS_DIR).rglob("*") if p.is_file()] == []
        db_session.expire_all()
        assert db_session.query(SessionMedia).count() == 0
