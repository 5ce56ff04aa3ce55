"""
Tests for the startup migration script.
"""
from pathlib import Path

import run_migrations
from core.config import settings


def test_success_creates_uploads_dir(monkeypatch):
    upgraded = []
    monkeypatch.setattr(run_migrations, "alembic_upgrade_head", lambda: upgraded.append(True))

    assert run_migrations.main() == 0
    assert upgraded == [True]
    assert Path(settings.UPLOADS_DIR).is_dir()


def test_database_never_ready(monkeypatch):
    monkeypatch.setattr(run_migrations, "check_db_connection", lambda: False)
    monkeypatch.setattr(run_migrations, "DB_WAIT_SECONDS", 0)
    monkeypatch.setattr(run_migrations, "alembic_upgrade_head", lambda: None)

    assert run_migrations.wait_for_database(attempts=3) is False
    assert run_migrations.main() == 1


def test_failed_upgrade_exits_non_zero(monkeypatch):
    def _fail():
        raise RuntimeError("revision not found")

    monkeypatch.setattr(run_migrations, "alembic_upgrade_head", _fail)
    assert run_migrations.main() == 1
