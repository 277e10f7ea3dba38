from __future__ import annotations

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from gatherly import database, storage
from gatherly.models import Base


def _patch_db(monkeypatch: pytest.MonkeyPatch, engine: Engine) -> None:
    monkeypatch.setattr(storage, "engine", engine)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "DATABASE_URL", str(engine.url))


def _get_version(engine: Engine) -> str | None:
    with engine.connect() as conn:
        try:
            return conn.execute(
                text("select version_num from alembic_version")
            ).scalar()
        except Exception:
            return None


def test_upgrade_database_stamps_existing_db(monkeypatch, tmp_path):
    db_path = tmp_path / "existing.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(bind=engine)  # existing schema without Alembic tracking
    _patch_db(monkeypatch, engine)

    actions = storage.upgrade_database(make_backup=False)

    assert "Stamped existing database to Alembic head" in actions
    assert _get_version(engine) == "0001_initial"


def test_upgrade_database_creates_fresh_schema(monkeypatch, tmp_path):
    db_path = tmp_path / "fresh.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine)

    actions = storage.upgrade_database(make_backup=False)

    assert "Ran Alembic upgrade to head (fresh database)" in actions
    assert _get_version(engine) == "0001_initial"
    inspector = inspect(engine)
    for table in ("users", "profiles", "events", "event_rsvps", "friendships", "invites"):
        assert inspector.has_table(table)
    assert "ix_friendships_user_high_id" in {
        index["name"] for index in inspector.get_indexes("friendships")
    }
    assert {"ck_event_rsvps_status", "ck_event_rsvps_visibility"} <= {
        check["name"] for check in inspector.get_check_constraints("event_rsvps")
    }


def test_upgrade_database_backs_up_and_is_repeatable(monkeypatch, tmp_path):
    db_path = tmp_path / "repeat.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine)
    storage.upgrade_database(make_backup=False)

    actions = storage.upgrade_database(make_backup=True)

    assert any(action.startswith("Backup created at") for action in actions)
    assert "Applied Alembic migrations to head" in actions
    assert (tmp_path / "repeat.sqlite.bak").exists()


def test_sqlite_file_path_follows_engine(monkeypatch, tmp_path):
    db_path = tmp_path / "located.sqlite"
    _patch_db(monkeypatch, create_engine(f"sqlite:///{db_path}", future=True))
    assert storage.sqlite_file_path() == db_path

    _patch_db(monkeypatch, create_engine("sqlite://", future=True))
    assert storage.sqlite_file_path() is None


def test_only_sqlite_gets_thread_sharing_connect_args():
    assert database.connect_args_for("sqlite:///gatherly.db") == {
        "check_same_thread": False
    }
    assert database.connect_args_for("sqlite+pysqlite:///:memory:") == {
        "check_same_thread": False
    }
    assert database.connect_args_for("postgresql://app:secret@db/gatherly") == {}
