"""Database initialization and helpers."""

from __future__ import annotations

import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from .database import engine


def init_db() -> None:
    upgrade_database(make_backup=False)


def sqlite_file_path() -> Path | None:
    """File behind the engine, or ``None`` when it is not a SQLite file."""
    url = engine.url
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return None
    return Path(url.database)


def _alembic_config() -> Config:
    package_dir = Path(__file__).resolve().parent
    script_location = package_dir / "alembic"
    ini_path = script_location.parent / "alembic.ini"

    config = Config(str(ini_path)) if ini_path.exists() else Config()
    config.set_main_option("script_location", str(script_location))
    # ConfigParser interpolates "%", and str(url) would mask the password.
    url = engine.url.render_as_string(hide_password=False).replace("%", "%%")
    config.set_main_option("sqlalchemy.url", url)
    return config


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Upgrade the database schema in-place.

    Returns a list of applied actions.
    """
    actions: list[str] = []
    db_path = sqlite_file_path()

    if make_backup and db_path is not None and db_path.exists():
        backup_path = db_path.with_suffix(db_path.suffix + ".bak")
        shutil.copy(db_path, backup_path)
        actions.append(f"Backup created at {backup_path}")

    inspector = inspect(engine)
    has_alembic = inspector.has_table("alembic_version")
    has_events = inspector.has_table("events")
    config = _alembic_config()

    if not has_alembic and not has_events:
        command.upgrade(config, "head")
        actions.append("Ran Alembic upgrade to head (fresh database)")
    elif not has_alembic:
        # Tables created outside Alembic: baseline them.
        command.stamp(config, "head")
        actions.append("Stamped existing database to Alembic head")
    else:
        command.upgrade(config, "head")
        actions.append("Applied Alembic migrations to head")

    return actions
