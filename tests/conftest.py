"""Shared pytest fixtures for Gatherly."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gatherly import crud, database, storage
from gatherly.datastore import DataStore
from gatherly.models import FRIENDSHIP_ACCEPTED, Base, Event, User
from gatherly.rsvp import visibility_for_status
from gatherly.utils import utcnow


@pytest.fixture(scope="session", autouse=True)
def configure_test_db(tmp_path_factory):
    """Point the app at a throwaway SQLite file.

    A file rather than ``:memory:`` so worker threads used by the feed each
    get their own connection to the same data.
    """

    db_path = tmp_path_factory.mktemp("db") / "gatherly-test.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def store() -> DataStore:
    return DataStore(database.SessionLocal)


@pytest.fixture()
def make_user():
    """Create a user (and a profile when any name is given); return its id and token."""

    def factory(
        *,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
    ) -> tuple[str, str]:
        with database.get_session() as session:
            user = crud.create_user(session, email=email)
            if username or first_name or last_name:
                crud.save_profile(
                    session,
                    user,
                    username=username,
                    first_name=first_name,
                    last_name=last_name,
                )
            return user.id, user.access_token

    return factory


@pytest.fixture()
def make_event():
    """Create an event starting ``hours`` from now; return its id."""

    def factory(
        title: str = "Event",
        *,
        hours: float = 24,
        organizer_id: str | None = None,
        organizer_name: str | None = None,
    ) -> str:
        with database.get_session() as session:
            organizer = session.get(User, organizer_id) if organizer_id else None
            event = crud.create_event(
                session,
                title=title,
                start_time=utcnow() + timedelta(hours=hours),
                location="Somewhere",
                organizer=organizer,
                organizer_name=organizer_name,
            )
            return event.id

    return factory


@pytest.fixture()
def rsvp():
    """Record an RSVP directly, bypassing the managers."""

    def factory(
        user_id: str,
        event_id: str,
        status: str,
        *,
        visibility: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        with database.get_session() as session:
            crud.set_rsvp(
                session,
                user=session.get(User, user_id),
                event=session.get(Event, event_id),
                status=status,
                visibility=visibility or visibility_for_status(status),
                created_at=created_at,
            )

    return factory


@pytest.fixture()
def befriend():
    """Store a friendship edge requested by ``requester_id``."""

    def factory(requester_id: str, target_id: str, *, status: str = FRIENDSHIP_ACCEPTED) -> None:
        with database.get_session() as session:
            crud.link_friends(
                session,
                session.get(User, requester_id),
                session.get(User, target_id),
                status=status,
            )

    return factory
