"""Session-level helpers for users, profiles and events.

These write directly through a session and are used by the CLI, the seeder
and tests. Request handling goes through ``DataStore`` instead.
"""

from __future__ import annotations

import secrets
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Event, EventRSVP, Friendship, Profile, User
from .procedures import ordered_pair
from .utils import utcnow


def new_access_token() -> str:
    return secrets.token_urlsafe(32)


def create_user(session: Session, *, email: str | None = None) -> User:
    normalized = (email or "").strip().lower() or None
    if normalized and session.scalar(select(User).where(User.email == normalized)):
        raise ValueError("A user with that email already exists")
    user = User(email=normalized, access_token=new_access_token(), created_at=utcnow())
    session.add(user)
    session.flush()
    return user


def get_user(session: Session, user_ref: str) -> User | None:
    """Look a user up by id or email."""
    user = session.get(User, user_ref)
    if user:
        return user
    return session.scalar(select(User).where(User.email == user_ref.strip().lower()))


def rotate_access_token(session: Session, user: User) -> str:
    user.access_token = new_access_token()
    session.add(user)
    session.flush()
    return user.access_token


def save_profile(
    session: Session,
    user: User,
    *,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    avatar_url: str | None = None,
    bio: str | None = None,
) -> Profile:
    profile = session.get(Profile, user.id) or Profile(id=user.id)
    profile.username = username
    profile.first_name = first_name
    profile.last_name = last_name
    profile.avatar_url = avatar_url
    profile.bio = bio
    profile.updated_at = utcnow()
    session.add(profile)
    session.flush()
    return profile


def create_event(
    session: Session,
    *,
    title: str,
    start_time: datetime,
    description: str | None = None,
    location: str | None = None,
    end_time: datetime | None = None,
    organizer: User | None = None,
    organizer_name: str | None = None,
    url: str | None = None,
) -> Event:
    if end_time and end_time <= start_time:
        raise ValueError("End time must be after the start time")
    event = Event(
        title=title,
        description=description,
        location=location,
        start_time=start_time,
        end_time=end_time,
        organizer_id=organizer.id if organizer else None,
        organizer_name=organizer_name,
        url=url,
        created_at=utcnow(),
    )
    session.add(event)
    session.flush()
    return event


def set_rsvp(
    session: Session,
    *,
    user: User,
    event: Event,
    status: str,
    visibility: str,
    created_at: datetime | None = None,
) -> EventRSVP:
    now = utcnow()
    rsvp = session.get(EventRSVP, (user.id, event.id))
    if rsvp is None:
        rsvp = EventRSVP(user_id=user.id, event_id=event.id, created_at=created_at or now)
    rsvp.status = status
    rsvp.visibility = visibility
    rsvp.updated_at = now
    session.add(rsvp)
    session.flush()
    return rsvp


def link_friends(
    session: Session, requester: User, target: User, *, status: str
) -> Friendship:
    low, high = ordered_pair(requester.id, target.id)
    edge = session.get(Friendship, (low, high)) or Friendship(
        user_low_id=low, user_high_id=high
    )
    edge.requested_by = requester.id
    edge.status = status
    session.add(edge)
    session.flush()
    return edge
