"""SQLAlchemy models for Gatherly."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

RSVP_INTERESTED = "INTERESTED"
RSVP_GOING = "GOING"
RSVP_MAYBE = "MAYBE"
RSVP_INVITED = "INVITED"
RSVP_HIDDEN = "HIDDEN"
RSVP_STATUSES = {RSVP_INTERESTED, RSVP_GOING, RSVP_MAYBE, RSVP_INVITED, RSVP_HIDDEN}
ACCEPTED_RSVP_STATUSES = {RSVP_INTERESTED, RSVP_GOING}

VISIBILITY_PUBLIC = "PUBLIC"
VISIBILITY_FRIENDS_ONLY = "FRIENDS_ONLY"
VISIBILITY_PRIVATE = "PRIVATE"
RSVP_VISIBILITIES = {VISIBILITY_PUBLIC, VISIBILITY_FRIENDS_ONLY, VISIBILITY_PRIVATE}

FRIENDSHIP_PENDING = "PENDING"
FRIENDSHIP_ACCEPTED = "ACCEPTED"
FRIENDSHIP_STATUSES = {FRIENDSHIP_PENDING, FRIENDSHIP_ACCEPTED}


def _one_of(column: str, values: set[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in sorted(values))
    return f"{column} IN ({quoted})"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=True, unique=True)
    access_token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    profile = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    username = Column(String(30), nullable=True, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=True)

    user = relationship("User", back_populates="profile")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=True)
    organizer_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    organizer_name = Column(String(255), nullable=True)
    url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    rsvps = relationship("EventRSVP", back_populates="event", cascade="all, delete-orphan")


class EventRSVP(Base):
    __tablename__ = "event_rsvps"
    __table_args__ = (
        CheckConstraint(_one_of("status", RSVP_STATUSES), name="ck_event_rsvps_status"),
        CheckConstraint(
            _one_of("visibility", RSVP_VISIBILITIES), name="ck_event_rsvps_visibility"
        ),
    )

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    status = Column(String(16), nullable=False)
    visibility = Column(String(16), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="rsvps")


class Friendship(Base):
    """One edge per pair of users, keyed by the ordered pair of ids."""

    __tablename__ = "friendships"
    __table_args__ = (
        CheckConstraint("user_low_id < user_high_id", name="ck_friendships_ordered_pair"),
        CheckConstraint(_one_of("status", FRIENDSHIP_STATUSES), name="ck_friendships_status"),
        Index("ix_friendships_user_high_id", "user_high_id"),
    )

    user_low_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    user_high_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    requested_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False, default=FRIENDSHIP_PENDING)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    def other(self, user_id: str) -> str:
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id


class Invite(Base):
    __tablename__ = "invites"

    code = Column(String(64), primary_key=True)
    inviter_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
