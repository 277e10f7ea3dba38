"""Data-access layer.

``DataStore`` is the only component that talks to the database. Managers
receive one as an explicit handle. Every public method captures database
failures, logs them, and hands back an empty default (``[]``, ``None``,
``0`` or ``False``) so callers never see a raised database error.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, TypeVar

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ProcedureError
from .models import (
    ACCEPTED_RSVP_STATUSES,
    FRIENDSHIP_ACCEPTED,
    VISIBILITY_PUBLIC,
    Event,
    EventRSVP,
    Friendship,
    Profile,
    User,
)
from .procedures import PROCEDURES, friend_ids_clause
from .schemas import EventCard, FriendshipRow, PersonSummary, ProfileRecord
from .utils import display_name, format_event_time, utcnow

logger = logging.getLogger(__name__)

SEARCHABLE_PROFILE_FIELDS = ("username", "first_name", "last_name")
RPC_FAILURE_MESSAGE = "The request could not be completed. Please try again."

_LIKE_SPECIAL = re.compile(r"[\\%_]")

T = TypeVar("T")


@dataclass(frozen=True)
class RpcResult:
    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _captured(default: Callable[[], Any]):
    """Log database failures and return ``default()`` instead of raising."""

    def decorator(method: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except SQLAlchemyError:
                logger.exception("Data store call %s failed", method.__name__)
                return default()

        return wrapper

    return decorator


def _profile_record(profile: Profile) -> ProfileRecord:
    return ProfileRecord(
        id=profile.id,
        username=profile.username,
        first_name=profile.first_name,
        last_name=profile.last_name,
        avatar_url=profile.avatar_url,
        bio=profile.bio,
        updated_at=profile.updated_at,
    )


def _person(user_id: str, profile: Profile | None) -> PersonSummary:
    return PersonSummary(
        id=user_id,
        name=display_name(profile),
        avatar_url=profile.avatar_url if profile else None,
    )


def project_friendship_rows(edges: Iterable[Friendship]) -> list[FriendshipRow]:
    """Expand stored edges into the directional one-row-per-side view.

    An accepted edge yields a row for each side. A pending edge yields only
    the requester's row.
    """
    rows: list[FriendshipRow] = []
    for edge in edges:
        requester = edge.requested_by
        other = edge.other(requester)
        rows.append(FriendshipRow(user_id=requester, friend_id=other, status=edge.status))
        if edge.status == FRIENDSHIP_ACCEPTED:
            rows.append(FriendshipRow(user_id=other, friend_id=requester, status=edge.status))
    return rows


class DataStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- users -----------------------------------------------------------

    @_captured(lambda: None)
    def user_id_for_token(self, token: str | None) -> str | None:
        if not token:
            return None
        with self._session() as session:
            return session.scalar(select(User.id).where(User.access_token == token))

    # -- events ----------------------------------------------------------

    def _event_cards(
        self,
        session: Session,
        events: Sequence[Event],
        *,
        interest: dict[str, int] | None = None,
    ) -> list[EventCard]:
        if not events:
            return []
        event_ids = [event.id for event in events]
        attendee_rows = session.execute(
            select(EventRSVP.event_id, EventRSVP.user_id, Profile)
            .outerjoin(Profile, Profile.id == EventRSVP.user_id)
            .where(
                EventRSVP.event_id.in_(event_ids),
                EventRSVP.status.in_(ACCEPTED_RSVP_STATUSES),
                EventRSVP.visibility == VISIBILITY_PUBLIC,
            )
            .order_by(EventRSVP.created_at.asc(), EventRSVP.user_id.asc())
        ).all()
        attendees: dict[str, list[PersonSummary]] = {event_id: [] for event_id in event_ids}
        for event_id, user_id, profile in attendee_rows:
            attendees[event_id].append(_person(user_id, profile))

        organizer_ids = {event.organizer_id for event in events if event.organizer_id}
        organizers: dict[str, Profile] = {}
        if organizer_ids:
            organizers = {
                profile.id: profile
                for profile in session.scalars(
                    select(Profile).where(Profile.id.in_(organizer_ids))
                )
            }

        cards = []
        for event in events:
            organizer = None
            if event.organizer_id:
                organizer = _person(event.organizer_id, organizers.get(event.organizer_id))
            cards.append(
                EventCard(
                    id=event.id,
                    title=event.title,
                    description=event.description or "",
                    location=event.location or "",
                    time=format_event_time(event.start_time),
                    start_time=event.start_time,
                    attendees=attendees[event.id],
                    organizer=organizer,
                    organizer_name=event.organizer_name,
                    url=event.url,
                    friend_interest_count=(interest or {}).get(event.id),
                )
            )
        return cards

    @_captured(list)
    def fetch_for_you_events(
        self,
        user_id: str | None,
        *,
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[EventCard]:
        """Upcoming events in start order, minus those the user answered.

        ``after`` is the ``(start_time, id)`` of the last row already served;
        only rows strictly past it are returned.
        """
        stmt = select(Event).where(Event.start_time >= utcnow())
        if after is not None:
            start_time, event_id = after
            stmt = stmt.where(
                or_(
                    Event.start_time > start_time,
                    and_(Event.start_time == start_time, Event.id > event_id),
                )
            )
        if user_id:
            stmt = stmt.where(
                Event.id.not_in(
                    select(EventRSVP.event_id).where(EventRSVP.user_id == user_id)
                )
            )
        stmt = stmt.order_by(Event.start_time.asc(), Event.id.asc()).limit(max(limit, 0))
        with self._session() as session:
            events = session.scalars(stmt).all()
            return self._event_cards(session, events)

    @_captured(list)
    def fetch_popular_events(
        self, user_id: str, *, limit: int, offset: int = 0
    ) -> list[EventCard]:
        """Events ranked by friend interest, in the procedure's order."""
        result = self.rpc(
            "get_popular_with_friends",
            actor_id=user_id,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )
        if not result.ok or not result.data:
            return []
        interest = {row["event_id"]: row["friend_interest_count"] for row in result.data}
        with self._session() as session:
            by_id = {
                event.id: event
                for event in session.scalars(
                    select(Event).where(Event.id.in_(list(interest)))
                )
            }
            ordered = [by_id[event_id] for event_id in interest if event_id in by_id]
            return self._event_cards(session, ordered, interest=interest)

    @_captured(list)
    def fetch_my_events(self, user_id: str) -> list[EventCard]:
        with self._session() as session:
            events = session.scalars(
                select(Event)
                .join(EventRSVP, EventRSVP.event_id == Event.id)
                .where(
                    EventRSVP.user_id == user_id,
                    EventRSVP.status.in_(ACCEPTED_RSVP_STATUSES),
                    Event.start_time >= utcnow(),
                )
                .order_by(Event.start_time.asc(), Event.id.asc())
            ).all()
            return self._event_cards(session, events)

    # -- rsvps -----------------------------------------------------------

    @_captured(lambda: False)
    def upsert_rsvp(
        self, *, user_id: str, event_id: str, status: str, visibility: str
    ) -> bool:
        with self._session() as session:
            if session.get(Event, event_id) is None:
                logger.warning("RSVP for unknown event %s ignored", event_id)
                return False
            session.merge(
                EventRSVP(
                    user_id=user_id,
                    event_id=event_id,
                    status=status,
                    visibility=visibility,
                    updated_at=utcnow(),
                )
            )
        return True

    @_captured(lambda: None)
    def get_rsvp_status(self, *, user_id: str, event_id: str) -> str | None:
        with self._session() as session:
            return session.scalar(
                select(EventRSVP.status).where(
                    EventRSVP.user_id == user_id, EventRSVP.event_id == event_id
                )
            )

    # -- friendships -----------------------------------------------------

    @_captured(list)
    def fetch_friendship_rows(
        self, user_id: str, other_ids: Iterable[str] | None = None
    ) -> list[FriendshipRow]:
        """Directional rows in both directions between the user and others."""
        stmt = select(Friendship).where(
            or_(Friendship.user_low_id == user_id, Friendship.user_high_id == user_id)
        )
        if other_ids is not None:
            others = list(other_ids)
            if not others:
                return []
            stmt = stmt.where(
                or_(Friendship.user_low_id.in_(others), Friendship.user_high_id.in_(others))
            )
        with self._session() as session:
            return project_friendship_rows(session.scalars(stmt).all())

    @_captured(list)
    def fetch_friend_profiles(self, user_id: str) -> list[tuple[str, ProfileRecord | None]]:
        with self._session() as session:
            friend_ids = session.scalars(friend_ids_clause(user_id)).all()
            if not friend_ids:
                return []
            profiles = {
                profile.id: _profile_record(profile)
                for profile in session.scalars(
                    select(Profile).where(Profile.id.in_(friend_ids))
                )
            }
            return [(friend_id, profiles.get(friend_id)) for friend_id in friend_ids]

    @_captured(lambda: 0)
    def count_friends(self, user_id: str) -> int:
        """Number of accepted rows whose ``user_id`` side is the given user.

        Each accepted edge projects exactly one such row, so this counts the
        accepted edges touching the user.
        """
        with self._session() as session:
            return session.scalar(
                select(func.count())
                .select_from(Friendship)
                .where(
                    Friendship.status == FRIENDSHIP_ACCEPTED,
                    or_(
                        Friendship.user_low_id == user_id,
                        Friendship.user_high_id == user_id,
                    ),
                )
            ) or 0

    # -- profiles --------------------------------------------------------

    @_captured(lambda: None)
    def get_profile(self, user_id: str) -> ProfileRecord | None:
        with self._session() as session:
            profile = session.get(Profile, user_id)
            return _profile_record(profile) if profile else None

    @_captured(list)
    def search_profiles(
        self, field: str, term: str, *, exclude_id: str, limit: int
    ) -> list[ProfileRecord]:
        """Case-insensitive substring match on one profile column."""
        if field not in SEARCHABLE_PROFILE_FIELDS:
            raise ValueError(f"Profiles cannot be searched by {field!r}")
        column = getattr(Profile, field)
        pattern = "%" + _LIKE_SPECIAL.sub(r"\\\g<0>", term) + "%"
        with self._session() as session:
            profiles = session.scalars(
                select(Profile)
                .where(Profile.id != exclude_id, column.ilike(pattern, escape="\\"))
                .order_by(column.asc(), Profile.id.asc())
                .limit(limit)
            ).all()
            return [_profile_record(profile) for profile in profiles]

    @_captured(lambda: False)
    def is_username_available(self, username: str, *, user_id: str) -> bool:
        with self._session() as session:
            owner = session.scalar(select(Profile.id).where(Profile.username == username))
            return owner is None or owner == user_id

    @_captured(lambda: False)
    def upsert_profile(self, user_id: str, **fields: Any) -> bool:
        with self._session() as session:
            session.merge(Profile(id=user_id, updated_at=utcnow(), **fields))
        return True

    # -- procedures ------------------------------------------------------

    def rpc(self, name: str, *, actor_id: str | None = None, **params: Any) -> RpcResult:
        """Invoke a named procedure in its own transaction."""
        procedure = PROCEDURES.get(name)
        if procedure is None:
            return RpcResult(error=f"Unknown procedure {name}")
        try:
            with self._session() as session:
                data = procedure(session, actor_id=actor_id, **params)
        except ProcedureError as exc:
            logger.info("Procedure %s rejected: %s", name, exc)
            return RpcResult(error=str(exc))
        except SQLAlchemyError:
            logger.exception("Procedure %s failed", name)
            return RpcResult(error=RPC_FAILURE_MESSAGE)
        return RpcResult(data=data)
