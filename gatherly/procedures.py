"""Server-side procedures invoked by name through ``DataStore.rpc``.

Each procedure runs inside the caller's session, so the whole call commits
or rolls back as one unit. ``actor_id`` is the signed-in user the call is
made on behalf of. Rule violations raise :class:`ProcedureError`.
"""

from __future__ import annotations

import secrets
from typing import Any, Callable

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session, aliased

from .errors import ProcedureError
from .models import (
    ACCEPTED_RSVP_STATUSES,
    FRIENDSHIP_ACCEPTED,
    FRIENDSHIP_PENDING,
    VISIBILITY_PRIVATE,
    Event,
    EventRSVP,
    Friendship,
    Invite,
    User,
)
from .utils import utcnow

INVITE_CODE_BYTES = 9


def ordered_pair(first: str, second: str) -> tuple[str, str]:
    return (first, second) if first < second else (second, first)


def friend_ids_clause(user_id: str):
    """Select the ids of ``user_id``'s accepted friends."""
    other = case(
        (Friendship.user_low_id == user_id, Friendship.user_high_id),
        else_=Friendship.user_low_id,
    )
    return select(other).where(
        Friendship.status == FRIENDSHIP_ACCEPTED,
        or_(Friendship.user_low_id == user_id, Friendship.user_high_id == user_id),
    )


def _require_actor(actor_id: str | None) -> str:
    if not actor_id:
        raise ProcedureError("Not authenticated")
    return actor_id


def _get_edge(session: Session, first: str, second: str) -> Friendship | None:
    return session.get(Friendship, ordered_pair(first, second))


def get_popular_with_friends(
    session: Session,
    *,
    actor_id: str | None,
    user_id: str,
    limit: int,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Rank upcoming events by how many of the user's friends are interested.

    Only public or friends-only RSVPs count. Events the user already
    responded to are left out. Ties break on start time.
    """
    own = aliased(EventRSVP)
    interest = func.count(func.distinct(EventRSVP.user_id)).label("friend_interest_count")
    stmt = (
        select(Event.id, interest)
        .join(EventRSVP, EventRSVP.event_id == Event.id)
        .where(
            EventRSVP.user_id.in_(friend_ids_clause(user_id)),
            EventRSVP.status.in_(ACCEPTED_RSVP_STATUSES),
            EventRSVP.visibility != VISIBILITY_PRIVATE,
            Event.start_time >= utcnow(),
            Event.id.not_in(select(own.event_id).where(own.user_id == user_id)),
        )
        .group_by(Event.id, Event.start_time)
        .order_by(interest.desc(), Event.start_time.asc(), Event.id.asc())
        .offset(max(offset, 0))
        .limit(max(limit, 0))
    )
    return [
        {"event_id": event_id, "friend_interest_count": count}
        for event_id, count in session.execute(stmt).all()
    ]


def send_friend_request(
    session: Session, *, actor_id: str | None, target_id: str
) -> dict[str, Any]:
    actor_id = _require_actor(actor_id)
    if target_id == actor_id:
        raise ProcedureError("You cannot send a friend request to yourself")
    if session.get(User, target_id) is None:
        raise ProcedureError("User not found")

    edge = _get_edge(session, actor_id, target_id)
    if edge is None:
        low, high = ordered_pair(actor_id, target_id)
        edge = Friendship(
            user_low_id=low,
            user_high_id=high,
            requested_by=actor_id,
            status=FRIENDSHIP_PENDING,
        )
        session.add(edge)
    elif edge.status == FRIENDSHIP_ACCEPTED:
        raise ProcedureError("You are already friends")
    elif edge.requested_by != actor_id:
        # Both sides asked: treat as mutual acceptance.
        edge.status = FRIENDSHIP_ACCEPTED
        edge.updated_at = utcnow()
    session.flush()
    return {"status": edge.status}


def accept_friend_request(
    session: Session, *, actor_id: str | None, requester_id: str
) -> dict[str, Any]:
    actor_id = _require_actor(actor_id)
    edge = _get_edge(session, actor_id, requester_id)
    if (
        edge is None
        or edge.status != FRIENDSHIP_PENDING
        or edge.requested_by != requester_id
    ):
        raise ProcedureError("No pending friend request from this user")
    edge.status = FRIENDSHIP_ACCEPTED
    edge.updated_at = utcnow()
    session.flush()
    return {"status": edge.status}


def remove_friend(
    session: Session, *, actor_id: str | None, friend_id: str
) -> dict[str, Any]:
    """Delete the edge whatever its state: unfriend, cancel or decline."""
    actor_id = _require_actor(actor_id)
    edge = _get_edge(session, actor_id, friend_id)
    if edge is None:
        raise ProcedureError("Friendship not found")
    session.delete(edge)
    session.flush()
    return {"removed": True}


def create_invite(session: Session, *, actor_id: str | None) -> dict[str, Any]:
    actor_id = _require_actor(actor_id)
    code = secrets.token_urlsafe(INVITE_CODE_BYTES)
    session.add(Invite(code=code, inviter_id=actor_id, created_at=utcnow()))
    session.flush()
    return {"invite_code": code}


PROCEDURES: dict[str, Callable[..., Any]] = {
    "get_popular_with_friends": get_popular_with_friends,
    "send_friend_request": send_friend_request,
    "accept_friend_request": accept_friend_request,
    "remove_friend": remove_friend,
    "create_invite": create_invite,
}
