"""Development helpers for populating fake users, events and friendships."""

from __future__ import annotations

import random
import re
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import select
from sqlalchemy.orm import Session

from .crud import create_event, create_user, link_friends, save_profile, set_rsvp
from .database import get_session
from .models import (
    FRIENDSHIP_ACCEPTED,
    FRIENDSHIP_PENDING,
    RSVP_GOING,
    RSVP_HIDDEN,
    RSVP_INTERESTED,
    RSVP_INVITED,
    RSVP_MAYBE,
    Event,
    Profile,
    User,
)
from .procedures import ordered_pair
from .rsvp import visibility_for_status
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Mixer",
    "Hangout",
    "Workshop",
    "Trivia Night",
    "Field Trip",
    "Meet & Greet",
    "Dinner",
    "Open Mic",
]
_rsvp_statuses = [
    RSVP_INTERESTED,
    RSVP_INTERESTED,
    RSVP_GOING,
    RSVP_GOING,
    RSVP_MAYBE,
    RSVP_INVITED,
    RSVP_HIDDEN,
]
_username_junk = re.compile(r"[^A-Za-z0-9_]")


def seed_fake_data(
    *,
    user_count: int = 12,
    event_count: int = 30,
    max_friends_per_user: int = 3,
    max_rsvps_per_event: int = 4,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic users, events and RSVPs."""
    if user_count < 0:
        raise ValueError("user_count must be >= 0")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_friends_per_user < 0:
        raise ValueError("max_friends_per_user must be >= 0")
    if max_rsvps_per_event < 0:
        raise ValueError("max_rsvps_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "friendships": 0, "rsvps": 0}

    with get_session() as session:
        taken = set(
            session.scalars(select(Profile.username).where(Profile.username.is_not(None)))
        )
        users = [_create_user(session, fake, taken) for _ in range(user_count)]
        stats["users"] = len(users)
        stats["friendships"] = _create_friendships(session, users, max_friends_per_user)
        for _ in range(event_count):
            event = _create_event(session, fake, users)
            stats["events"] += 1
            stats["rsvps"] += _create_rsvps(session, event, users, max_rsvps_per_event)

    return stats


def _username(fake: Faker, taken: set[str]) -> str:
    base = _username_junk.sub("_", fake.user_name())[:24] or "user"
    candidate = base
    while candidate in taken or len(candidate) < 3:
        candidate = f"{base}_{random.randint(10, 99999)}"
    taken.add(candidate)
    return candidate


def _create_user(session: Session, fake: Faker, taken: set[str]) -> User:
    user = create_user(session, email=fake.unique.email())
    # Some users never finish their profile.
    if random.random() < 0.15:
        return user
    save_profile(
        session,
        user,
        username=_username(fake, taken),
        first_name=fake.first_name() if random.random() < 0.9 else None,
        last_name=fake.last_name() if random.random() < 0.8 else None,
        bio=fake.sentence(nb_words=12) if random.random() < 0.5 else None,
    )
    return user


def _create_friendships(session: Session, users: list[User], max_friends: int) -> int:
    if max_friends <= 0 or len(users) < 2:
        return 0
    pairs: set[tuple[str, str]] = set()
    for user in users:
        others = [other for other in users if other.id != user.id]
        for other in random.sample(others, k=min(len(others), random.randint(0, max_friends))):
            pair = ordered_pair(user.id, other.id)
            if pair in pairs:
                continue
            pairs.add(pair)
            status = FRIENDSHIP_ACCEPTED if random.random() < 0.75 else FRIENDSHIP_PENDING
            link_friends(session, user, other, status=status)
    return len(pairs)


def _create_event(session: Session, fake: Faker, users: list[User]) -> Event:
    start_time = _random_start_time()
    organizer = random.choice(users) if users and random.random() < 0.6 else None
    return create_event(
        session,
        title=_event_title(fake),
        description="\n\n".join(fake.paragraphs(nb=2)),
        location=fake.address().replace("\n", ", "),
        start_time=start_time,
        end_time=_maybe_end_time(start_time),
        organizer=organizer,
        organizer_name=None if organizer else fake.company(),
        url=fake.url() if random.random() < 0.4 else None,
    )


def _random_start_time() -> datetime:
    day_offset = random.randint(-3, 45)
    minute_offset = random.randint(0, 23 * 60)
    return utcnow().replace(second=0, microsecond=0) + timedelta(
        days=day_offset, minutes=minute_offset
    )


def _event_title(fake: Faker) -> str:
    return f"{fake.city()} {random.choice(_event_types)}"


def _maybe_end_time(start_time: datetime) -> datetime | None:
    if random.random() < 0.3:
        return None
    return start_time + timedelta(hours=random.randint(1, 6))


def _create_rsvps(session: Session, event: Event, users: list[User], max_rsvps: int) -> int:
    if max_rsvps <= 0 or not users:
        return 0
    attendees = random.sample(users, k=min(len(users), random.randint(0, max_rsvps)))
    for user in attendees:
        status = random.choice(_rsvp_statuses)
        set_rsvp(
            session,
            user=user,
            event=event,
            status=status,
            visibility=visibility_for_status(status),
        )
    return len(attendees)
