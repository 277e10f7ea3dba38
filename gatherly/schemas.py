"""Plain records returned by the data-access layer and the managers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

FRIENDSHIP_NONE = "NONE"
FRIENDSHIP_PENDING_SENT = "PENDING_SENT"
FRIENDSHIP_PENDING_RECEIVED = "PENDING_RECEIVED"


@dataclass(frozen=True)
class PersonSummary:
    id: str
    name: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class EventCard:
    id: str
    title: str
    description: str
    location: str
    time: str
    start_time: datetime
    attendees: list[PersonSummary] = field(default_factory=list)
    organizer: PersonSummary | None = None
    organizer_name: str | None = None
    url: str | None = None
    friend_interest_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["start_time"] = self.start_time.isoformat()
        return payload


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return payload


@dataclass(frozen=True)
class FriendshipRow:
    """Directional view of a friendship from ``user_id``'s side."""

    user_id: str
    friend_id: str
    status: str


@dataclass(frozen=True)
class Friend:
    id: str
    username: str | None
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
    status: str
    display_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SearchResult:
    id: str
    username: str | None
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
    friendship_status: str
    display_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeedPage:
    popular: list[EventCard]
    for_you: list[EventCard]
    has_more: bool
    next_cursor: str | None = None

    @property
    def events(self) -> list[EventCard]:
        """Presentation order: popular first, then "for you"."""
        return [*self.popular, *self.for_you]

    def to_dict(self) -> dict[str, Any]:
        return {
            "popular": [event.to_dict() for event in self.popular],
            "for_you": [event.to_dict() for event in self.for_you],
            # Ids in the order cards are shown.
            "order": [event.id for event in self.events],
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
        }


@dataclass(frozen=True)
class InviteLink:
    invite_code: str
    invite_url: str
