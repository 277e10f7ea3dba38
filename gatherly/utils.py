"""Utility helpers for Gatherly."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

UNKNOWN_USER_LABEL = "Unknown user"
NAME_NOT_SET_LABEL = "Not set"


class NamedProfile(Protocol):
    username: str | None
    first_name: str | None
    last_name: str | None


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def format_event_time(value: datetime | None) -> str:
    """Return an absolute label such as 'Monday, Dec 15, 2024 at 8:00 PM'."""
    if not value:
        return ""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return (
        f"{value:%A}, {value:%b} {value.day}, {value.year} "
        f"at {hour}:{value:%M} {meridiem}"
    )


def _clean(value: str | None) -> str:
    return (value or "").strip()


def full_name(first_name: str | None, last_name: str | None) -> str:
    first, last = _clean(first_name), _clean(last_name)
    if first and last:
        return f"{first} {last}"
    return first or last or NAME_NOT_SET_LABEL


def initials(first_name: str | None, last_name: str | None) -> str:
    first = _clean(first_name)[:1].upper()
    last = _clean(last_name)[:1].upper()
    return f"{first}{last}" or "?"


def display_name(profile: NamedProfile | None) -> str:
    """Name shown for a person in lists.

    Falls back from the first/last name to the username, then to a fixed
    label when the profile carries neither.
    """
    if profile is None:
        return UNKNOWN_USER_LABEL
    if _clean(profile.first_name) or _clean(profile.last_name):
        return full_name(profile.first_name, profile.last_name)
    return _clean(profile.username) or UNKNOWN_USER_LABEL
