"""Profile reads, validation and edits."""

from __future__ import annotations

import logging
import re

from .datastore import DataStore
from .errors import NotAuthenticatedError, ProfileValidationError, RemoteCallError
from .schemas import EventCard, ProfileRecord

logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
NAME_MAX_LENGTH = 100
BIO_MAX_LENGTH = 500

_username_pattern = re.compile(r"^[A-Za-z0-9_]+$")


def validate_username(value: str | None) -> str | None:
    """Return an error message, or ``None`` when the username is acceptable.

    A blank username means "unset" and is accepted.
    """
    value = value or ""
    if not value.strip():
        return None
    if len(value) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters"
    if len(value) > USERNAME_MAX_LENGTH:
        return f"Username must be at most {USERNAME_MAX_LENGTH} characters"
    if not _username_pattern.match(value):
        return "Username can only contain letters, numbers, and underscores"
    return None


def validate_length(label: str, value: str | None, max_length: int) -> str | None:
    if len(value or "") > max_length:
        return f"{label} must be at most {max_length} characters"
    return None


def validate_profile(
    *,
    username: str | None,
    first_name: str | None,
    last_name: str | None,
    bio: str | None,
) -> dict[str, str]:
    checks = {
        "username": validate_username(username),
        "first_name": validate_length("First name", first_name, NAME_MAX_LENGTH),
        "last_name": validate_length("Last name", last_name, NAME_MAX_LENGTH),
        "bio": validate_length("Bio", bio, BIO_MAX_LENGTH),
    }
    return {field: message for field, message in checks.items() if message}


def _blank_to_none(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


class ProfileManager:
    def __init__(self, store: DataStore):
        self.store = store

    def get_profile(self, user_id: str) -> ProfileRecord | None:
        """The user's profile, or ``None`` when it was never set up."""
        return self.store.get_profile(user_id)

    def my_events(self, user_id: str) -> list[EventCard]:
        return self.store.fetch_my_events(user_id)

    def update_profile(
        self,
        user_id: str | None,
        *,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        bio: str | None = None,
    ) -> ProfileRecord:
        if not user_id:
            raise NotAuthenticatedError("You must be logged in to edit your profile.")
        errors = validate_profile(
            username=username, first_name=first_name, last_name=last_name, bio=bio
        )
        if errors:
            raise ProfileValidationError(errors)

        cleaned_username = _blank_to_none(username)
        current = self.store.get_profile(user_id)
        changed = cleaned_username != (current.username if current else None)
        if cleaned_username and changed:
            if not self.store.is_username_available(cleaned_username, user_id=user_id):
                raise ProfileValidationError(
                    {"username": "This username is already taken"}
                )

        saved = self.store.upsert_profile(
            user_id,
            username=cleaned_username,
            first_name=_blank_to_none(first_name),
            last_name=_blank_to_none(last_name),
            bio=_blank_to_none(bio),
        )
        if not saved:
            raise RemoteCallError("Failed to update profile")
        logger.info("Updated profile for %s", user_id)
        profile = self.store.get_profile(user_id)
        if profile is None:
            raise RemoteCallError("Failed to update profile")
        return profile
