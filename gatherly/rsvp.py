"""RSVP state per (user, event) pair.

A pair is either untracked, accepted (INTERESTED or GOING) or HIDDEN.
``accept`` and ``dismiss`` move it between the last two from any state and
nothing ever deletes the record.
"""

from __future__ import annotations

import logging

from .datastore import DataStore
from .errors import NotAuthenticatedError, RemoteCallError
from .models import (
    ACCEPTED_RSVP_STATUSES,
    RSVP_GOING,
    RSVP_HIDDEN,
    RSVP_INTERESTED,
    RSVP_INVITED,
    RSVP_MAYBE,
    VISIBILITY_FRIENDS_ONLY,
    VISIBILITY_PRIVATE,
    VISIBILITY_PUBLIC,
)

logger = logging.getLogger(__name__)

STATUS_VISIBILITY = {
    RSVP_INTERESTED: VISIBILITY_PUBLIC,
    RSVP_GOING: VISIBILITY_PUBLIC,
    RSVP_MAYBE: VISIBILITY_FRIENDS_ONLY,
    RSVP_INVITED: VISIBILITY_PRIVATE,
    RSVP_HIDDEN: VISIBILITY_PRIVATE,
}


def visibility_for_status(status: str) -> str:
    try:
        return STATUS_VISIBILITY[status]
    except KeyError:
        raise ValueError(f"Unknown RSVP status {status!r}") from None


class RSVPManager:
    def __init__(self, store: DataStore):
        self.store = store

    def _record(self, event_id: str, user_id: str | None, status: str, *, verb: str) -> None:
        if not user_id:
            raise NotAuthenticatedError(f"You must be logged in to {verb} events.")
        saved = self.store.upsert_rsvp(
            user_id=user_id,
            event_id=event_id,
            status=status,
            visibility=visibility_for_status(status),
        )
        if not saved:
            raise RemoteCallError(f"Failed to {verb} event. Please try again.")
        logger.info("User %s marked event %s as %s", user_id, event_id, status)

    def accept(self, event_id: str, user_id: str | None) -> None:
        self._record(event_id, user_id, RSVP_INTERESTED, verb="save")

    def dismiss(self, event_id: str, user_id: str | None) -> None:
        self._record(event_id, user_id, RSVP_HIDDEN, verb="dismiss")

    def check_status(self, event_id: str, user_id: str | None) -> bool:
        """Whether the user already accepted the event. Never writes."""
        if not user_id:
            return False
        return self.store.get_rsvp_status(user_id=user_id, event_id=event_id) in (
            ACCEPTED_RSVP_STATUSES
        )
