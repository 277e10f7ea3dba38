"""Friends list, user search and friend request actions."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .config import settings
from .datastore import SEARCHABLE_PROFILE_FIELDS, DataStore
from .errors import NotAuthenticatedError, RemoteCallError
from .models import FRIENDSHIP_ACCEPTED, FRIENDSHIP_PENDING
from .schemas import (
    FRIENDSHIP_NONE,
    FRIENDSHIP_PENDING_RECEIVED,
    FRIENDSHIP_PENDING_SENT,
    Friend,
    FriendshipRow,
    InviteLink,
    ProfileRecord,
    SearchResult,
)
from .utils import display_name

logger = logging.getLogger(__name__)


def friendship_status_for(
    rows: Iterable[FriendshipRow], current_user_id: str, other_id: str
) -> str:
    """Annotate ``other_id`` from the current user's point of view."""
    for row in rows:
        outgoing = row.user_id == current_user_id and row.friend_id == other_id
        incoming = row.user_id == other_id and row.friend_id == current_user_id
        if not (outgoing or incoming):
            continue
        if row.status == FRIENDSHIP_ACCEPTED:
            return FRIENDSHIP_ACCEPTED
        if row.status == FRIENDSHIP_PENDING:
            return FRIENDSHIP_PENDING_SENT if outgoing else FRIENDSHIP_PENDING_RECEIVED
    return FRIENDSHIP_NONE


def _require_user(user_id: str | None, action: str) -> str:
    if not user_id:
        raise NotAuthenticatedError(f"You must be logged in to {action}.")
    return user_id


class FriendshipManager:
    def __init__(
        self,
        store: DataStore,
        *,
        search_limit: int | None = None,
        public_base_url: str | None = None,
    ):
        self.store = store
        self.search_limit = search_limit or settings.search_limit
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def list_friends(self, user_id: str) -> list[Friend]:
        friends = []
        for friend_id, profile in self.store.fetch_friend_profiles(user_id):
            friends.append(
                Friend(
                    id=friend_id,
                    username=profile.username if profile else None,
                    first_name=profile.first_name if profile else None,
                    last_name=profile.last_name if profile else None,
                    avatar_url=profile.avatar_url if profile else None,
                    status=FRIENDSHIP_ACCEPTED,
                    display_name=display_name(profile),
                )
            )
        friends.sort(key=lambda friend: (friend.display_name.casefold(), friend.id))
        return friends

    def friend_count(self, user_id: str) -> int:
        return self.store.count_friends(user_id)

    def search_users(self, query: str, current_user_id: str) -> list[SearchResult]:
        term = (query or "").strip()
        if not term:
            return []

        unique: dict[str, ProfileRecord] = {}
        for field in SEARCHABLE_PROFILE_FIELDS:
            for profile in self.store.search_profiles(
                field, term, exclude_id=current_user_id, limit=self.search_limit
            ):
                unique.setdefault(profile.id, profile)
        profiles = [p for p in unique.values() if p.id != current_user_id]
        profiles = profiles[: self.search_limit]
        if not profiles:
            return []

        rows = self.store.fetch_friendship_rows(
            current_user_id, other_ids=[p.id for p in profiles]
        )
        return [
            SearchResult(
                id=profile.id,
                username=profile.username,
                first_name=profile.first_name,
                last_name=profile.last_name,
                avatar_url=profile.avatar_url,
                friendship_status=friendship_status_for(rows, current_user_id, profile.id),
                display_name=display_name(profile),
            )
            for profile in profiles
        ]

    def _call(self, name: str, user_id: str | None, *, failure: str, **params) -> dict:
        result = self.store.rpc(name, actor_id=user_id, **params)
        if not result.ok:
            logger.warning("%s by %s failed: %s", name, user_id, result.error)
            raise RemoteCallError(result.error or failure)
        return result.data or {}

    def send_friend_request(self, user_id: str | None, target_id: str) -> dict:
        user_id = _require_user(user_id, "send friend requests")
        data = self._call(
            "send_friend_request",
            user_id,
            failure="Failed to send friend request",
            target_id=target_id,
        )
        logger.info("User %s sent a friend request to %s", user_id, target_id)
        return data

    def accept_friend_request(self, user_id: str | None, requester_id: str) -> dict:
        user_id = _require_user(user_id, "accept friend requests")
        data = self._call(
            "accept_friend_request",
            user_id,
            failure="Failed to accept friend request",
            requester_id=requester_id,
        )
        logger.info("User %s accepted a friend request from %s", user_id, requester_id)
        return data

    def remove_friend(self, user_id: str | None, friend_id: str) -> dict:
        user_id = _require_user(user_id, "remove friends")
        data = self._call(
            "remove_friend",
            user_id,
            failure="Failed to remove friend",
            friend_id=friend_id,
        )
        logger.info("User %s removed friendship with %s", user_id, friend_id)
        return data

    def generate_invite_link(self, user_id: str | None) -> InviteLink:
        user_id = _require_user(user_id, "invite friends")
        data = self._call("create_invite", user_id, failure="Failed to generate invite")
        code = data.get("invite_code")
        if not code:
            raise RemoteCallError("Failed to generate invite code")
        return InviteLink(
            invite_code=code,
            invite_url=f"{self.public_base_url}/auth/sign-up?invite={code}",
        )
