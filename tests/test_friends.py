from __future__ import annotations

import pytest

from gatherly import database
from gatherly.datastore import project_friendship_rows
from gatherly.errors import NotAuthenticatedError, RemoteCallError
from gatherly.friends import FriendshipManager, friendship_status_for
from gatherly.models import Friendship, Invite
from gatherly.schemas import FriendshipRow


def _edge(low: str, high: str, requested_by: str, status: str) -> Friendship:
    return Friendship(
        user_low_id=low, user_high_id=high, requested_by=requested_by, status=status
    )


def test_accepted_edge_projects_to_two_rows():
    rows = project_friendship_rows([_edge("a", "b", "b", "ACCEPTED")])

    assert set(rows) == {
        FriendshipRow(user_id="b", friend_id="a", status="ACCEPTED"),
        FriendshipRow(user_id="a", friend_id="b", status="ACCEPTED"),
    }


def test_pending_edge_projects_requester_row_only():
    rows = project_friendship_rows([_edge("a", "b", "b", "PENDING")])

    assert rows == [FriendshipRow(user_id="b", friend_id="a", status="PENDING")]


def test_friendship_status_from_both_directions():
    rows = [
        FriendshipRow(user_id="me", friend_id="sent", status="PENDING"),
        FriendshipRow(user_id="received", friend_id="me", status="PENDING"),
        FriendshipRow(user_id="me", friend_id="pal", status="ACCEPTED"),
        FriendshipRow(user_id="pal", friend_id="me", status="ACCEPTED"),
    ]

    assert friendship_status_for(rows, "me", "sent") == "PENDING_SENT"
    assert friendship_status_for(rows, "me", "received") == "PENDING_RECEIVED"
    assert friendship_status_for(rows, "me", "pal") == "ACCEPTED"
    assert friendship_status_for(rows, "me", "stranger") == "NONE"


def test_search_annotates_each_friendship_status(store, make_user, befriend):
    me, _ = make_user(username="sam_me")
    pal, _ = make_user(username="sam_pal")
    sent, _ = make_user(username="sam_sent")
    received, _ = make_user(username="sam_received")
    stranger, _ = make_user(username="sam_stranger")
    befriend(me, pal)
    befriend(me, sent, status="PENDING")
    befriend(received, me, status="PENDING")

    results = FriendshipManager(store).search_users("SAM", me)

    statuses = {result.id: result.friendship_status for result in results}
    assert statuses == {
        pal: "ACCEPTED",
        sent: "PENDING_SENT",
        received: "PENDING_RECEIVED",
        stranger: "NONE",
    }


def test_search_matches_names_dedupes_and_orders_by_field(store, make_user):
    me, _ = make_user(username="viewer")
    by_username, _ = make_user(username="rivera_fan")
    by_both, _ = make_user(username="rivera_dup", first_name="Rivera")
    by_last, _ = make_user(username="zed", last_name="Rivera")

    results = FriendshipManager(store).search_users("  rivera ", me)

    # Username hits first (rivera_dup sorts before rivera_fan), then name hits.
    assert [result.id for result in results] == [by_both, by_username, by_last]


def test_search_excludes_self_and_blank_queries(store, make_user):
    me, _ = make_user(username="mirror")
    manager = FriendshipManager(store)

    assert manager.search_users("mirror", me) == []
    assert manager.search_users("   ", me) == []


def test_search_caps_results(store, make_user):
    me, _ = make_user(username="counter")
    for index in range(25):
        make_user(username=f"crowd_{index:02d}", first_name="Crowd", last_name="Crowd")

    results = FriendshipManager(store).search_users("crowd", me)

    assert len(results) == 20


def test_search_treats_wildcards_literally(store, make_user):
    me, _ = make_user(username="searcher")
    make_user(username="plain_name")
    literal, _ = make_user(username="100pct", first_name="100%")

    results = FriendshipManager(store).search_users("%", me)

    assert [result.id for result in results] == [literal]


def test_send_and_accept_request(store, make_user):
    alice, _ = make_user(first_name="Alice")
    bob, _ = make_user(first_name="Bob")
    manager = FriendshipManager(store)

    manager.send_friend_request(alice, bob)
    assert friendship_status_for(
        store.fetch_friendship_rows(alice), alice, bob
    ) == "PENDING_SENT"
    assert manager.friend_count(alice) == 0

    manager.accept_friend_request(bob, alice)

    rows = store.fetch_friendship_rows(alice)
    assert FriendshipRow(user_id=alice, friend_id=bob, status="ACCEPTED") in rows
    assert FriendshipRow(user_id=bob, friend_id=alice, status="ACCEPTED") in rows
    assert manager.friend_count(alice) == 1
    assert manager.friend_count(bob) == 1
    assert [friend.id for friend in manager.list_friends(alice)] == [bob]


def test_send_request_twice_is_idempotent(store, make_user):
    alice, _ = make_user()
    bob, _ = make_user()
    manager = FriendshipManager(store)

    manager.send_friend_request(alice, bob)
    result = manager.send_friend_request(alice, bob)

    assert result == {"status": "PENDING"}
    assert len(store.fetch_friendship_rows(alice)) == 1


def test_reverse_request_accepts(store, make_user):
    alice, _ = make_user()
    bob, _ = make_user()
    manager = FriendshipManager(store)

    manager.send_friend_request(alice, bob)
    result = manager.send_friend_request(bob, alice)

    assert result == {"status": "ACCEPTED"}
    assert manager.friend_count(alice) == manager.friend_count(bob) == 1


def test_request_rule_violations_surface_messages(store, make_user, befriend):
    alice, _ = make_user()
    bob, _ = make_user()
    befriend(alice, bob)
    manager = FriendshipManager(store)

    with pytest.raises(RemoteCallError, match="yourself"):
        manager.send_friend_request(alice, alice)
    with pytest.raises(RemoteCallError, match="already friends"):
        manager.send_friend_request(bob, alice)
    with pytest.raises(RemoteCallError, match="User not found"):
        manager.send_friend_request(alice, "nobody")
    with pytest.raises(RemoteCallError, match="No pending friend request"):
        manager.accept_friend_request(alice, bob)


def test_accept_requires_request_from_the_other_side(store, make_user):
    alice, _ = make_user()
    bob, _ = make_user()
    manager = FriendshipManager(store)
    manager.send_friend_request(alice, bob)

    with pytest.raises(RemoteCallError):
        manager.accept_friend_request(alice, bob)


def test_remove_friend_clears_both_sides(store, make_user, befriend):
    alice, _ = make_user()
    bob, _ = make_user()
    befriend(alice, bob)
    manager = FriendshipManager(store)

    manager.remove_friend(bob, alice)

    assert store.fetch_friendship_rows(alice) == []
    assert manager.friend_count(alice) == manager.friend_count(bob) == 0
    with pytest.raises(RemoteCallError, match="not found"):
        manager.remove_friend(bob, alice)


def test_remove_declines_pending_request(store, make_user):
    alice, _ = make_user()
    bob, _ = make_user()
    manager = FriendshipManager(store)
    manager.send_friend_request(alice, bob)

    manager.remove_friend(bob, alice)

    assert store.fetch_friendship_rows(bob) == []


def test_friend_count_matches_projected_rows(store, make_user, befriend):
    me, _ = make_user()
    others = [make_user()[0] for _ in range(4)]
    befriend(me, others[0])
    befriend(others[1], me)
    befriend(me, others[2], status="PENDING")
    befriend(others[3], me, status="PENDING")

    rows = store.fetch_friendship_rows(me)
    accepted_rows = [row for row in rows if row.user_id == me and row.status == "ACCEPTED"]

    assert FriendshipManager(store).friend_count(me) == len(accepted_rows) == 2
    for row in rows:
        if row.status == "ACCEPTED":
            assert FriendshipRow(row.friend_id, row.user_id, "ACCEPTED") in rows


def test_list_friends_sorted_and_includes_profileless(store, make_user, befriend):
    me, _ = make_user()
    zoe, _ = make_user(first_name="Zoe", last_name="Quinn")
    adam, _ = make_user(username="adam")
    ghost, _ = make_user()
    pending, _ = make_user(first_name="Pending")
    for friend in (zoe, adam, ghost):
        befriend(me, friend)
    befriend(me, pending, status="PENDING")

    friends = FriendshipManager(store).list_friends(me)

    assert [friend.display_name for friend in friends] == [
        "adam",
        "Unknown user",
        "Zoe Quinn",
    ]
    assert {friend.id for friend in friends} == {zoe, adam, ghost}
    assert all(friend.status == "ACCEPTED" for friend in friends)


def test_signed_out_friend_actions_are_rejected(store):
    manager = FriendshipManager(store)

    with pytest.raises(NotAuthenticatedError):
        manager.send_friend_request(None, "someone")
    with pytest.raises(NotAuthenticatedError):
        manager.generate_invite_link(None)


def test_invite_link_embeds_code(store, make_user):
    me, _ = make_user()
    manager = FriendshipManager(store, public_base_url="https://gatherly.test/")

    link = manager.generate_invite_link(me)

    assert link.invite_code
    assert link.invite_url == f"https://gatherly.test/auth/sign-up?invite={link.invite_code}"
    with database.get_session() as session:
        invite = session.get(Invite, link.invite_code)
        assert invite is not None and invite.inviter_id == me
