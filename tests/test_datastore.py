from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import OperationalError

from gatherly import database
from gatherly.datastore import RPC_FAILURE_MESSAGE, DataStore
from gatherly.models import Event
from gatherly.utils import utcnow


def _ids(events) -> list[str]:
    return [event.id for event in events]


def test_token_lookup(store, make_user):
    user_id, token = make_user()

    assert store.user_id_for_token(token) == user_id
    assert store.user_id_for_token("not-a-token") is None
    assert store.user_id_for_token(None) is None


def test_for_you_is_upcoming_in_start_order(store, make_event):
    third = make_event("Third", hours=30)
    first = make_event("First", hours=1)
    second = make_event("Second", hours=5)
    make_event("Over", hours=-2)

    events = store.fetch_for_you_events(None, limit=10)

    assert _ids(events) == [first, second, third]
    assert events[0].time


def test_for_you_skips_events_the_user_answered(store, make_user, make_event, rsvp):
    user_id, _ = make_user()
    hidden = make_event("Hidden", hours=1)
    accepted = make_event("Accepted", hours=2)
    open_event = make_event("Open", hours=3)
    rsvp(user_id, hidden, "HIDDEN")
    rsvp(user_id, accepted, "INTERESTED")

    assert _ids(store.fetch_for_you_events(user_id, limit=10)) == [open_event]


def test_for_you_pages_after_position(store, make_event):
    ids = [make_event(f"E{i}", hours=i + 1) for i in range(7)]
    first = store.fetch_for_you_events(None, limit=5)

    rest = store.fetch_for_you_events(
        None, limit=5, after=(first[-1].start_time, first[-1].id)
    )

    assert _ids(first) == ids[:5]
    assert _ids(rest) == ids[5:]


def test_for_you_breaks_start_time_ties_by_id(store, make_event):
    ids = [make_event(f"E{i}", hours=1) for i in range(3)]
    with database.get_session() as session:
        start = session.get(Event, ids[0]).start_time
        for event_id in ids:
            session.get(Event, event_id).start_time = start
    ordered = sorted(ids)

    rest = store.fetch_for_you_events(None, limit=5, after=(start, ordered[0]))

    assert _ids(rest) == ordered[1:]


def test_attendees_are_public_accepted_in_rsvp_order(
    store, make_user, make_event, rsvp
):
    event_id = make_event()
    early, _ = make_user(first_name="Early")
    late, _ = make_user(username="late_bird")
    shy, _ = make_user(first_name="Shy")
    maybe, _ = make_user(first_name="Maybe")
    now = utcnow()
    rsvp(late, event_id, "GOING", created_at=now)
    rsvp(early, event_id, "INTERESTED", created_at=now - timedelta(hours=1))
    rsvp(shy, event_id, "GOING", visibility="PRIVATE")
    rsvp(maybe, event_id, "MAYBE")

    [card] = store.fetch_for_you_events(None, limit=1)

    assert [person.name for person in card.attendees] == ["Early", "late_bird"]


def test_organizer_summary(store, make_user, make_event):
    host, _ = make_user(first_name="Host", last_name="Person")
    make_event("Hosted", hours=1, organizer_id=host)
    make_event("Listed", hours=2, organizer_name="City Club")

    hosted, listed = store.fetch_for_you_events(None, limit=10)

    assert hosted.organizer.name == "Host Person"
    assert listed.organizer is None
    assert listed.organizer_name == "City Club"


def test_popular_ranks_by_friend_interest(store, make_user, make_event, rsvp, befriend):
    me, _ = make_user()
    friends = [make_user()[0] for _ in range(3)]
    stranger, _ = make_user()
    for friend in friends:
        befriend(me, friend)
    two_fans = make_event("Two fans", hours=10)
    one_fan_early = make_event("One fan early", hours=2)
    one_fan_late = make_event("One fan late", hours=20)
    private_only = make_event("Private only", hours=3)
    stranger_only = make_event("Stranger only", hours=4)
    already_mine = make_event("Mine", hours=5)
    rsvp(friends[0], two_fans, "INTERESTED")
    rsvp(friends[1], two_fans, "GOING")
    rsvp(friends[2], one_fan_late, "MAYBE", visibility="FRIENDS_ONLY")
    rsvp(friends[2], one_fan_early, "GOING")
    rsvp(friends[0], one_fan_late, "INTERESTED")
    rsvp(friends[1], private_only, "GOING", visibility="PRIVATE")
    rsvp(stranger, stranger_only, "GOING")
    rsvp(friends[0], already_mine, "GOING")
    rsvp(me, already_mine, "HIDDEN")

    events = store.fetch_popular_events(me, limit=50)

    assert _ids(events) == [two_fans, one_fan_early, one_fan_late]
    assert [event.friend_interest_count for event in events] == [2, 1, 1]


def test_popular_ignores_pending_friends(store, make_user, make_event, rsvp, befriend):
    me, _ = make_user()
    pending, _ = make_user()
    befriend(me, pending, status="PENDING")
    event_id = make_event()
    rsvp(pending, event_id, "GOING")

    assert store.fetch_popular_events(me, limit=50) == []


def test_friendship_rows_filtered_to_others(store, make_user, befriend):
    me, _ = make_user()
    pal, _ = make_user()
    other, _ = make_user()
    befriend(me, pal)
    befriend(me, other)

    rows = store.fetch_friendship_rows(me, other_ids=[pal])

    assert {(row.user_id, row.friend_id) for row in rows} == {(me, pal), (pal, me)}
    assert store.fetch_friendship_rows(me, other_ids=[]) == []


def test_username_availability(store, make_user):
    owner, _ = make_user(username="owned")
    other, _ = make_user()

    assert store.is_username_available("owned", user_id=owner) is True
    assert store.is_username_available("owned", user_id=other) is False
    assert store.is_username_available("free_name", user_id=other) is True


def _broken_session():
    raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


def test_failures_return_empty_defaults():
    broken = DataStore(_broken_session)

    assert broken.fetch_for_you_events("u", limit=10) == []
    assert broken.fetch_popular_events("u", limit=10) == []
    assert broken.get_rsvp_status(user_id="u", event_id="e") is None
    assert broken.upsert_rsvp(
        user_id="u", event_id="e", status="INTERESTED", visibility="PUBLIC"
    ) is False
    assert broken.count_friends("u") == 0
    assert broken.is_username_available("name", user_id="u") is False


def test_rpc_reports_failures_without_raising(store):
    broken = DataStore(_broken_session)

    failed = broken.rpc("create_invite", actor_id="u")
    assert failed.ok is False
    assert failed.error == RPC_FAILURE_MESSAGE

    unknown = store.rpc("drop_everything")
    assert unknown.ok is False

    rejected = store.rpc("create_invite", actor_id=None)
    assert rejected.error == "Not authenticated"


def test_store_uses_injected_session_factory(make_event):
    event_id = make_event()

    assert _ids(DataStore(database.SessionLocal).fetch_for_you_events(None, limit=1)) == [
        event_id
    ]
