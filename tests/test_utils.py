from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

from gatherly.utils import display_name, format_event_time, full_name, initials


def _profile(username=None, first_name=None, last_name=None):
    return SimpleNamespace(username=username, first_name=first_name, last_name=last_name)


def test_format_event_time_uses_twelve_hour_clock():
    assert format_event_time(datetime(2024, 12, 15, 20, 0)) == (
        "Sunday, Dec 15, 2024 at 8:00 PM"
    )
    assert format_event_time(datetime(2024, 12, 16, 0, 5)) == (
        "Monday, Dec 16, 2024 at 12:05 AM"
    )
    assert format_event_time(None) == ""


def test_display_name_fallbacks():
    assert display_name(_profile("ada", "Ada", "Lovelace")) == "Ada Lovelace"
    assert display_name(_profile("ada", "Ada")) == "Ada"
    assert display_name(_profile("ada", last_name="Lovelace")) == "Lovelace"
    assert display_name(_profile("ada", "  ", "")) == "ada"
    assert display_name(_profile()) == "Unknown user"
    assert display_name(None) == "Unknown user"


def test_full_name_and_initials():
    assert full_name("Ada", "Lovelace") == "Ada Lovelace"
    assert full_name(None, None) == "Not set"
    assert initials("ada", "lovelace") == "AL"
    assert initials(None, "Lovelace") == "L"
    assert initials(None, None) == "?"
