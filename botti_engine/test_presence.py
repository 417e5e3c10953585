"""
Tests for the presence ledger and state-delta classification.

Run with:  python -m pytest botti_engine/test_presence.py -v
"""

from datetime import datetime, timedelta

import pytest

from botti_engine.client import User, UserStateDelta
from botti_engine.presence import (
    PresenceChange,
    PresenceLedger,
    PresenceTransition,
    classify_removal,
    classify_state_delta,
)


class FakeClock:
    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return PresenceLedger(clock=clock)


# ============================================================
# Ledger
# ============================================================

class TestPresenceLedger:

    def test_empty_by_default(self, ledger):
        assert ledger.list_recent() == []

    def test_leave_records_name_and_time(self, ledger, clock):
        ledger.record_leave("Bob")
        records = ledger.list_recent()
        assert [(r.name, r.last_seen_at) for r in records] == [("Bob", clock.now)]

    def test_most_recent_first(self, ledger, clock):
        ledger.record_leave("Alice")
        clock.advance(minutes=1)
        ledger.record_leave("Bob")
        assert [r.name for r in ledger.list_recent()] == ["Bob", "Alice"]

    def test_join_cancels_recent_leave(self, ledger):
        ledger.record_leave("Bob")
        ledger.record_join("Bob")
        assert [r.name for r in ledger.list_recent()] == []

    def test_join_of_unknown_name_is_harmless(self, ledger):
        ledger.record_leave("Alice")
        ledger.record_join("Bob")
        assert [r.name for r in ledger.list_recent()] == ["Alice"]

    def test_capacity_is_five(self, ledger, clock):
        for i in range(8):
            ledger.record_leave(f"user{i}")
            clock.advance(seconds=1)
        names = [r.name for r in ledger.list_recent()]
        assert names == ["user7", "user6", "user5", "user4", "user3"]

    def test_custom_capacity(self, clock):
        ledger = PresenceLedger(capacity=2, clock=clock)
        for name in ("a", "b", "c"):
            ledger.record_leave(name)
        assert len(ledger.list_recent()) == 2

    def test_names_stay_unique(self, ledger, clock):
        for name in ("Bob", "Alice", "Bob", "Carol", "Bob"):
            ledger.record_leave(name)
            clock.advance(seconds=1)
        names = [r.name for r in ledger.list_recent()]
        assert names == ["Bob", "Carol", "Alice"]
        assert len(names) == len(set(names))

    def test_duplicate_leave_keeps_second_timestamp(self, ledger, clock):
        ledger.record_leave("Bob")
        clock.advance(seconds=3)
        ledger.record_leave("Bob")
        records = ledger.list_recent()
        assert len(records) == 1
        assert records[0].last_seen_at == clock.now

    def test_entries_older_than_22_hours_are_purged(self, ledger, clock):
        ledger.record_leave("Old")
        clock.advance(hours=21)
        ledger.record_leave("New")
        clock.advance(hours=1, seconds=1)
        assert [r.name for r in ledger.list_recent()] == ["New"]

    def test_entry_exactly_22_hours_old_is_kept(self, ledger, clock):
        ledger.record_leave("Edge")
        clock.advance(hours=22)
        assert [r.name for r in ledger.list_recent()] == ["Edge"]

    def test_purge_holds_for_far_future_clock(self, ledger, clock):
        for name in ("a", "b", "c"):
            ledger.record_leave(name)
        clock.advance(days=400)
        assert ledger.list_recent() == []
        assert len(ledger) == 0


# ============================================================
# Delta classification
# ============================================================

LOBBY = 1
OTHER = 2


@pytest.fixture
def me():
    return User(session=1, name="Botti", channel_id=LOBBY)


@pytest.fixture
def roster(me):
    return {
        me.session: me,
        2: User(session=2, name="Bob", channel_id=LOBBY),
        3: User(session=3, name="Carol", channel_id=OTHER),
    }


class TestClassifyStateDelta:

    def test_delta_without_channel_is_ignored(self, roster, me):
        delta = UserStateDelta(session=2, fields={"self_mute": True})
        assert classify_state_delta(delta, roster, me) is None

    def test_move_into_our_channel_is_join(self, roster, me):
        delta = UserStateDelta(session=3, fields={"channel_id": LOBBY})
        assert classify_state_delta(delta, roster, me) == PresenceTransition(PresenceChange.JOIN, "Carol")

    def test_delta_name_wins_over_roster_name(self, roster, me):
        delta = UserStateDelta(session=3, fields={"channel_id": LOBBY, "name": "Caroline"})
        assert classify_state_delta(delta, roster, me).name == "Caroline"

    def test_new_session_with_name_is_join(self, roster, me):
        delta = UserStateDelta(session=9, fields={"channel_id": LOBBY, "name": "Dave"})
        assert classify_state_delta(delta, roster, me) == PresenceTransition(PresenceChange.JOIN, "Dave")

    def test_new_session_without_name_is_ignored(self, roster, me):
        delta = UserStateDelta(session=9, fields={"channel_id": LOBBY})
        assert classify_state_delta(delta, roster, me) is None

    def test_move_out_of_our_channel_is_leave(self, roster, me):
        delta = UserStateDelta(session=2, fields={"channel_id": OTHER})
        assert classify_state_delta(delta, roster, me) == PresenceTransition(PresenceChange.LEAVE, "Bob")

    def test_move_between_other_channels_is_ignored(self, roster, me):
        delta = UserStateDelta(session=3, fields={"channel_id": 7})
        assert classify_state_delta(delta, roster, me) is None

    def test_our_own_move_is_ignored(self, roster, me):
        delta = UserStateDelta(session=me.session, fields={"channel_id": OTHER})
        assert classify_state_delta(delta, roster, me) is None

    def test_ignored_before_we_are_in_a_channel(self, roster):
        delta = UserStateDelta(session=3, fields={"channel_id": LOBBY})
        assert classify_state_delta(delta, roster, None) is None
        lost = User(session=1, name="Botti", channel_id=None)
        assert classify_state_delta(delta, roster, lost) is None


class TestClassifyRemoval:

    def test_removal_from_our_channel_is_leave(self, roster, me):
        assert classify_removal(2, roster, me) == PresenceTransition(PresenceChange.LEAVE, "Bob")

    def test_removal_elsewhere_is_ignored(self, roster, me):
        assert classify_removal(3, roster, me) is None

    def test_unknown_session_is_ignored(self, roster, me):
        assert classify_removal(42, roster, me) is None

    def test_ignored_before_connected(self, roster):
        assert classify_removal(2, roster, None) is None


class TestTransitionApply:

    def test_apply_leave_then_join(self, ledger):
        PresenceTransition(PresenceChange.LEAVE, "Bob").apply(ledger)
        assert [r.name for r in ledger.list_recent()] == ["Bob"]
        PresenceTransition(PresenceChange.JOIN, "Bob").apply(ledger)
        assert ledger.list_recent() == []
