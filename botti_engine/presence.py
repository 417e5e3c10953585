"""
Presence Ledger
===============

Remembers who recently left the bot's channel, for the !lastseen
command.

    record_leave("Bob")   →  [Bob 14:02, Alice 13:55, ...]
    record_join("Bob")    →  [Alice 13:55, ...]   (Bob is back)

Rules
-----
- At most one record per name. A newer leave replaces the older one.
- Most recent first, never more than `capacity` records (default 5).
- Records older than `retention` (default 22 hours) are purged every
  time the list is read.

State Deltas
------------
The server reports user changes as partial deltas, not snapshots.
classify_state_delta() and classify_removal() turn one delta plus the
*current* roster (read before the delta is applied) into a
PresenceTransition, or None when the delta is not a join or leave of
the bot's channel. They are pure functions so the router can run them
synchronously inside the client callback, while the roster still
shows the user's previous channel.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from botti_engine.client import User, UserStateDelta


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5
DEFAULT_RETENTION = timedelta(hours=22)


# ─── Ledger ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PresenceRecord:
    name: str
    last_seen_at: datetime


class PresenceLedger:
    """Bounded, time-decayed history of recent departures."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.capacity = capacity
        self.retention = retention
        self._clock = clock
        self._records: List[PresenceRecord] = []
        self._lock = threading.Lock()

    def record_join(self, name: str) -> None:
        """A user arrived; they are no longer "recently left"."""
        logger.info(f"{name} joined.")
        with self._lock:
            self._remove(name)

    def record_leave(self, name: str) -> None:
        logger.info(f"{name} left.")
        with self._lock:
            self._remove(name)
            self._records.insert(0, PresenceRecord(name, self._clock()))
            del self._records[self.capacity:]

    def list_recent(self) -> List[PresenceRecord]:
        """Purge expired records and return the rest, newest first."""
        cutoff = self._clock() - self.retention
        with self._lock:
            self._records = [r for r in self._records if r.last_seen_at >= cutoff]
            return list(self._records)

    def _remove(self, name: str) -> None:
        self._records = [r for r in self._records if r.name != name]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# ─── Delta Classification ───────────────────────────────────────────

class PresenceChange(Enum):
    JOIN = "join"
    LEAVE = "leave"


@dataclass(frozen=True)
class PresenceTransition:
    change: PresenceChange
    name: str

    def apply(self, ledger: PresenceLedger) -> None:
        if self.change is PresenceChange.JOIN:
            ledger.record_join(self.name)
        else:
            ledger.record_leave(self.name)


def classify_state_delta(
    delta: UserStateDelta,
    roster: Dict[int, User],
    me: Optional[User],
) -> Optional[PresenceTransition]:
    """Work out whether a state delta is a join or a leave of our channel.

    Parameters
    ----------
    delta : UserStateDelta
        The changed fields only.
    roster : dict
        Session → User, as it was *before* the delta is applied.
    me : User or None
        The bot's own roster entry.

    Returns
    -------
    PresenceTransition or None
        None for anything that is not a join/leave of the bot's
        channel: deltas without a channel_id, our own moves, deltas
        for unknown sessions, and anything before we are in a channel.
    """
    if me is None or me.channel_id is None:
        return None
    if delta.session == me.session:
        return None
    if not delta.has("channel_id"):
        logger.debug(f"Ignoring state change without channel: {delta.fields}")
        return None

    previous = roster.get(delta.session)
    new_channel = delta.get("channel_id")

    if new_channel == me.channel_id:
        # A delta carrying a name wins; it covers join-and-rename.
        name = delta.get("name") or (previous.name if previous else None)
        if not name:
            return None
        return PresenceTransition(PresenceChange.JOIN, name)

    if previous is not None and previous.channel_id == me.channel_id:
        return PresenceTransition(PresenceChange.LEAVE, previous.name)

    return None


def classify_removal(
    session: int,
    roster: Dict[int, User],
    me: Optional[User],
) -> Optional[PresenceTransition]:
    """A user disconnected; it counts as a leave if they were with us."""
    if me is None or me.channel_id is None or session == me.session:
        return None
    user = roster.get(session)
    if user is None:
        return None
    if user.channel_id == me.channel_id:
        return PresenceTransition(PresenceChange.LEAVE, user.name)
    return None
