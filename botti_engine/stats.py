"""
Stats Correlator
================

The server answers a statistics request with a reply that does not
say which request it answers. The correlator therefore keeps exactly
one pending callback:

    request(bob, show_idle)   slot = show_idle, ask server about bob
    ... later ...
    on_stats_arrived(stats)   show_idle(stats), slot = empty

Replies are assumed to arrive in request order, and the command path
only ever has one request in flight because commands run one at a
time on the engine loop. If a second request is made before the
first reply arrives, the newer waiter replaces the older one (last
pending wins) and a warning is logged. The late first reply will then
be delivered to the newer waiter. There is no timeout: a reply that
never comes is only noticed when the next request overwrites the slot.

The module also holds the pure formatting helpers for the ip, ping
and idle commands.
"""

from __future__ import annotations

import ipaddress
import logging
import math
import threading
from typing import Callable, Optional, Tuple

from botti_engine.client import ChatClient, PacketStats, User, UserStats


logger = logging.getLogger(__name__)

StatsCallback = Callable[[UserStats], None]

SECONDS_PER_DAY = 24 * 60 * 60


class StatsCorrelator:
    """Single-slot request/reply matcher for user statistics."""

    def __init__(self, client: ChatClient):
        self._client = client
        self._pending: Optional[StatsCallback] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def request(self, user: User, on_reply: StatsCallback) -> None:
        """Store on_reply and ask the server for user's statistics."""
        with self._lock:
            if self._pending is not None:
                logger.warning(
                    f"Stats request for {user.name} replaces a request still waiting for its reply"
                )
            self._pending = on_reply
        self._client.request_stats(user)

    def on_stats_arrived(self, stats: UserStats) -> bool:
        """Hand stats to the pending callback, if any.

        Returns True when a callback consumed the reply.
        """
        with self._lock:
            callback = self._pending
            self._pending = None
        if callback is None:
            logger.debug(f"Discarding unrequested stats for session {stats.session}")
            return False
        callback(stats)
        return True


# ─── Formatting ─────────────────────────────────────────────────────

def format_address(raw: bytes) -> str:
    """Human-readable address from the raw bytes in a stats reply.

    IPv4 clients are reported as IPv4-mapped IPv6 (::ffff:a.b.c.d);
    those are shown as plain IPv4.

    Raises
    ------
    ValueError
        If raw is neither 4 nor 16 bytes long.
    """
    if len(raw) == 4:
        return str(ipaddress.IPv4Address(raw))
    if len(raw) != 16:
        raise ValueError(f"Unexpected address length: {len(raw)} bytes")
    address = ipaddress.IPv6Address(raw)
    if address.ipv4_mapped is not None:
        return str(address.ipv4_mapped)
    return address.compressed


def loss_percentages(packets: PacketStats) -> Tuple[float, float]:
    """(lost %, late %) for one direction; 0.0 when nothing was seen."""
    total = packets.total
    if total == 0:
        return 0.0, 0.0
    return 100.0 * packets.lost / total, 100.0 * packets.late / total


def _deviation(variance: float) -> float:
    return math.sqrt(max(variance, 0.0))


def format_ping(stats: UserStats) -> str:
    """Latency and packet loss report, one line per measurement.

    Loss-> is server to client, Loss<- is client to server.
    """
    to_lost, to_late = loss_percentages(stats.from_server)
    from_lost, from_late = loss_percentages(stats.from_client)
    return "\n".join([
        f"TCP: {stats.tcp_ping_avg:.1f} ± {_deviation(stats.tcp_ping_var):.1f} ms",
        f"UDP: {stats.udp_ping_avg:.1f} ± {_deviation(stats.udp_ping_var):.1f} ms",
        f"Loss->: {to_lost:.2f} % / {to_late:.2f} %",
        f"Loss<-: {from_lost:.2f} % / {from_late:.2f} %",
    ])


def format_idle(seconds: int) -> str:
    """HH:MM:SS below a day, otherwise "More than a day"."""
    seconds = max(int(seconds), 0)
    if seconds >= SECONDS_PER_DAY:
        return "More than a day"
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
