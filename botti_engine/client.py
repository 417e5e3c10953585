"""
Chat Client Collaborator
========================

The engine never speaks the voice-chat wire protocol itself. It talks
to a ChatClient, which owns the connection, the live roster and the
channel tree, and which reports protocol events through callbacks.

    ┌──────────────┐  callbacks   ┌──────────────┐
    │  ChatClient   │────────────►│  EventRouter  │
    │  (network)    │◄────────────│  / engine     │
    └──────────────┘  send_text,  └──────────────┘
                      request_stats, join_channel ...

Callback contract
-----------------
USER_STATE and USER_REMOVE callbacks fire *before* the client applies
the change to its roster. The router relies on this to read a user's
previous channel.

USER_STATS replies carry no request id. Whoever asked last gets the
next reply (see stats.StatsCorrelator).

LoopbackChatClient
------------------
An in-memory client with a fake roster. It backs --offline mode and
the test suite: sent text, images and stats requests are recorded,
and the simulate_*() methods fire the same callbacks a live server
connection would.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


# ─── Protocol Data ──────────────────────────────────────────────────

@dataclass
class User:
    """A user as the roster currently knows them."""
    session: int
    name: str
    channel_id: Optional[int] = None


@dataclass
class Channel:
    channel_id: int
    name: str


@dataclass
class TextMessage:
    """An incoming channel message. actor is None for server notices."""
    actor: Optional[int]
    message: str


@dataclass
class UserStateDelta:
    """Only the fields that changed, keyed by protocol field name."""
    session: int
    fields: Dict[str, Any] = field(default_factory=dict)

    def has(self, key: str) -> bool:
        return key in self.fields

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass
class PacketStats:
    good: int = 0
    late: int = 0
    lost: int = 0

    @property
    def total(self) -> int:
        return self.good + self.late + self.lost


@dataclass
class UserStats:
    """Statistics reply for one user.

    address is the 16-byte IPv6 form the server reports; IPv4 clients
    show up as IPv4-mapped addresses.
    """
    session: int
    address: bytes = b""
    tcp_ping_avg: float = 0.0
    tcp_ping_var: float = 0.0
    udp_ping_avg: float = 0.0
    udp_ping_var: float = 0.0
    from_client: PacketStats = field(default_factory=PacketStats)
    from_server: PacketStats = field(default_factory=PacketStats)
    idlesecs: int = 0


class ChatEvent(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TEXT_MESSAGE = "text_message"
    USER_STATE = "user_state"
    USER_REMOVE = "user_remove"
    USER_STATS = "user_stats"


# ─── Client Interface ───────────────────────────────────────────────

class ChatClient(ABC):
    """Interface the engine needs from a voice-chat client."""

    def __init__(self):
        self._callbacks: Dict[ChatEvent, List[Callable[..., None]]] = {
            event: [] for event in ChatEvent
        }

    def add_callback(self, event: ChatEvent, callback: Callable[..., None]) -> None:
        """Register a callback for a protocol event."""
        self._callbacks[event].append(callback)

    def _fire(self, event: ChatEvent, *args) -> None:
        for callback in self._callbacks[event]:
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Error in {event.value} callback")

    @abstractmethod
    def connect(self) -> None:
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...

    @property
    @abstractmethod
    def users(self) -> Dict[int, User]:
        """Live roster keyed by session id."""
        ...

    @property
    @abstractmethod
    def me(self) -> Optional[User]:
        """Our own user record, or None until the server has sent it."""
        ...

    @abstractmethod
    def find_channel(self, name: str) -> Optional[Channel]:
        ...

    @abstractmethod
    def join_channel(self, channel: Channel) -> None:
        ...

    @abstractmethod
    def send_text(self, message: str) -> None:
        """Send already-encoded text to our current channel."""
        ...

    @abstractmethod
    def send_image(self, path: Path) -> None:
        ...

    @abstractmethod
    def request_stats(self, user: User) -> None:
        """Ask the server for user's statistics. The reply arrives
        later through the USER_STATS callback."""
        ...

    @abstractmethod
    def set_self_deaf(self, deaf: bool = True) -> None:
        ...

    def channel_users(self) -> List[User]:
        """Users currently sharing our channel (including us)."""
        me = self.me
        if me is None or me.channel_id is None:
            return []
        return [u for u in self.users.values() if u.channel_id == me.channel_id]


# ─── In-memory Client ───────────────────────────────────────────────

class LoopbackChatClient(ChatClient):
    """A ChatClient without a server.

    Channels and users are added with add_channel()/add_user(). Events
    are injected with the simulate_*() helpers, which follow the live
    callback contract: state and removal callbacks see the roster
    before the change is applied.
    """

    def __init__(self, username: str = "Botti", channels: Optional[List[str]] = None):
        super().__init__()
        self.username = username
        self.connected = False
        self.deafened = False
        self.sent_texts: List[str] = []
        self.sent_images: List[Path] = []
        self.stats_requests: List[User] = []

        self._lock = threading.Lock()
        self._users: Dict[int, User] = {}
        self._channels: Dict[int, Channel] = {}
        self._my_session: Optional[int] = None
        self._next_session = 1
        self._next_channel_id = 0

        self.add_channel("Root")
        for name in channels or []:
            self.add_channel(name)

    # Roster setup

    def add_channel(self, name: str) -> Channel:
        channel = Channel(channel_id=self._next_channel_id, name=name)
        self._channels[channel.channel_id] = channel
        self._next_channel_id += 1
        return channel

    def add_user(self, name: str, channel: Optional[str] = "Root") -> User:
        """Place a user in the roster without firing any callback."""
        chan = self.find_channel(channel) if channel else None
        user = User(
            session=self._next_session,
            name=name,
            channel_id=chan.channel_id if chan else None,
        )
        self._next_session += 1
        with self._lock:
            self._users[user.session] = user
        return user

    # ChatClient interface

    def connect(self) -> None:
        if self.connected:
            return
        self.connected = True
        me = self.add_user(self.username)
        self._my_session = me.session
        logger.info(f"Loopback client connected as {self.username}")
        self._fire(ChatEvent.CONNECTED)

    def disconnect(self) -> None:
        if not self.connected:
            return
        self.connected = False
        with self._lock:
            self._users.pop(self._my_session, None)
        self._my_session = None
        self._fire(ChatEvent.DISCONNECTED)

    @property
    def users(self) -> Dict[int, User]:
        with self._lock:
            return dict(self._users)

    @property
    def me(self) -> Optional[User]:
        if self._my_session is None:
            return None
        return self.users.get(self._my_session)

    def find_channel(self, name: str) -> Optional[Channel]:
        for channel in self._channels.values():
            if channel.name == name:
                return channel
        return None

    def join_channel(self, channel: Channel) -> None:
        me = self.me
        if me is None:
            return
        self.simulate_user_state(me.session, channel_id=channel.channel_id)

    def send_text(self, message: str) -> None:
        self.sent_texts.append(message)

    def send_image(self, path: Path) -> None:
        self.sent_images.append(Path(path))

    def request_stats(self, user: User) -> None:
        self.stats_requests.append(user)

    def set_self_deaf(self, deaf: bool = True) -> None:
        self.deafened = deaf

    # Event simulation

    def simulate_text(self, sender: Optional[User], message: str) -> None:
        actor = sender.session if sender is not None else None
        self._fire(ChatEvent.TEXT_MESSAGE, TextMessage(actor=actor, message=message))

    def simulate_user_state(self, session: int, **fields) -> None:
        """Fire a state delta, then apply it to the roster."""
        delta = UserStateDelta(session=session, fields=dict(fields))
        self._fire(ChatEvent.USER_STATE, delta)
        with self._lock:
            user = self._users.get(session)
            if user is None:
                user = User(session=session, name=fields.get("name", ""))
                self._users[session] = user
            if "name" in fields:
                user.name = fields["name"]
            if "channel_id" in fields:
                user.channel_id = fields["channel_id"]

    def simulate_join(self, name: str, channel: str) -> User:
        """A brand new session connects straight into a channel."""
        chan = self.find_channel(channel)
        session = self._next_session
        self._next_session += 1
        self.simulate_user_state(session, name=name, channel_id=chan.channel_id)
        return self.users[session]

    def simulate_move(self, user: User, channel: str) -> None:
        chan = self.find_channel(channel)
        self.simulate_user_state(user.session, channel_id=chan.channel_id)

    def simulate_remove(self, user: User) -> None:
        """Fire a removal, then drop the user from the roster."""
        self._fire(ChatEvent.USER_REMOVE, user.session)
        with self._lock:
            self._users.pop(user.session, None)

    def simulate_stats(self, stats: UserStats) -> None:
        self._fire(ChatEvent.USER_STATS, stats)
