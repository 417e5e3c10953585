"""
Event Router
============

Turns chat client callbacks into engine events and handles those
events on the engine loop.

Two halves
----------
Callback half (runs on whatever thread the chat client uses):

    CONNECTED / DISCONNECTED  →  update ConnectionState, enqueue
    TEXT_MESSAGE              →  resolve sender, enqueue
    USER_STATE / USER_REMOVE  →  classify against the roster NOW,
                                 enqueue the PresenceTransition
    USER_STATS                →  enqueue

Presence has to be classified inside the callback: the delta only
says where the user is going, and the roster only remembers where
they came from until the client applies the delta.

Loop half (engine thread only): everything that mutates the ledger,
consumes stats or runs a command. That keeps command execution and
the single stats slot strictly ordered.

Connection State
----------------
    DISCONNECTED → CONNECTING → CONNECTED → DISCONNECTED

Presence events are dropped unless CONNECTED and the bot is inside a
channel; before that the roster is still being filled in and every
user would look like a join.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from botti_engine.client import ChatClient, ChatEvent, TextMessage, User, UserStateDelta, UserStats
from botti_engine.codec import decode
from botti_engine.dispatcher import CommandDispatcher, CommandResult
from botti_engine.errors import ProtocolIgnorable
from botti_engine.output import OutputSink, Severity
from botti_engine.presence import (
    PresenceLedger,
    PresenceTransition,
    classify_removal,
    classify_state_delta,
)
from botti_engine.stats import StatsCorrelator


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EventKind(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TEXT_MESSAGE = "text_message"
    PRESENCE = "presence"
    STATS = "stats"
    CONSOLE_LINE = "console_line"


@dataclass(frozen=True)
class EngineEvent:
    kind: EventKind
    payload: Any = None


@dataclass(frozen=True)
class ChannelMessage:
    """A text message with its sender resolved at arrival time."""
    message: TextMessage
    sender: Optional[User]


class EventRouter:
    """Routes protocol events to the ledger, the correlator and the
    dispatcher.

    Parameters
    ----------
    post : callable
        Enqueues an EngineEvent for the loop thread. The engine passes
        its queue's put(); tests may pass router.handle to process
        events synchronously.
    """

    def __init__(
        self,
        client: ChatClient,
        ledger: PresenceLedger,
        correlator: StatsCorrelator,
        dispatcher: CommandDispatcher,
        sink: OutputSink,
        home_channel: Optional[str] = None,
        command_marker: str = "!",
        post: Optional[Callable[[EngineEvent], None]] = None,
    ):
        self.client = client
        self.ledger = ledger
        self.correlator = correlator
        self.dispatcher = dispatcher
        self.sink = sink
        self.home_channel = home_channel
        self.command_marker = command_marker
        self.post = post or self.handle
        self.state = ConnectionState.DISCONNECTED

    def attach(self) -> None:
        """Subscribe to the chat client's callbacks."""
        self.client.add_callback(ChatEvent.CONNECTED, self.on_connected)
        self.client.add_callback(ChatEvent.DISCONNECTED, self.on_disconnected)
        self.client.add_callback(ChatEvent.TEXT_MESSAGE, self.on_text_message)
        self.client.add_callback(ChatEvent.USER_STATE, self.on_user_state)
        self.client.add_callback(ChatEvent.USER_REMOVE, self.on_user_remove)
        self.client.add_callback(ChatEvent.USER_STATS, self.on_user_stats)

    # ─── Callback half ──────────────────────────────────────────────

    def on_connected(self) -> None:
        self.state = ConnectionState.CONNECTED
        self.post(EngineEvent(EventKind.CONNECTED))

    def on_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.post(EngineEvent(EventKind.DISCONNECTED))

    def on_text_message(self, message: TextMessage) -> None:
        sender = None
        if message.actor is not None:
            sender = self.client.users.get(message.actor)
        self.post(EngineEvent(EventKind.TEXT_MESSAGE, ChannelMessage(message, sender)))

    def on_user_state(self, delta: UserStateDelta) -> None:
        if self.state is not ConnectionState.CONNECTED:
            return
        transition = classify_state_delta(delta, self.client.users, self.client.me)
        if transition is not None:
            self.post(EngineEvent(EventKind.PRESENCE, transition))

    def on_user_remove(self, session: int) -> None:
        if self.state is not ConnectionState.CONNECTED:
            return
        transition = classify_removal(session, self.client.users, self.client.me)
        if transition is not None:
            self.post(EngineEvent(EventKind.PRESENCE, transition))

    def on_user_stats(self, stats: UserStats) -> None:
        self.post(EngineEvent(EventKind.STATS, stats))

    # ─── Loop half ──────────────────────────────────────────────────

    def handle(self, event: EngineEvent) -> None:
        try:
            self._handle(event)
        except ProtocolIgnorable as e:
            logger.debug(f"Ignoring {event.kind.value} event: {e}")

    def _handle(self, event: EngineEvent) -> None:
        if event.kind is EventKind.CONNECTED:
            self.handle_connected()
        elif event.kind is EventKind.DISCONNECTED:
            logger.info("Disconnected from server")
        elif event.kind is EventKind.TEXT_MESSAGE:
            self.handle_text_message(event.payload)
        elif event.kind is EventKind.PRESENCE:
            self.handle_presence(event.payload)
        elif event.kind is EventKind.STATS:
            self.correlator.on_stats_arrived(event.payload)
        elif event.kind is EventKind.CONSOLE_LINE:
            self.execute_line(None, event.payload)

    def handle_connected(self) -> None:
        logger.info("Connected to server")
        self.client.set_self_deaf(True)
        if not self.home_channel:
            return
        channel = self.client.find_channel(self.home_channel)
        if channel is None:
            logger.error(f"Cannot find channel '{self.home_channel}', staying where we are")
            return
        self.client.join_channel(channel)

    def handle_text_message(self, channel_message: ChannelMessage) -> None:
        message = channel_message.message
        if message.actor is None:
            self.sink.log(f"$ {decode(message.message)}")
            return

        sender = channel_message.sender
        if sender is None:
            raise ProtocolIgnorable(f"unknown session {message.actor}")

        self.sink.log(f"{sender.name}: {decode(message.message)}")
        if message.message.startswith(self.command_marker):
            self.execute_line(sender, message.message[len(self.command_marker):])

    def handle_presence(self, transition: PresenceTransition) -> None:
        transition.apply(self.ledger)

    def execute_line(self, issuer: Optional[User], line: str) -> CommandResult:
        """Parse, dispatch and answer one command line.

        Channel lines are passed on still encoded; see
        CommandDispatcher.dispatch_line.
        """
        result = self.dispatcher.dispatch_line(issuer, line)
        severity = Severity.ERROR if result.is_error else result.severity
        self.sink.send(issuer, result.text, severity)
        return result
