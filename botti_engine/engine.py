"""
Engine Loop
===========

One queue, one consumer.

    chat client thread ──► router callbacks ──┐
                                              ├──► queue ──► loop thread
    console reader thread ──► console lines ──┘               │
                                                              ▼
                                               router.handle(event)

The loop thread is the only place commands run, the ledger changes
and stats replies are consumed. A console command that issues a stats
request returns at once; the reply is just another event on the same
queue, so the loop stays responsive while it waits.

A failing handler is logged with its traceback and the loop moves on.
"""

from __future__ import annotations

import io
import logging
import os
import queue
import select
import sys
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional, TextIO

from botti_engine.client import ChatClient
from botti_engine.commands import CommandContext, build_dispatcher
from botti_engine.dispatcher import AuthorizationPolicy
from botti_engine.errors import AlreadyRunning
from botti_engine.external import MemoStore, ProcessRunner
from botti_engine.output import ConsoleWriter, OutputSink
from botti_engine.presence import DEFAULT_CAPACITY, DEFAULT_RETENTION, PresenceLedger
from botti_engine.router import ConnectionState, EngineEvent, EventKind, EventRouter
from botti_engine.stats import StatsCorrelator


logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


class ConsoleReader:
    """Reads operator commands on a background thread.

    Uses select() with a short timeout, the same way the terminal chat
    interface polls stdin, so stop() takes effect within one poll
    interval instead of waiting for the next line. Streams without a
    real file descriptor are read with plain readline().

    Polled input is read in raw chunks with os.read() and split into
    lines here. select() is only consulted when no complete line is
    left over, so several lines arriving in one write are all seen.

    End of input is turned into an "exit" command.
    """

    def __init__(
        self,
        on_line: Callable[[str], None],
        stream: Optional[TextIO] = None,
        writer: Optional[ConsoleWriter] = None,
    ):
        self.on_line = on_line
        self.stream = stream or sys.stdin
        self.writer = writer
        self.running = False
        self.input_thread: Optional[threading.Thread] = None
        self._pending = b""

    def start(self) -> None:
        self.running = True
        self.input_thread = threading.Thread(target=self._input_loop, daemon=True)
        self.input_thread.start()

    def stop(self) -> None:
        self.running = False
        if self.input_thread and self.input_thread is not threading.current_thread():
            self.input_thread.join(timeout=1.0)

    def _can_poll(self) -> bool:
        try:
            self.stream.fileno()
        except (AttributeError, io.UnsupportedOperation, ValueError):
            return False
        return True

    def _wait_readable(self, fd: int) -> bool:
        try:
            readable, _, _ = select.select([fd], [], [], POLL_INTERVAL)
        except (OSError, ValueError):
            # Not selectable (e.g. Windows console); fall back to blocking.
            return True
        return bool(readable)

    def _decode(self, data: bytes) -> str:
        encoding = getattr(self.stream, "encoding", None) or "utf-8"
        return data.decode(encoding, errors="replace")

    def _next_polled_line(self) -> Optional[str]:
        """Next line including its newline, "" at end of input, or None
        if no complete line arrived within one poll interval."""
        fd = self.stream.fileno()
        while b"\n" not in self._pending:
            if not self._wait_readable(fd):
                return None
            chunk = os.read(fd, 4096)
            if not chunk:
                # Last line without a newline still counts.
                line, self._pending = self._pending, b""
                return self._decode(line)
            self._pending += chunk
        line, _, self._pending = self._pending.partition(b"\n")
        return self._decode(line + b"\n")

    def _input_loop(self) -> None:
        poll = self._can_poll()
        if self.writer:
            self.writer.show_prompt()
        while self.running:
            try:
                line = self._next_polled_line() if poll else self.stream.readline()
            except (OSError, ValueError):
                break
            if line is None:
                continue
            if not self.running:
                break
            if line == "":
                self.on_line("exit")
                break
            line = line.rstrip("\r\n")
            if line.strip():
                self.on_line(line)
            elif self.writer:
                self.writer.show_prompt()
        self.running = False


class BotEngine:
    """Owns the event queue and wires the components together.

    Parameters
    ----------
    client : ChatClient
        Connection to the voice-chat server.
    home_channel : str or None
        Channel to join once connected.
    admins : iterable of str
        Display names allowed to run privileged commands.
    memo_dir : Path
        Directory of the memo store.
    runner : ProcessRunner or None
        Formula renderer / sandbox interpreter.
    console : callable or None
        Where local output goes (a ConsoleWriter on stdout by default).
    console_input : text stream or None
        Where operator commands are read from (stdin by default).
    """

    def __init__(
        self,
        client: ChatClient,
        home_channel: Optional[str] = None,
        admins: Iterable[str] = (),
        command_marker: str = "!",
        memo_dir: Path = Path("memos"),
        runner: Optional[ProcessRunner] = None,
        stream_url: Optional[str] = None,
        presence_capacity: int = DEFAULT_CAPACITY,
        presence_retention: timedelta = DEFAULT_RETENTION,
        console: Optional[Callable[[str], None]] = None,
        console_input: Optional[TextIO] = None,
    ):
        self.client = client
        self.events: "queue.Queue[EngineEvent]" = queue.Queue()
        self.running = False

        self.writer = console if console is not None else ConsoleWriter()
        self.sink = OutputSink(client, self.writer)
        self.ledger = PresenceLedger(capacity=presence_capacity, retention=presence_retention)
        self.correlator = StatsCorrelator(client)

        self.context = CommandContext(
            client=client,
            sink=self.sink,
            correlator=self.correlator,
            ledger=self.ledger,
            memos=MemoStore(memo_dir),
            runner=runner or ProcessRunner(),
            stop=self.stop,
            stream_url=stream_url,
        )
        self.dispatcher = build_dispatcher(self.context, AuthorizationPolicy(admins))

        self.router = EventRouter(
            client,
            self.ledger,
            self.correlator,
            self.dispatcher,
            self.sink,
            home_channel=home_channel,
            command_marker=command_marker,
            post=self.post,
        )
        self.router.attach()

        self.console_reader = ConsoleReader(
            self.post_console_line,
            stream=console_input,
            writer=self.writer if isinstance(self.writer, ConsoleWriter) else None,
        )

    # ─── Queue ──────────────────────────────────────────────────────

    def post(self, event: EngineEvent) -> None:
        self.events.put(event)

    def post_console_line(self, line: str) -> None:
        self.post(EngineEvent(EventKind.CONSOLE_LINE, line))

    def process_next(self, timeout: Optional[float] = POLL_INTERVAL) -> bool:
        """Handle one queued event. Returns False if none arrived in time."""
        try:
            event = self.events.get(timeout=timeout) if timeout else self.events.get_nowait()
        except queue.Empty:
            return False
        try:
            self.router.handle(event)
        except Exception:
            logger.exception(f"Error handling {event.kind.value} event")
        return True

    def drain(self) -> int:
        """Handle everything already queued, without waiting."""
        handled = 0
        while self.process_next(timeout=None):
            handled += 1
        return handled

    # ─── Lifecycle ──────────────────────────────────────────────────

    def run(self) -> None:
        """Connect, then serve events until stop() is called."""
        if self.running:
            raise AlreadyRunning()

        self.running = True
        self.router.state = ConnectionState.CONNECTING
        try:
            self.client.connect()
            self.console_reader.start()
            while self.running:
                self.process_next()
        finally:
            self.console_reader.stop()
            self.client.disconnect()
            self.router.state = ConnectionState.DISCONNECTED
            self.running = False

    def stop(self) -> None:
        """Stop the loop and the console reader. Safe from any thread."""
        self.running = False
        self.console_reader.running = False
