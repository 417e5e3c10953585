"""
Output Sink
===========

Every reply goes through here. The issuer decides where it goes:

    issuer is None   →  local operator console (plain text)
    issuer is a User →  the channel (encoded, then styled)

Handlers produce plain text plus a Severity. On the channel the text
is encoded first and styled second, so the styling markup itself is
never escaped:

    NORMAL  →  text
    BOLD    →  <b>text</b>
    ERROR   →  <b><span style='color:#ff0000'>text</span></b>

Empty text is never sent.
"""

from __future__ import annotations

import sys
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TextIO

from botti_engine.client import ChatClient, User
from botti_engine.codec import encode


PROMPT = "> "


class Severity(Enum):
    NORMAL = "normal"
    BOLD = "bold"
    ERROR = "error"


def style(text: str, severity: Severity) -> str:
    """Encode plain text for the channel and apply severity markup."""
    safe = encode(text)
    if severity is Severity.BOLD:
        return f"<b>{safe}</b>"
    if severity is Severity.ERROR:
        return f"<b><span style='color:#ff0000'>{safe}</span></b>"
    return safe


class ConsoleWriter:
    """Prints to the operator console and redraws the prompt.

    Output can arrive from the engine loop while the console reader
    is sitting at a prompt, so each message starts on a fresh line.
    """

    def __init__(self, stream: Optional[TextIO] = None, prompt: str = PROMPT):
        self.stream = stream or sys.stdout
        self.prompt = prompt
        self._lock = threading.Lock()

    def __call__(self, message: str) -> None:
        with self._lock:
            self.stream.write(f"\n{message}\n{self.prompt}")
            self.stream.flush()

    def show_prompt(self) -> None:
        with self._lock:
            self.stream.write(self.prompt)
            self.stream.flush()


class OutputSink:
    """Routes replies to the channel or the console."""

    def __init__(self, client: ChatClient, console: Optional[Callable[[str], None]] = None):
        self.client = client
        self.console = console or ConsoleWriter()

    def send(self, issuer: Optional[User], text: str, severity: Severity = Severity.NORMAL) -> None:
        if not text:
            return
        if issuer is None:
            self.console(text)
        else:
            self.client.send_text(style(text, severity))

    def bold(self, issuer: Optional[User], text: str) -> None:
        self.send(issuer, text, Severity.BOLD)

    def error(self, issuer: Optional[User], text: str) -> None:
        self.send(issuer, text, Severity.ERROR)

    def send_raw(self, message: str) -> None:
        """Send channel markup as-is, bypassing encoding."""
        if message:
            self.client.send_text(message)

    def send_image(self, issuer: Optional[User], path: Path) -> None:
        if issuer is None:
            self.console(f"Image: {path}")
        else:
            self.client.send_image(path)

    def log(self, message: str) -> None:
        """Local-only line, e.g. chat traffic echoed to the operator."""
        self.console(message)
