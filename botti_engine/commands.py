"""
Command Handlers
================

The fixed command table. Every handler gets its collaborators through
a shared CommandContext and returns a CommandResult.

    help                    List public commands
    exit         (admin)    Stop the bot
    text <msg>   (admin)    Relay channel markup verbatim
    channel <n>  (admin)    Move the bot to another channel
    ip <user>               Network address of a user in our channel
    ping <user>             Latency and packet loss of a user
    idle <user>             How long a user has been idle
    lastseen                Who recently left our channel
    math <formula>          Render a formula as an image
    run <code>              Run code in the sandboxed interpreter
    memo <name>             Show a memo
    addmemo <name> <text>   Save a memo
    delmemo <name>          Delete a memo
    stream                  Show the configured stream URL

Deferred Replies
----------------
ip, ping and idle need a statistics reply from the server. They
return an empty result straight away (nothing is sent) and register a
callback with the StatsCorrelator; the callback writes the reply
through the OutputSink when the stats arrive.

Arguments
---------
Arguments from the channel arrive encoded (&nbsp;, <br />, &amp;...),
while console arguments are plain text. Handlers that use an argument
as a name or as raw text go through text_argument() / plain_text(),
which decode channel input only; `text` relays it untouched.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

from botti_engine.client import ChatClient, User, UserStats
from botti_engine.dispatcher import (
    AuthorizationPolicy,
    Command,
    CommandDispatcher,
    CommandInvocation,
    CommandResult,
    parse,
    plain_text,
)
from botti_engine.errors import NotFoundError, UsageError
from botti_engine.external import MemoStore, ProcessRunner, validate_memo_name
from botti_engine.output import OutputSink, Severity
from botti_engine.presence import PresenceLedger
from botti_engine.stats import StatsCorrelator, format_address, format_idle, format_ping


logger = logging.getLogger(__name__)


@dataclass
class CommandContext:
    """Everything a handler may touch."""
    client: ChatClient
    sink: OutputSink
    correlator: StatsCorrelator
    ledger: PresenceLedger
    memos: MemoStore
    runner: ProcessRunner = field(default_factory=ProcessRunner)
    stop: Callable[[], None] = lambda: None
    stream_url: Optional[str] = None


def _result(command: Command, summary: str = "", severity: Severity = Severity.NORMAL) -> CommandResult:
    return CommandResult(command=command.name, summary=summary, severity=severity)


# ─── General ────────────────────────────────────────────────────────

class HelpCommand(Command):

    def __init__(self, dispatcher: CommandDispatcher):
        self.dispatcher = dispatcher

    @property
    def name(self) -> str:
        return "help"

    @property
    def help_text(self) -> str:
        return "help - List available commands"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        lines = ["Commands:"]
        lines += [f"  {help_text}" for _, help_text in self.dispatcher.list_commands()]
        return _result(self, "\n".join(lines))


class LastSeenCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "lastseen"

    @property
    def help_text(self) -> str:
        return "lastseen - Users who recently left this channel"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        records = self.context.ledger.list_recent()
        if not records:
            return _result(self, "No users.", Severity.BOLD)
        lines = [f"{r.name}: {r.last_seen_at.strftime('%H:%M')}" for r in records]
        return _result(self, "\n" + "\n".join(lines), Severity.BOLD)


class StreamCommand(Command):

    def __init__(self, url: str):
        self.url = url

    @property
    def name(self) -> str:
        return "stream"

    @property
    def help_text(self) -> str:
        return "stream - Show the stream URL"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        return _result(self, self.url, Severity.BOLD)


# ─── Administration ─────────────────────────────────────────────────

class ExitCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "exit"

    @property
    def help_text(self) -> str:
        return "exit - Shut the bot down"

    @property
    def privileged(self) -> bool:
        return True

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        who = "console" if invocation.is_local else invocation.issuer.name
        logger.info(f"Exit requested by {who}")
        self.context.stop()
        return _result(self)


class TextCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "text"

    @property
    def help_text(self) -> str:
        return "text <message> - Say something in the channel"

    @property
    def privileged(self) -> bool:
        return True

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        message = self.require_argument(invocation, "text <message>")
        self.context.sink.send_raw(message)
        return _result(self)


class ChannelCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "channel"

    @property
    def help_text(self) -> str:
        return "channel <channel> - Move the bot to another channel"

    @property
    def privileged(self) -> bool:
        return True

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        name = self.text_argument(invocation, "channel <channel>")
        channel = self.context.client.find_channel(name)
        if channel is None:
            raise NotFoundError(f"Error: Cannot find channel '{name}'.")
        logger.info(f"Joining channel {channel.name}")
        self.context.client.join_channel(channel)
        return _result(self)


# ─── User Statistics ────────────────────────────────────────────────

class StatsCommand(Command):
    """Base for commands answered from a user statistics reply."""

    def __init__(self, context: CommandContext):
        self.context = context

    def find_channel_user(self, name: str) -> Optional[User]:
        for user in self.context.client.channel_users():
            if user.name == name:
                return user
        return None

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        name = self.text_argument(invocation, f"{self.name} <user>")
        target = self.find_channel_user(name)
        if target is None:
            raise NotFoundError(f"Error: Cannot find user '{name}'.")

        issuer = invocation.issuer

        def on_reply(stats: UserStats) -> None:
            self.reply(issuer, stats)

        self.context.correlator.request(target, on_reply)
        return _result(self)

    @abstractmethod
    def reply(self, issuer: Optional[User], stats: UserStats) -> None:
        """Answer issuer once the stats arrive."""
        ...


class IpCommand(StatsCommand):

    @property
    def name(self) -> str:
        return "ip"

    @property
    def help_text(self) -> str:
        return "ip <user> - Show a user's address"

    def reply(self, issuer: Optional[User], stats: UserStats) -> None:
        try:
            address = format_address(stats.address)
        except ValueError:
            self.context.sink.error(issuer, "Error: No address available.")
            return
        self.context.sink.bold(issuer, address)


class PingCommand(StatsCommand):

    @property
    def name(self) -> str:
        return "ping"

    @property
    def help_text(self) -> str:
        return "ping <user> - Show a user's latency and packet loss"

    def reply(self, issuer: Optional[User], stats: UserStats) -> None:
        self.context.sink.send(issuer, "\n" + format_ping(stats))


class IdleCommand(StatsCommand):

    @property
    def name(self) -> str:
        return "idle"

    @property
    def help_text(self) -> str:
        return "idle <user> - Show how long a user has been idle"

    def reply(self, issuer: Optional[User], stats: UserStats) -> None:
        self.context.sink.bold(issuer, format_idle(stats.idlesecs))


# ─── External Helpers ───────────────────────────────────────────────

class MathCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "math"

    @property
    def help_text(self) -> str:
        return "math <formula> - Render a formula"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        formula = self.text_argument(invocation, "math <formula>")
        path = self.context.runner.render_formula(formula)
        self.context.sink.send_image(invocation.issuer, path)
        return _result(self)


class RunCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "run"

    @property
    def help_text(self) -> str:
        return "run <code> - Run code in the sandbox"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        code = self.text_argument(invocation, "run <code>")
        output = self.context.runner.run_code(code)
        text = output.format() or "(no output)"
        return _result(self, "\n" + text)


# ─── Memos ──────────────────────────────────────────────────────────

class MemoCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "memo"

    @property
    def help_text(self) -> str:
        return "memo <name> - Show a memo"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        name = validate_memo_name(self.text_argument(invocation, "memo <name>"))
        return _result(self, self.context.memos.get(name))


class AddMemoCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "addmemo"

    @property
    def help_text(self) -> str:
        return "addmemo <name> <text> - Save a memo"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        usage = "addmemo <name> <text>"
        name, text = parse(self.require_argument(invocation, usage))
        name = validate_memo_name(plain_text(invocation, name))
        if text is None or not text.strip():
            raise UsageError(f"Usage: {usage}")
        self.context.memos.put(name, plain_text(invocation, text))
        return _result(self, f"Memo '{name}' saved.", Severity.BOLD)


class DelMemoCommand(Command):

    def __init__(self, context: CommandContext):
        self.context = context

    @property
    def name(self) -> str:
        return "delmemo"

    @property
    def help_text(self) -> str:
        return "delmemo <name> - Delete a memo"

    def execute(self, invocation: CommandInvocation) -> CommandResult:
        name = validate_memo_name(self.text_argument(invocation, "delmemo <name>"))
        self.context.memos.delete(name)
        return _result(self, f"Memo '{name}' deleted.", Severity.BOLD)


# ─── Table ──────────────────────────────────────────────────────────

def build_dispatcher(context: CommandContext, policy: AuthorizationPolicy) -> CommandDispatcher:
    """Build the dispatcher with every command this context supports.

    run and stream are only registered when their helper or URL is
    configured.
    """
    dispatcher = CommandDispatcher(policy)
    dispatcher.register(HelpCommand(dispatcher))
    dispatcher.register(ExitCommand(context))
    dispatcher.register(TextCommand(context))
    dispatcher.register(ChannelCommand(context))
    dispatcher.register(IpCommand(context))
    dispatcher.register(PingCommand(context))
    dispatcher.register(IdleCommand(context))
    dispatcher.register(LastSeenCommand(context))
    dispatcher.register(MathCommand(context))
    dispatcher.register(MemoCommand(context))
    dispatcher.register(AddMemoCommand(context))
    dispatcher.register(DelMemoCommand(context))
    if context.runner.can_run_code:
        dispatcher.register(RunCommand(context))
    if context.stream_url:
        dispatcher.register(StreamCommand(context.stream_url))
    return dispatcher
