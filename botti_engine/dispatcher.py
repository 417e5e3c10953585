"""
Command Dispatcher
==================

The central routing table for Botti commands.

Role in the System
------------------
Both the operator console and the channel feed command lines in
here. The channel strips its '!' marker first; after that, the two
paths are identical except for the issuer:

    Channel: "!idle Bob"          Console: "idle Bob"
                  ↓                            ↓
    parse() → verb "idle", argument "Bob"
                  ↓
    CommandInvocation(issuer=<Alice>|None, verb, argument)
                  ↓
    Dispatcher looks up "idle" → found, not privileged
                  ↓
    IdleCommand.execute(invocation) → CommandResult
                  ↓
    Caller hands the result to the OutputSink

Design Decisions
----------------
- Verbs are matched exactly (case-sensitive), like the names in the
  authorization list.
- A line is split at the first space *or* the first <br /> marker,
  whichever comes first. Channel clients send multi-line input with
  <br />, so "math<br />x^2" is the verb "math" with argument "x^2".
- Privileged commands are invisible to unauthorized issuers. The
  dispatcher records the difference (DispatchOutcome.UNAUTHORIZED vs
  UNKNOWN_VERB) but both render as "Unknown command: <verb>".
- issuer None is the local console and is always authorized.
- Handlers raise BotError subclasses; the dispatcher turns them into
  results. UsageError is shown in bold, the rest as errors.

Classes
-------
CommandInvocation   Who asked for what.
CommandResult       Structured output from a command.
Command (ABC)       Base class for handlers.
AuthorizationPolicy Static set of privileged names.
CommandDispatcher   Registry and router.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from botti_engine.client import User
from botti_engine.codec import LINE_BREAK, decode
from botti_engine.errors import BotError, UsageError
from botti_engine.output import Severity


class DispatchOutcome(Enum):
    EXECUTED = "executed"
    UNKNOWN_VERB = "unknown_verb"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class CommandInvocation:
    """One parsed command line and who issued it.

    Attributes
    ----------
    issuer : User or None
        The channel user who sent the command, or None for the
        trusted local console.
    verb : str
        First token of the line.
    argument : str or None
        Everything after the first delimiter; None when the line
        had no delimiter at all.
    """
    issuer: Optional[User]
    verb: str
    argument: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.issuer is None


@dataclass
class CommandResult:
    """Structured output from a command execution.

    Attributes
    ----------
    command : str
        The verb that produced this result.
    summary : str
        Plain text for the issuer. An empty summary sends nothing,
        which is what commands with deferred replies return.
    severity : Severity
        How the summary is styled on the channel.
    error : str or None
        If set, the command failed; summary is ignored.
    outcome : DispatchOutcome
        Whether a handler actually ran.
    """
    command: str
    summary: str = ""
    severity: Severity = Severity.NORMAL
    error: Optional[str] = None
    outcome: DispatchOutcome = DispatchOutcome.EXECUTED

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def text(self) -> str:
        return self.error if self.is_error else self.summary


def parse(line: str) -> Tuple[str, Optional[str]]:
    """Split a command line into (verb, argument).

    The verb ends at the earliest space or line-break marker. The
    argument is the rest of the line after that delimiter, or None
    when there is no delimiter.

        parse("idle Bob")          → ("idle", "Bob")
        parse("math<br />x^2")     → ("math", "x^2")
        parse("lastseen")          → ("lastseen", None)
    """
    candidates = []
    space = line.find(" ")
    if space >= 0:
        candidates.append((space, 1))
    br = line.find(LINE_BREAK)
    if br >= 0:
        candidates.append((br, len(LINE_BREAK)))
    if not candidates:
        return line, None
    index, width = min(candidates)
    return line[:index], line[index + width:]


def plain_text(invocation: CommandInvocation, text: str) -> str:
    """Decode text that came from the channel; console text is already plain."""
    return text if invocation.is_local else decode(text)


class AuthorizationPolicy:
    """Static set of display names allowed to use privileged commands."""

    def __init__(self, admins: Iterable[str] = ()):
        self.admins = frozenset(admins)

    def is_authorized(self, issuer: Optional[User]) -> bool:
        return issuer is None or issuer.name in self.admins


class Command(ABC):
    """Base class for all Botti commands.

    Required Properties
    -------------------
    name : str
        The verb, exactly as typed.
    help_text : str
        One-line usage shown by the help command.

    Required Methods
    ----------------
    execute(invocation) -> CommandResult
        Raise a BotError subclass for issuer-visible failures.

    Optional Properties
    -------------------
    privileged : bool
        Restrict to the authorization policy (default False).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def help_text(self) -> str:
        ...

    @property
    def privileged(self) -> bool:
        return False

    @abstractmethod
    def execute(self, invocation: CommandInvocation) -> CommandResult:
        ...

    def require_argument(self, invocation: CommandInvocation, usage: str) -> str:
        """Return the argument, or raise UsageError if it is missing."""
        if invocation.argument is None or not invocation.argument.strip():
            raise UsageError(f"Usage: {usage}")
        return invocation.argument

    def text_argument(self, invocation: CommandInvocation, usage: str) -> str:
        """The argument as plain text (see plain_text)."""
        return plain_text(invocation, self.require_argument(invocation, usage))


class CommandDispatcher:
    """Routes command invocations to registered handlers.

    Registration happens at startup. dispatch() is only ever called
    from the engine loop thread.
    """

    def __init__(self, policy: Optional[AuthorizationPolicy] = None):
        self.policy = policy or AuthorizationPolicy()
        self._commands: dict[str, Command] = {}

    def register(self, command: Command) -> None:
        """Register a command handler.

        Raises
        ------
        ValueError
            If the verb is already registered.
        """
        if command.name in self._commands:
            raise ValueError(f"Command name collision: '{command.name}' is already registered")
        self._commands[command.name] = command

    def get(self, verb: str) -> Optional[Command]:
        return self._commands.get(verb)

    def resolve(self, invocation: CommandInvocation) -> Tuple[DispatchOutcome, Optional[Command]]:
        command = self._commands.get(invocation.verb)
        if command is None:
            return DispatchOutcome.UNKNOWN_VERB, None
        if command.privileged and not self.policy.is_authorized(invocation.issuer):
            return DispatchOutcome.UNAUTHORIZED, None
        return DispatchOutcome.EXECUTED, command

    def dispatch(self, invocation: CommandInvocation) -> CommandResult:
        """Run the handler for an invocation.

        Unknown verbs and unauthorized privileged verbs produce the
        same error text.
        """
        outcome, command = self.resolve(invocation)
        if command is None:
            return CommandResult(
                command=invocation.verb,
                error=f"Unknown command: {invocation.verb}",
                outcome=outcome,
            )

        try:
            return command.execute(invocation)
        except UsageError as e:
            return CommandResult(command=command.name, summary=str(e), severity=Severity.BOLD)
        except BotError as e:
            return CommandResult(command=command.name, error=str(e))

    def dispatch_line(self, issuer: Optional[User], line: str) -> CommandResult:
        """Parse and dispatch one command line.

        A channel line (issuer set) is still encoded. It is split on the
        encoded text and then the verb is decoded. The argument is left
        encoded: `text` relays it verbatim and the other handlers decode
        it through plain_text(). Console lines are plain text throughout.
        """
        verb, argument = parse(line)
        if issuer is not None:
            verb = decode(verb)
        return self.dispatch(CommandInvocation(issuer=issuer, verb=verb, argument=argument))

    def list_commands(self, include_privileged: bool = False) -> list[tuple[str, str]]:
        """Return (name, help_text) pairs, sorted by name."""
        return sorted(
            (cmd.name, cmd.help_text)
            for cmd in self._commands.values()
            if include_privileged or not cmd.privileged
        )
