"""
Error Taxonomy
==============

Every failure a command handler can report to its issuer is a
BotError subclass. The dispatcher turns these into error results;
anything else escaping a handler is a bug and is logged by the
engine loop, which keeps running.

    UsageError           Missing or malformed argument → usage string
    NotFoundError        Named user/channel/memo absent
    ValidationError      Name fails the charset/length rule
    ProtocolIgnorable    Event that should be dropped silently
    ExternalProcessError Renderer/interpreter failed (non-fatal)

There is no "forbidden" error on purpose: an unauthorized issuer
gets the same "Unknown command" reply as a mistyped verb.
"""


class BotError(Exception):
    """Base class for issuer-visible command failures."""


class UsageError(BotError):
    """The command was called without a required argument."""


class NotFoundError(BotError):
    """A named user, channel or memo does not exist."""


class ValidationError(BotError):
    """An argument failed validation before any I/O was attempted."""


class ProtocolIgnorable(BotError):
    """A protocol event that carries nothing we can act on."""


class ExternalProcessError(BotError):
    """An external helper process failed or timed out."""


class AlreadyRunning(Exception):
    """Raised when run() is called on an engine that is already running."""
