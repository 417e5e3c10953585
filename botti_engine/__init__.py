"""
Botti Command Engine
====================

The event-driven core of Botti, a chat-room automation agent for a
voice-chat server's text channel. It answers commands typed in the
channel (prefixed with '!') and on the local operator console.

Architecture Overview
---------------------

    ┌──────────────┐ callbacks ┌──────────────┐ events ┌────────────┐
    │  ChatClient   │──────────►│ EventRouter   │───────►│ engine     │
    │  (server)     │           │ (classifies)  │ queue  │ loop       │
    └──────▲───────┘           └──────────────┘        └─────┬──────┘
           │                                                 │
           │ send_text / send_image        ┌─────────────────┼──────────────┐
           │                               ▼                 ▼              ▼
    ┌──────┴───────┐              PresenceLedger   StatsCorrelator   CommandDispatcher
    │  OutputSink   │◄────────────────────────────────────────────────── handlers
    └──────┬───────┘
           ▼
      operator console

Console lines enter the same queue from a reader thread, so every
command runs on one thread in arrival order.

Module Structure
----------------
    botti_engine/
    ├── __init__.py     ← This file.
    ├── codec.py        ← encode()/decode() for the channel's rich text.
    ├── client.py       ← ChatClient interface, protocol data types,
    │                     LoopbackChatClient for offline use and tests.
    ├── presence.py     ← PresenceLedger and state-delta classification.
    ├── stats.py        ← StatsCorrelator and ip/ping/idle formatting.
    ├── dispatcher.py   ← parse(), CommandDispatcher, Command ABC,
    │                     AuthorizationPolicy.
    ├── commands.py     ← The command table.
    ├── router.py       ← EventRouter and the connection state machine.
    ├── output.py       ← OutputSink, severity styling, console writer.
    ├── external.py     ← ProcessRunner and MemoStore.
    ├── errors.py       ← BotError taxonomy.
    └── engine.py       ← BotEngine: queue, loop, console reader.

Adding a Command
----------------
    from botti_engine.dispatcher import Command, CommandResult

    class UptimeCommand(Command):
        @property
        def name(self) -> str: return "uptime"

        @property
        def help_text(self) -> str: return "uptime - How long the bot has run"

        def execute(self, invocation) -> CommandResult:
            return CommandResult(command=self.name, summary="3 days")

Register it in commands.build_dispatcher().

Dependencies
------------
Standard library only. Configuration (PyYAML) lives in the top-level
config_manager module.
"""

from botti_engine.client import ChatClient, LoopbackChatClient
from botti_engine.dispatcher import CommandDispatcher, CommandResult
from botti_engine.engine import BotEngine

__all__ = ['BotEngine', 'ChatClient', 'LoopbackChatClient', 'CommandDispatcher', 'CommandResult']
