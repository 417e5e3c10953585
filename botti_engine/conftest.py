"""Shared fixtures for the engine tests."""

import pytest

from botti_engine.client import LoopbackChatClient
from botti_engine.engine import BotEngine


@pytest.fixture
def client():
    return LoopbackChatClient(username="Botti", channels=["Lobby", "Other"])


@pytest.fixture
def console_lines():
    return []


@pytest.fixture
def engine(client, console_lines, tmp_path):
    """A connected engine sitting in Lobby, with Admin as the only admin."""
    bot = BotEngine(
        client,
        home_channel="Lobby",
        admins=["Admin"],
        memo_dir=tmp_path / "memos",
        console=console_lines.append,
    )
    client.connect()
    bot.drain()
    return bot


@pytest.fixture
def in_channel(client, engine):
    """Join users into Lobby and return them by name."""
    def join(*names):
        users = {name: client.simulate_join(name, "Lobby") for name in names}
        engine.drain()
        return users
    return join
