"""
Start-up wiring tests for botti.py

Run with:  python -m pytest test_botti.py -v
"""

from datetime import timedelta

import pytest

import botti
from botti_engine import LoopbackChatClient
from config_manager import BottiConfig


def build_loopback(server):
	"""client_factory used by the tests below"""
	return LoopbackChatClient(username=server.username, channels=["Lobby"])


def build_nothing(server):
	return object()


class TestClientFactory:

	def test_load_factory(self):
		assert botti.load_client_factory("test_botti:build_loopback") is build_loopback

	@pytest.mark.parametrize("target", ["", "no_colon", ":callable", "module:"])
	def test_malformed_target(self, target):
		with pytest.raises(ValueError):
			botti.load_client_factory(target)

	def test_offline_client(self):
		config = BottiConfig(offline=True)
		config.bot.channel = "Lobby"
		client = botti.create_client(config)
		assert isinstance(client, LoopbackChatClient)
		assert client.find_channel("Lobby") is not None

	def test_factory_client(self):
		config = BottiConfig()
		config.server.username = "Helper"
		config.server.client_factory = "test_botti:build_loopback"
		client = botti.create_client(config)
		assert client.username == "Helper"

	def test_factory_must_return_chat_client(self):
		config = BottiConfig()
		config.server.client_factory = "test_botti:build_nothing"
		with pytest.raises(TypeError):
			botti.create_client(config)


class TestCreateEngine:

	def test_settings_reach_engine(self, tmp_path):
		config = BottiConfig(offline=True)
		config.bot.channel = "Lobby"
		config.bot.admins = ["Alice"]
		config.bot.stream_url = "http://radio.example.org/live"
		config.presence.capacity = 3
		config.presence.retention_hours = 1
		config.memo.directory = str(tmp_path / "memos")

		engine = botti.create_engine(config, botti.create_client(config), console=lambda line: None)

		assert engine.router.home_channel == "Lobby"
		assert engine.dispatcher.policy.admins == frozenset(["Alice"])
		assert engine.dispatcher.get("stream") is not None
		assert engine.dispatcher.get("run") is None
		assert engine.ledger.capacity == 3
		assert engine.ledger.retention == timedelta(hours=1)


class TestMain:

	def test_create_config(self, tmp_path, monkeypatch):
		monkeypatch.chdir(tmp_path)
		assert botti.main(['--create-config', 'sample.yaml']) == 0
		assert (tmp_path / "sample.yaml").exists()

	def test_invalid_config(self, tmp_path, monkeypatch):
		monkeypatch.chdir(tmp_path)
		assert botti.main(['-c', 'none.yaml']) == 1

	def test_bad_factory(self, tmp_path, monkeypatch):
		monkeypatch.chdir(tmp_path)
		(tmp_path / "botti.yaml").write_text(
			"server:\n  client_factory: \"no_such_module_xyz:build\"\n", encoding='utf-8'
		)
		assert botti.main([]) == 1
