#!/usr/bin/env python3
"""
Botti - voice-chat channel bot with an operator console

- Answers !commands in its channel and plain commands on the console
- Tracks who recently left the channel (!lastseen)
- Queries user statistics from the server (!ip, !ping, !idle)
- Renders formulas and keeps memos through external helpers
- Operator and server configuration files in YAML

Channel message → ChatClient callback → EventRouter → engine queue → command
Console line   → ConsoleReader thread ─────────────► engine queue → command

The chat client (wire protocol, certificates, audio) is supplied by the
server.client_factory setting, a "module:callable" that receives the
ServerConfig and returns a botti_engine.ChatClient. --offline runs the
bot against an in-memory server instead.
"""

import sys
import logging
import importlib
from datetime import timedelta
from pathlib import Path

from config_manager import BottiConfig, setup_configuration

from botti_engine import BotEngine, ChatClient, LoopbackChatClient
from botti_engine.external import ProcessRunner


def setup_logging(config: BottiConfig):
	"""Set up logging based on console mode"""
	if config.console.verbose:
		level = logging.DEBUG
	elif config.console.quiet:
		level = logging.WARNING
	else:
		level = getattr(logging, config.console.log_level.upper(), logging.INFO)

	logging.basicConfig(
		level=level,
		format='%(asctime)s %(levelname)s %(name)s: %(message)s',
		datefmt='%H:%M:%S'
	)


def load_client_factory(target: str):
	"""Resolve a "module:callable" string"""
	module_name, _, attr = target.partition(':')
	if not module_name or not attr:
		raise ValueError(f"client_factory must look like 'module:callable', got '{target}'")
	module = importlib.import_module(module_name)
	return getattr(module, attr)


def create_client(config: BottiConfig) -> ChatClient:
	"""Build the chat client for this run"""
	if config.offline:
		channels = [config.bot.channel] if config.bot.channel else []
		return LoopbackChatClient(username=config.server.username, channels=channels)

	factory = load_client_factory(config.server.client_factory)
	client = factory(config.server)
	if not isinstance(client, ChatClient):
		raise TypeError(f"{config.server.client_factory} did not return a ChatClient")
	return client


def create_engine(config: BottiConfig, client: ChatClient, **kwargs) -> BotEngine:
	"""Wire a BotEngine from configuration"""
	runner = ProcessRunner(
		math_command=config.external.math_command,
		interpreter_command=config.external.interpreter_command,
		timeout=config.external.timeout_seconds,
		output_dir=Path(config.external.output_dir) if config.external.output_dir else None,
	)
	return BotEngine(
		client,
		home_channel=config.bot.channel or None,
		admins=config.bot.admins,
		command_marker=config.bot.command_marker,
		memo_dir=Path(config.memo.directory),
		runner=runner,
		stream_url=config.bot.stream_url or None,
		presence_capacity=config.presence.capacity,
		presence_retention=timedelta(hours=config.presence.retention_hours),
		**kwargs
	)


def main(argv=None) -> int:
	config, should_exit, _ = setup_configuration(argv)
	if should_exit:
		return 0 if config is None else 1

	setup_logging(config)
	logger = logging.getLogger("botti")

	try:
		client = create_client(config)
	except (ImportError, AttributeError, ValueError, TypeError) as e:
		logger.error(f"Cannot create chat client: {e}")
		return 1

	engine = create_engine(config, client)

	print("=" * 60)
	print(f"Botti as {config.server.username}" + (" (offline)" if config.offline else f" on {config.server.host}:{config.server.port}"))
	print("Type 'help' for commands, 'exit' to quit")
	print("=" * 60)

	try:
		engine.run()
	except KeyboardInterrupt:
		print("\nInterrupted")
		engine.stop()
	except Exception as e:
		logger.exception(f"Fatal error: {e}")
		return 1

	print("Exiting...")
	return 0


if __name__ == "__main__":
	sys.exit(main())
