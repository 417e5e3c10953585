#!/usr/bin/env python3
"""
Configuration system for Botti
Supports YAML files, CLI overrides, and programmatic access
"""

import yaml
import argparse
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from copy import deepcopy


@dataclass
class ServerConfig:
	"""Voice-chat server connection settings"""
	host: str = "localhost"
	port: int = 64738
	username: str = "Botti"
	password: str = ""
	cert_dir: str = "."
	client_factory: str = ""  # "module:callable" returning a ChatClient

	def to_dict(self) -> Dict[str, Any]:
		return {
			'host': self.host,
			'port': self.port,
			'username': self.username,
			'password': self.password,
			'cert_dir': self.cert_dir,
			'client_factory': self.client_factory
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'ServerConfig':
		return cls(
			host=data.get('host', 'localhost'),
			port=data.get('port', 64738),
			username=data.get('username', 'Botti'),
			password=data.get('password', ''),
			cert_dir=data.get('cert_dir', '.'),
			client_factory=data.get('client_factory', '') or ''
		)


@dataclass
class BotConfig:
	"""Channel behaviour and command permissions"""
	channel: str = ""
	admins: List[str] = field(default_factory=list)
	command_marker: str = "!"
	stream_url: str = ""  # empty disables the stream command

	def to_dict(self) -> Dict[str, Any]:
		return {
			'channel': self.channel,
			'admins': list(self.admins),
			'command_marker': self.command_marker,
			'stream_url': self.stream_url
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'BotConfig':
		return cls(
			channel=data.get('channel', ''),
			admins=list(data.get('admins') or []),
			command_marker=data.get('command_marker', '!'),
			stream_url=data.get('stream_url', '') or ''
		)


@dataclass
class PresenceConfig:
	"""Recently-left history for !lastseen"""
	capacity: int = 5
	retention_hours: float = 22

	def to_dict(self) -> Dict[str, Any]:
		return {
			'capacity': self.capacity,
			'retention_hours': self.retention_hours
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'PresenceConfig':
		return cls(
			capacity=data.get('capacity', 5),
			retention_hours=data.get('retention_hours', 22)
		)


@dataclass
class MemoConfig:
	"""Memo store location"""
	directory: str = "memos"


@dataclass
class ExternalConfig:
	"""Helper processes for !math and !run (empty command disables)"""
	math_command: List[str] = field(default_factory=list)
	interpreter_command: List[str] = field(default_factory=list)
	timeout_seconds: float = 10.0
	output_dir: str = ""

	def to_dict(self) -> Dict[str, Any]:
		return {
			'math_command': list(self.math_command),
			'interpreter_command': list(self.interpreter_command),
			'timeout_seconds': self.timeout_seconds,
			'output_dir': self.output_dir
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'ExternalConfig':
		return cls(
			math_command=list(data.get('math_command') or []),
			interpreter_command=list(data.get('interpreter_command') or []),
			timeout_seconds=data.get('timeout_seconds', 10.0),
			output_dir=data.get('output_dir', '') or ''
		)


@dataclass
class ConsoleConfig:
	"""Console messages logging level configuration"""
	verbose: bool = False
	quiet: bool = False
	log_level: str = "INFO"


@dataclass
class BottiConfig:
	"""Complete configuration for Botti"""
	server: ServerConfig = field(default_factory=ServerConfig)
	bot: BotConfig = field(default_factory=BotConfig)
	presence: PresenceConfig = field(default_factory=PresenceConfig)
	memo: MemoConfig = field(default_factory=MemoConfig)
	external: ExternalConfig = field(default_factory=ExternalConfig)
	console: ConsoleConfig = field(default_factory=ConsoleConfig)

	# Runtime only, never saved
	offline: bool = False

	# Metadata
	config_version: str = "1.0"
	description: str = "Botti Configuration"

	def to_dict(self) -> Dict[str, Any]:
		"""Convert to dictionary for YAML serialization"""
		return {
			'config_version': self.config_version,
			'description': self.description,
			'server': self.server.to_dict(),
			'bot': self.bot.to_dict(),
			'presence': self.presence.to_dict(),
			'memo': {
				'directory': self.memo.directory,
			},
			'external': self.external.to_dict(),
			'console': {
				'verbose': self.console.verbose,
				'quiet': self.console.quiet,
				'log_level': self.console.log_level,
			},
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'BottiConfig':
		"""Create from dictionary (YAML loading)"""
		config = cls()

		if 'config_version' in data:
			config.config_version = str(data['config_version'])
		if 'description' in data:
			config.description = data['description']

		if isinstance(data.get('server'), dict):
			config.server = ServerConfig.from_dict(data['server'])
		if isinstance(data.get('bot'), dict):
			config.bot = BotConfig.from_dict(data['bot'])
		if isinstance(data.get('presence'), dict):
			config.presence = PresenceConfig.from_dict(data['presence'])
		if isinstance(data.get('memo'), dict):
			config.memo.directory = data['memo'].get('directory', config.memo.directory)
		if isinstance(data.get('external'), dict):
			config.external = ExternalConfig.from_dict(data['external'])

		if isinstance(data.get('console'), dict):
			console_data = data['console']
			config.console.verbose = console_data.get('verbose', False)
			config.console.quiet = console_data.get('quiet', False)
			config.console.log_level = console_data.get('log_level', 'INFO')

		return config


class ConfigurationManager:
	"""
	Manages configuration loading, merging, and validation
	"""

	def __init__(self):
		self.config = None
		self.config_file_path = None
		self.logger = logging.getLogger(__name__)

		# Standard config file locations (in order of preference)
		self.config_search_paths = [
			Path.cwd() / "botti.yaml",  # Current directory
			Path.cwd() / "config" / "botti.yaml",  # Config subdirectory
			Path.home() / ".config" / "botti" / "config.yaml",  # User config
			Path("/etc/botti/config.yaml"),  # System config (Linux)
		]

	def load_config(self, config_file: Optional[str] = None) -> BottiConfig:
		"""
		Load configuration from file with fallback chain

		Args:
			config_file: Specific config file path, or None for auto-discovery

		Returns:
			Loaded configuration object (defaults if nothing usable was found)
		"""
		self.config = None
		if config_file:
			config_path = Path(config_file)
			if config_path.exists():
				self.config = self._load_yaml_file(config_path)
				self.config_file_path = config_path
				self.logger.info(f"Loaded config from: {config_path}")
			else:
				self.logger.warning(f"Config file not found: {config_path}")
				self.logger.info("Using default configuration")
		else:
			for path in self.config_search_paths:
				if path.exists():
					self.config = self._load_yaml_file(path)
					self.config_file_path = path
					self.logger.info(f"Auto-discovered config: {path}")
					break
			else:
				self.logger.info("No config file found, using defaults")

		if self.config is None:
			self.config = BottiConfig()
		return self.config

	def _load_yaml_file(self, file_path: Path) -> BottiConfig:
		"""Load configuration from YAML file, falling back to defaults on error"""
		try:
			with open(file_path, 'r', encoding='utf-8') as f:
				yaml_data = yaml.safe_load(f) or {}

			if not isinstance(yaml_data, dict):
				self.logger.error(f"Config file {file_path} does not contain a mapping")
				return BottiConfig()

			return BottiConfig.from_dict(yaml_data)

		except (OSError, yaml.YAMLError) as e:
			self.logger.error(f"Error loading config file {file_path}: {e}")
			return BottiConfig()

	def merge_cli_args(self, args: argparse.Namespace) -> BottiConfig:
		"""
		Merge CLI arguments into configuration (CLI takes precedence)

		Args:
			args: Parsed command line arguments

		Returns:
			Updated configuration
		"""
		if self.config is None:
			self.config = BottiConfig()

		# Server settings
		if getattr(args, 'server', None):
			self.config.server.host = args.server
		if getattr(args, 'port', None):
			self.config.server.port = args.port
		if getattr(args, 'name', None):
			self.config.server.username = args.name

		# Bot settings
		if getattr(args, 'channel', None):
			self.config.bot.channel = args.channel
		if getattr(args, 'admin', None):
			for admin in args.admin:
				if admin not in self.config.bot.admins:
					self.config.bot.admins.append(admin)

		# Debug settings
		if getattr(args, 'verbose', False):
			self.config.console.verbose = True
		if getattr(args, 'quiet', False):
			self.config.console.quiet = True

		if getattr(args, 'offline', False):
			self.config.offline = True

		return self.config

	def save_config(self, file_path: Optional[str] = None) -> bool:
		"""
		Save current configuration to YAML file

		Args:
			file_path: Target file path, or None to use loaded file path

		Returns:
			True if saved successfully
		"""
		if file_path:
			target_path = Path(file_path)
		elif self.config_file_path:
			target_path = self.config_file_path
		else:
			target_path = Path("botti.yaml")

		try:
			target_path.parent.mkdir(parents=True, exist_ok=True)

			with open(target_path, 'w', encoding='utf-8') as f:
				f.write("# Botti Configuration\n")
				f.write("# Generated configuration file\n")
				f.write(f"# Version: {self.config.config_version}\n\n")

				yaml.dump(self.config.to_dict(), f,
						 default_flow_style=False,
						 sort_keys=False,
						 allow_unicode=True,
						 indent=2)

			self.logger.info(f"Configuration saved to: {target_path}")
			return True

		except OSError as e:
			self.logger.error(f"Error saving config to {target_path}: {e}")
			return False

	def create_sample_config(self, file_path: str = "botti_sample.yaml") -> bool:
		"""Create a sample configuration file with comments"""
		try:
			with open(file_path, 'w', encoding='utf-8') as f:
				f.write(self._generate_sample_yaml())
			return True
		except OSError as e:
			self.logger.error(f"Error creating sample config: {e}")
			return False

	def _generate_sample_yaml(self) -> str:
		"""Generate sample YAML with comments"""
		return """# Botti Configuration File

# =============================================================================
# SERVER CONNECTION
# =============================================================================
server:
  host: "localhost"               # Voice-chat server address
  port: 64738                     # Server port
  username: "Botti"               # Name the bot shows in the channel
  password: ""                    # Server password, if any
  cert_dir: "."                   # Where the client certificate is kept
  client_factory: ""              # "module:callable" building the chat client

# =============================================================================
# BOT BEHAVIOUR
# =============================================================================
bot:
  channel: "Lobby"                # Channel to join after connecting
  admins:                         # Names allowed to use exit/text/channel
    - "Admin"                     #   (exact, case-sensitive match)
  command_marker: "!"             # Channel messages starting with this are commands
  stream_url: ""                  # Answer for !stream (empty disables it)

# =============================================================================
# LAST SEEN HISTORY
# =============================================================================
presence:
  capacity: 5                     # How many recent departures to remember
  retention_hours: 22             # Forget departures older than this

# =============================================================================
# MEMOS
# =============================================================================
memo:
  directory: "memos"              # One text file per memo

# =============================================================================
# EXTERNAL HELPERS
# =============================================================================
external:
  math_command: []                # e.g. ["tex2png", "-o", "{output}"] (formula on stdin)
  interpreter_command: []         # e.g. ["sandbox", "python3"] (code on stdin)
  timeout_seconds: 10.0           # Kill helpers after this long
  output_dir: ""                  # Rendered images (default: temp dir)

# =============================================================================
# CONSOLE MESSAGES LOGGING LEVEL
# =============================================================================
console:
  verbose: false                  # Verbose output (debug logging)
  quiet: false                    # Quiet mode (warnings and errors only)
  log_level: "INFO"               # Used when neither verbose nor quiet

config_version: "1.0"
description: "Botti Configuration"
"""

	def validate_config(self) -> tuple[bool, list[str]]:
		"""
		Validate configuration for common issues

		Returns:
			(is_valid, list_of_errors)
		"""
		errors = []
		config = self.config

		if not config.server.host and not config.offline:
			errors.append("Server host must be set")

		if not config.offline and not config.server.client_factory:
			errors.append("No chat client configured: set server.client_factory or use --offline")

		if not isinstance(config.server.port, int) or not (1 <= config.server.port <= 65535):
			errors.append(f"Invalid server port: {config.server.port}")

		if not config.server.username or not config.server.username.strip():
			errors.append("Bot username must be set")

		if not config.bot.command_marker:
			errors.append("Command marker must not be empty")

		if not all(isinstance(name, str) and name for name in config.bot.admins):
			errors.append("Admin names must be non-empty strings")

		if not isinstance(config.presence.capacity, int) or config.presence.capacity < 1:
			errors.append(f"Invalid presence capacity: {config.presence.capacity}")

		if not isinstance(config.presence.retention_hours, (int, float)) or config.presence.retention_hours <= 0:
			errors.append(f"Invalid presence retention: {config.presence.retention_hours}")

		if not isinstance(config.external.timeout_seconds, (int, float)) or config.external.timeout_seconds <= 0:
			errors.append(f"Invalid external timeout: {config.external.timeout_seconds}")

		if config.console.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
			errors.append(f"Invalid log level: {config.console.log_level}")

		return len(errors) == 0, errors

	def get_config(self) -> BottiConfig:
		"""Get a copy of the current configuration"""
		return deepcopy(self.config)


def create_argument_parser():
	"""Argument parser for the bot"""
	parser = argparse.ArgumentParser(
		description='Botti voice-chat channel bot',
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  %(prog)s --server chat.example.org --channel Lobby   # Connect and join Lobby
  %(prog)s --admin Alice --admin Bob                   # Allow admin commands for Alice and Bob
  %(prog)s --offline                                   # Try commands without a server
  %(prog)s -c my_config.yaml                           # Use specific config file
  %(prog)s --create-config sample.yaml                 # Create sample config file

Configuration:
  Configuration is loaded in this order (later overrides earlier):
  1. Built-in defaults
  2. Configuration file (YAML)
  3. Command line arguments

  Config file search order:
  - botti.yaml (current directory)
  - config/botti.yaml
  - ~/.config/botti/config.yaml
  - /etc/botti/config.yaml
		"""
	)

	# Configuration file handling
	config_group = parser.add_argument_group('Configuration')
	config_group.add_argument(
		'-c', '--config',
		type=str,
		help='Configuration file path (YAML format)'
	)
	config_group.add_argument(
		'--create-config',
		type=str,
		metavar='FILE',
		help='Create sample configuration file and exit'
	)
	config_group.add_argument(
		'--save-config',
		type=str,
		metavar='FILE',
		help='Save current configuration to file'
	)

	# Server settings
	server_group = parser.add_argument_group('Server Settings')
	server_group.add_argument(
		'-s', '--server',
		type=str,
		help='Voice-chat server address'
	)
	server_group.add_argument(
		'-p', '--port',
		type=int,
		help='Voice-chat server port'
	)
	server_group.add_argument(
		'-n', '--name',
		type=str,
		help='Bot display name'
	)
	server_group.add_argument(
		'--offline',
		action='store_true',
		help='Run against an in-memory server (no network)'
	)

	# Bot settings
	bot_group = parser.add_argument_group('Bot Settings')
	bot_group.add_argument(
		'--channel',
		type=str,
		help='Channel to join after connecting'
	)
	bot_group.add_argument(
		'--admin',
		action='append',
		metavar='NAME',
		help='Allow NAME to use admin commands (repeatable)'
	)

	# Console settings
	console_group = parser.add_argument_group('Console Output')
	console_group.add_argument(
		'-v', '--verbose',
		action='store_true',
		help='Verbose (debug) logging'
	)
	console_group.add_argument(
		'-q', '--quiet',
		action='store_true',
		help='Only log warnings and errors'
	)

	return parser


def setup_configuration(argv=None) -> tuple[Optional[BottiConfig], bool, Optional[ConfigurationManager]]:
	"""
	Setup configuration system with CLI integration

	Args:
		argv: Command line arguments (None for sys.argv)

	Returns:
		(config_object, should_exit, config_manager)
	"""
	parser = create_argument_parser()
	args = parser.parse_args(argv)

	if args.create_config:
		manager = ConfigurationManager()
		if manager.create_sample_config(args.create_config):
			print(f"Sample configuration created: {args.create_config}")
			print(f"Edit the file and run again with: -c {args.create_config}")
		return None, True, None

	manager = ConfigurationManager()
	manager.load_config(args.config)
	config = manager.merge_cli_args(args)

	is_valid, errors = manager.validate_config()
	if not is_valid:
		print("Configuration errors:")
		for error in errors:
			print(f"  ✗ {error}")
		return config, True, manager

	if args.save_config:
		if manager.save_config(args.save_config):
			print(f"Configuration saved to: {args.save_config}")

	return config, False, manager
