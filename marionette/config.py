"""Runtime configuration.

A :class:`Config` value is created once (usually from a YAML file) and
passed into the :class:`~marionette.player.Player`, which hands it on to
every sequence it builds.  Nothing reads configuration from module globals.

Example ``marionette.yaml``::

	player:
	  overdue_warning: 0.1
	  overdue_error: 0.5
	media:
	  play_command: ["play", "-q", "--volume", "{volume}", "{path}"]
	osc:
	  receive_port: 9000
	  send_host: 127.0.0.1
	  send_port: 9001
	logging:
	  level: INFO
"""

import dataclasses
import logging
import os
import typing

import yaml

import marionette.constants


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Config:

	"""
	Settings shared by the player, its sequences and the command line tool.
	"""

	overdue_warning: float = marionette.constants.OVERDUE_WARNING
	overdue_error: float = marionette.constants.OVERDUE_ERROR
	play_command: typing.List[str] = dataclasses.field(default_factory=lambda: list(marionette.constants.DEFAULT_PLAY_COMMAND))
	osc_receive_port: int = 9000
	osc_send_host: str = "127.0.0.1"
	osc_send_port: int = 9001
	log_level: str = "INFO"

	def __post_init__ (self) -> None:

		if self.overdue_warning < 0 or self.overdue_error < 0:
			raise ValueError("Overdue thresholds cannot be negative")

		if self.overdue_error < self.overdue_warning:
			raise ValueError("overdue_error must not be smaller than overdue_warning")

		if not self.play_command:
			raise ValueError("play_command cannot be empty")


# YAML section -> key -> Config field
_SECTIONS: typing.Dict[str, typing.Dict[str, str]] = {
	"player": {
		"overdue_warning": "overdue_warning",
		"overdue_error": "overdue_error",
	},
	"media": {
		"play_command": "play_command",
	},
	"osc": {
		"receive_port": "osc_receive_port",
		"send_host": "osc_send_host",
		"send_port": "osc_send_port",
	},
	"logging": {
		"level": "log_level",
	},
}


def config_from_dict (data: typing.Optional[typing.Dict[str, typing.Any]]) -> Config:

	"""
	Build a :class:`Config` from a parsed YAML document.

	Raises ``ValueError`` for unknown sections or keys so typos are not
	silently ignored.
	"""

	values: typing.Dict[str, typing.Any] = {}

	for section, entries in (data or {}).items():

		if section not in _SECTIONS:
			raise ValueError(f"Unknown config section {section!r}. Available: {list(_SECTIONS.keys())}")

		for key, value in (entries or {}).items():

			if key not in _SECTIONS[section]:
				raise ValueError(f"Unknown config key {section}.{key}. Available: {list(_SECTIONS[section].keys())}")

			values[_SECTIONS[section][key]] = value

	return Config(**values)


def load_config (config_path: str = "marionette.yaml") -> Config:

	"""
	Load configuration from a YAML file, falling back to defaults when the
	file does not exist.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return Config()

	with open(config_path, 'r') as f:
		return config_from_dict(yaml.safe_load(f))
