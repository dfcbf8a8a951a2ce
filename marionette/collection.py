import dataclasses
import logging
import typing

import marionette.player
import marionette.sheet
import marionette.sheet_sequence


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ProgramEntry:

	"""
	A registered program: its sheet, the player key it plays under and the
	options passed to each instance.
	"""

	sheet: marionette.sheet.Sheet
	key: typing.Hashable = "default"
	options: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


class ProgramCollection:

	"""
	A registry of named sheets that can be started on a player by name.

	Registering the same sheet under several names with different options
	is the usual way to reuse one sheet for several programs.  Programs that
	share a player key replace each other; programs with distinct keys play
	side by side.
	"""

	def __init__ (self, player: marionette.player.Player) -> None:

		self._player = player
		self._programs: typing.Dict[str, ProgramEntry] = {}


	def register (
		self,
		name: str,
		sheet: marionette.sheet.Sheet,
		key: typing.Hashable = "default",
		options: typing.Optional[typing.Dict[str, typing.Any]] = None
	) -> ProgramEntry:

		"""Register ``sheet`` under ``name``, replacing any previous entry."""

		if not name:
			raise ValueError("Program name cannot be empty")

		entry = ProgramEntry(sheet=sheet, key=key, options=dict(options or {}))
		self._programs[name] = entry

		return entry


	def __getitem__ (self, name: str) -> typing.Optional[ProgramEntry]:
		return self._programs.get(name)

	def __contains__ (self, name: str) -> bool:
		return name in self._programs


	def names (self) -> typing.List[str]:

		"""Registered program names."""

		return list(self._programs.keys())


	def play (self, name: str) -> typing.Optional[marionette.sheet_sequence.SheetSequence]:

		"""
		Instantiate the program registered as ``name`` and start it.

		The instance receives the registered options plus ``program_name``.

		Returns:
			The new sequence, or None when ``name`` is unknown.
		"""

		entry = self._programs.get(name)

		if entry is None:
			logger.warning(f"Program {name!r} not found. Available: {self.names()}")
			return None

		options = dict(entry.options)
		options["program_name"] = name

		sequence = marionette.sheet_sequence.SheetSequence(
			self._player.now(),
			1.0,
			sheet = entry.sheet,
			options = options,
			config = self._player.config
		)

		self._player.assign(entry.key, sequence)

		return sequence
