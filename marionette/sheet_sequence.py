import bisect
import dataclasses
import logging
import subprocess
import threading
import typing

import marionette.config
import marionette.constants
import marionette.event_collector
import marionette.sequence
import marionette.sheet
import marionette.time_transform


logger = logging.getLogger(__name__)


NoteCallback = typing.Callable[..., typing.Any]


@dataclasses.dataclass
class Note:

	"""
	A callback scheduled at a local time within a sheet sequence.
	"""

	time: float
	callback: NoteCallback
	owner: "SheetSequence" = dataclasses.field(repr=False)


	def fire (self) -> None:

		"""Run the callback, unless its sequence stopped running meanwhile."""

		if self.owner.state is not marionette.sequence.SequenceState.RUNNING:
			return

		marionette.sheet.call_with_context(self.callback, self.owner.context)


class SheetContext:

	"""
	The handle passed to sheet blocks and note callbacks.

	It exposes the authoring operations of one running sheet sequence and
	its option payload.
	"""

	def __init__ (self, sequence: "SheetSequence") -> None:

		self.sequence = sequence


	@property
	def options (self) -> typing.Dict[str, typing.Any]:
		return self.sequence.options


	def at (self, time: float, callback: typing.Optional[NoteCallback] = None, **kwargs: typing.Any) -> typing.Any:
		return self.sequence.at(time, callback, **kwargs)

	def after (self, time: float, callback: typing.Optional[NoteCallback] = None, **kwargs: typing.Any) -> typing.Any:
		return self.sequence.after(time, callback, **kwargs)

	def play (self, path: str, volume: float = marionette.constants.DEFAULT_PLAY_VOLUME) -> typing.Optional[subprocess.Popen]:
		return self.sequence.play(path, volume)

	def kill (self, process: typing.Optional[subprocess.Popen]) -> None:
		self.sequence.kill(process)


class SheetSequence (marionette.sequence.Sequence):

	"""
	A running instance of a :class:`~marionette.sheet.Sheet`.

	Holds a sorted list of notes (callbacks at local times) and a sorted
	list of subprograms (child sequences).  Each tick it offers its children's
	events, then its next batch of simultaneous notes.

	The sheet's fill block runs once, during construction.  The setup block
	runs on the transition to RUNNING and the teardown block exactly once on
	teardown, after which remaining subprograms are destroyed and every
	process started with :meth:`play` is terminated.
	"""

	def __init__ (
		self,
		offset: float,
		slope: float = 1.0,
		sheet: typing.Optional[marionette.sheet.Sheet] = None,
		options: typing.Optional[typing.Dict[str, typing.Any]] = None,
		top_slope: float = 1.0,
		config: typing.Optional[marionette.config.Config] = None
	) -> None:

		"""
		Parameters:
			offset: Start of the sheet's timeline in the parent timeline.
			slope: Speed relative to the parent (before tempo is applied).
			sheet: The template to perform.  Required.
			options: Payload available to blocks as ``context.options``.
			top_slope: Absolute speed of the parent, used to turn the sheet's
				tempo into a relative slope.
			config: Shared configuration (media player command).
		"""

		if sheet is None:
			raise ValueError("SheetSequence requires a sheet")

		if sheet.tempo is not None:
			slope *= sheet.tempo / (marionette.constants.SECONDS_PER_MINUTE * top_slope)

		super().__init__(
			offset,
			slope,
			start_time = sheet.start_time,
			end_time = sheet.end_time,
			repeat_time = sheet.repeat_time,
			options = options
		)

		self.sheet = sheet
		self.config = config or marionette.config.Config()
		self.absolute_slope = top_slope * self.slope
		self.context = SheetContext(self)

		self.notes: typing.List[Note] = []
		self._note_times: typing.List[float] = []

		self.subprograms: typing.List[marionette.sequence.Sequence] = []
		self._subprogram_starts: typing.List[float] = []

		self._latest_note_time: typing.Optional[float] = None

		self._processes: typing.List[subprocess.Popen] = []
		self._process_lock = threading.Lock()

		# The end follows the content unless the sheet fixes it.
		self._auto_end = sheet.end_time is None and sheet.repeat_time is None

		if self._auto_end:
			self.end_time = marionette.time_transform.round_time(self.start_time + marionette.constants.PROGRESS_EPSILON)

		if sheet.fill_block is not None:
			marionette.sheet.call_with_context(sheet.fill_block, self.context)


	# Authoring

	def at (
		self,
		time: float,
		callback: typing.Optional[NoteCallback] = None,
		*,
		sheet: typing.Optional[marionette.sheet.Sheet] = None,
		sequence: typing.Optional[typing.Type[marionette.sequence.Sequence]] = None,
		slope: float = 1.0,
		options: typing.Optional[typing.Dict[str, typing.Any]] = None
	) -> typing.Any:

		"""
		Schedule a callback, or start a nested program, at a local time.

		With ``sheet`` a child sheet sequence is built starting at ``time``;
		with ``sequence`` (a :class:`~marionette.sequence.Sequence` subclass)
		that class is instantiated instead.  Without either, ``callback`` is
		added as a note.  Called without a callback it returns a decorator::

			@s.at(2.5)
			def wave (s):
				arm.raise_()

		Times wrap into the repeat period when the sheet repeats.

		Returns:
			The new :class:`Note`, or the child sequence.
		"""

		if sheet is not None and sequence is not None:
			raise ValueError("Pass either sheet or sequence, not both")

		if callback is None and sheet is None and sequence is None:

			def decorator (fn: NoteCallback) -> NoteCallback:
				self.at(time, fn)
				return fn

			return decorator

		if self.repeat_time is not None:
			time = time % self.repeat_time

		time = marionette.time_transform.round_time(time)
		self._latest_note_time = time

		if sheet is not None:
			child: marionette.sequence.Sequence = SheetSequence(
				time,
				slope,
				sheet = sheet,
				options = options,
				top_slope = self.absolute_slope,
				config = self.config
			)
			return self._add_subprogram(child)

		if sequence is not None:
			return self._add_subprogram(sequence(time, slope, options=options))

		if not callable(callback):
			raise ValueError(f"Note callback must be callable (got {callback!r})")

		note = Note(time=time, callback=callback, owner=self)

		# bisect_right keeps simultaneous notes in insertion order.
		index = bisect.bisect_right(self._note_times, time)
		self._note_times.insert(index, time)
		self.notes.insert(index, note)

		self._extend_auto_end(time)

		return note


	def after (self, time: float, callback: typing.Optional[NoteCallback] = None, **kwargs: typing.Any) -> typing.Any:

		"""Like :meth:`at`, relative to the most recently added note or program."""

		return self.at(time + (self._latest_note_time or 0.0), callback, **kwargs)


	def play (self, path: str, volume: float = marionette.constants.DEFAULT_PLAY_VOLUME) -> typing.Optional[subprocess.Popen]:

		"""
		Play a media file with the configured player command.

		The process is tracked until it exits and terminated when this
		sequence is torn down.  Use :meth:`kill` to stop it early.

		Returns:
			The process handle, or None if the player could not be started.
		"""

		command = [part.format(path=path, volume=volume) for part in self.config.play_command]

		try:
			process = subprocess.Popen(
				command,
				stdin = subprocess.DEVNULL,
				stdout = subprocess.DEVNULL,
				stderr = subprocess.DEVNULL
			)
		except OSError as e:
			logger.error(f"Failed to start media player {command[0]!r}: {e}")
			return None

		with self._process_lock:
			self._processes.append(process)

		threading.Thread(
			target = self._reap_process,
			args = (process,),
			name = f"marionette-play-{process.pid}",
			daemon = True
		).start()

		logger.debug(f"Playing {path} (pid {process.pid})")

		return process


	def kill (self, process: typing.Optional[subprocess.Popen]) -> None:

		"""
		Terminate a process started by :meth:`play`.

		Killing a process that already exited is not an error.
		"""

		if process is None or process.poll() is not None:
			return

		try:
			process.terminate()
		except ProcessLookupError:
			pass


	@property
	def processes (self) -> typing.List[subprocess.Popen]:

		"""Processes started by :meth:`play` that are still being tracked."""

		with self._process_lock:
			return list(self._processes)


	def _reap_process (self, process: subprocess.Popen) -> None:

		process.wait()

		with self._process_lock:
			if process in self._processes:
				self._processes.remove(process)


	def _add_subprogram (self, child: marionette.sequence.Sequence) -> marionette.sequence.Sequence:

		start = child.parent_start_time

		index = bisect.bisect_right(self._subprogram_starts, start)
		self._subprogram_starts.insert(index, start)
		self.subprograms.insert(index, child)

		self._extend_auto_end(child.parent_end_time)

		return child


	def _extend_auto_end (self, local_time: typing.Optional[float]) -> None:

		"""Grow a derived end time to cover ``local_time`` (None = unbounded)."""

		if not self._auto_end:
			return

		if local_time is None:
			self._auto_end = False
			self.end_time = None
			return

		candidate = marionette.time_transform.round_time(local_time + marionette.constants.PROGRESS_EPSILON)

		if self.end_time is None or candidate > self.end_time:
			self.end_time = candidate


	# Lifecycle

	def on_setup (self) -> None:

		"""Run the setup block, then anything due at the start instant."""

		if self.sheet.setup_block is not None:
			marionette.event_collector.call_safely(marionette.sheet.call_with_context, self.sheet.setup_block, self.context)

		start = marionette.time_transform.round_time(self.start_time)
		self._start_children_at(start)

		if self.repeat_time is not None:
			start = marionette.time_transform.round_time(start - self._period_start(start))

		self._fire_notes_at(start)


	def on_resume (self) -> None:

		# Notes on the period boundary.
		self._fire_notes_at(0.0)


	def on_teardown (self) -> None:

		"""Run the teardown block, destroy subprograms and stop playback."""

		if self.sheet.teardown_block is not None:
			marionette.event_collector.call_safely(marionette.sheet.call_with_context, self.sheet.teardown_block, self.context)

		for child in self.subprograms:
			marionette.event_collector.call_safely(child.destroy)

		self.subprograms = []
		self._subprogram_starts = []

		for process in self.processes:
			self.kill(process)


	def _start_children_at (self, local_time: float) -> None:

		"""Set up children starting at the same instant as this sequence."""

		for child in list(self.subprograms):

			if child.state is not marionette.sequence.SequenceState.UNINITIALIZED:
				continue

			if marionette.time_transform.round_time(child.parent_start_time) == local_time:
				marionette.event_collector.call_safely(child.setup)


	def _fire_notes_at (self, local_time: float) -> None:

		"""
		Run the notes sitting exactly on ``local_time``.

		The collector only offers events strictly after the instant that was
		just executed, so notes on the setup (or resume) instant are run
		directly.
		"""

		index = bisect.bisect_left(self._note_times, local_time)

		for note in self.notes[index:bisect.bisect_right(self._note_times, local_time)]:
			marionette.event_collector.call_safely(note.fire)


	# Scheduling

	def append_content (self, collector: marionette.event_collector.TransformedView) -> None:

		"""
		Offer subprogram events, then the next batch of notes.

		For repeating sheets the note lookup runs in the canonical first
		period; once past the last note of a period the view wraps forward
		so the first note of the next period is found.
		"""

		self._append_subprogram_events(collector)

		note_view = collector

		if self.repeat_time is not None:

			note_view = collector.offset_collector(self._period_start(collector.start_time), 1)

			if self._note_times and note_view.start_time >= self._note_times[-1]:
				note_view = note_view.offset_collector(self.repeat_time, 1)

		self._append_note_events(note_view)


	def _append_subprogram_events (self, collector: marionette.event_collector.TransformedView) -> None:

		index = 0

		while index < len(self.subprograms):

			child = self.subprograms[index]
			event_time = collector.event_time

			# Sorted by start: nothing after this one can be earlier.
			if event_time is not None and event_time < child.parent_start_time:
				break

			child.append_events(collector)

			if child.is_torn_down:
				del self.subprograms[index]
				del self._subprogram_starts[index]
			else:
				index += 1


	def _append_note_events (self, collector: marionette.event_collector.TransformedView) -> None:

		index = bisect.bisect_right(self._note_times, collector.start_time)

		if index >= len(self.notes):
			return

		note_time = self._note_times[index]

		while index < len(self.notes) and self._note_times[index] == note_time:
			collector.add_event(note_time, self.notes[index].fire)
			index += 1


	def __repr__ (self) -> str:
		return f"<SheetSequence {self.sheet.name or hex(id(self.sheet))} state={self.state.value}>"
