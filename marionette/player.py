import logging
import threading
import time
import typing

import marionette.config
import marionette.event_collector
import marionette.event_emitter
import marionette.sequence
import marionette.sheet
import marionette.sheet_sequence


logger = logging.getLogger(__name__)


Program = typing.Union[marionette.sheet.Sheet, marionette.sequence.Sequence]


class Player:

	"""
	Plays top-level sequences in real time.

	The player owns a keyed set of sequences and a single scheduling thread.
	Each tick the thread asks every sequence for its next events, sleeps
	until the earliest batch is due, runs it and notifies the ``tick``
	listeners.  Sequences can be assigned, replaced and removed from any
	thread; every such change wakes the scheduling thread so a stale wait is
	abandoned and the batch recomputed.  The lock is only held while
	collecting; batches and ``tick`` listeners run without it.

	Example::

		player = marionette.Player()
		player.on_tick(animation.flush)
		player.start()

		player.assign("face", blink_sheet)
		...
		player.remove("face")
		player.stop()

	Listeners can also subscribe to ``"assign"``, ``"remove"``, ``"start"``
	and ``"stop"`` through :meth:`on_event`.
	"""

	def __init__ (
		self,
		config: typing.Optional[marionette.config.Config] = None,
		clock: typing.Callable[[], float] = time.perf_counter
	) -> None:

		"""
		Parameters:
			config: Shared configuration; defaults to :class:`~marionette.config.Config`.
			clock: Wall clock used to anchor programs and wait for events.
		"""

		self.config = config or marionette.config.Config()
		self._clock = clock

		self._sequences: typing.Dict[typing.Hashable, marionette.sequence.Sequence] = {}
		self._lock = threading.RLock()
		self._wake = threading.Event()
		self._structure_changed = False

		self.collector = marionette.event_collector.EventCollector(
			clock = clock,
			overdue_warning = self.config.overdue_warning,
			overdue_error = self.config.overdue_error,
			start_time = clock()
		)

		self.events = marionette.event_emitter.EventEmitter()

		self.running = False
		self._thread: typing.Optional[threading.Thread] = None

		# Incremented on every collection pass; useful to observe the loop.
		self.collect_count = 0
		self.tick_count = 0


	def now (self) -> float:
		return self._clock()


	# Public API

	def assign (
		self,
		key: typing.Hashable,
		program: Program,
		options: typing.Optional[typing.Dict[str, typing.Any]] = None
	) -> marionette.sequence.Sequence:

		"""
		Start playing ``program`` under ``key``.

		A program already playing under the same key is torn down once the
		new one has been built; if building raises, the old program keeps
		playing and the error propagates.  A
		:class:`~marionette.sheet.Sheet` is instantiated as a sheet sequence
		anchored at the current time with slope 1 (``options`` becomes its
		payload); a sequence is used as it is.

		Returns:
			The sequence now playing under ``key``.
		"""

		# A program that fails to build leaves the current one in place.
		if isinstance(program, marionette.sheet.Sheet):
			program = marionette.sheet_sequence.SheetSequence(
				self._clock(),
				1.0,
				sheet = program,
				options = options,
				config = self.config
			)

		with self._lock:

			previous = self._sequences.get(key)

			if previous is not None and previous is not program:
				marionette.event_collector.call_safely(previous.destroy)

			self._sequences[key] = program
			self._mark_changed()

		logger.info(f"Assigned {program!r} to {key!r}")
		self.events.emit("assign", key, program)

		return program


	def remove (self, key: typing.Hashable) -> typing.Optional[marionette.sequence.Sequence]:

		"""
		Tear down and drop the program under ``key``.

		Removing an absent key does nothing (and does not wake the loop).

		Returns:
			The removed sequence, or None.
		"""

		with self._lock:

			sequence = self._sequences.pop(key, None)

			if sequence is None:
				return None

			marionette.event_collector.call_safely(sequence.destroy)
			self._mark_changed()

		logger.info(f"Removed {key!r}")
		self.events.emit("remove", key, sequence)

		return sequence


	def lookup (self, key: typing.Hashable) -> typing.Optional[marionette.sequence.Sequence]:

		"""Return the program playing under ``key``, or None."""

		return self._sequences.get(key)


	def keys (self) -> typing.List[typing.Hashable]:

		"""Keys of the programs currently playing."""

		with self._lock:
			return list(self._sequences.keys())


	def on_tick (self, callback: typing.Callable[[], typing.Any]) -> None:

		"""
		Register a callback run after every executed batch.

		Callbacks run on the scheduling thread, in registration order, once
		all of the batch's events have run.
		"""

		self.events.on("tick", callback)


	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for a named event.
		"""

		self.events.on(event_name, callback)


	def __getitem__ (self, key: typing.Hashable) -> typing.Optional[marionette.sequence.Sequence]:
		return self.lookup(key)

	def __setitem__ (self, key: typing.Hashable, program: Program) -> None:
		self.assign(key, program)

	def __delitem__ (self, key: typing.Hashable) -> None:
		self.remove(key)

	def __contains__ (self, key: typing.Hashable) -> bool:
		return key in self._sequences

	def __len__ (self) -> int:
		return len(self._sequences)


	# Thread control

	def start (self) -> None:

		"""Start the scheduling thread.  Calling it twice is a no-op."""

		if self.running:
			return

		self.running = True
		self._thread = threading.Thread(
			target = self._run_loop,
			name = "marionette-player",
			daemon = True
		)
		self._thread.start()

		logger.info("Player started")
		self.events.emit("start")


	def stop (self, timeout: typing.Optional[float] = 5.0) -> None:

		"""
		Stop the scheduling thread and tear down every playing program.
		"""

		if not self.running:
			return

		logger.info("Stopping player...")

		with self._lock:
			self.running = False
			self._wake.set()

		if self._thread is not None and self._thread is not threading.current_thread():
			self._thread.join(timeout)

		with self._lock:

			for sequence in self._sequences.values():
				marionette.event_collector.call_safely(sequence.destroy)

			self._sequences = {}

		logger.info("Player stopped")
		self.events.emit("stop")


	def __enter__ (self) -> "Player":
		self.start()
		return self

	def __exit__ (self, *exc_info: typing.Any) -> None:
		self.stop()


	# Scheduling loop

	def _mark_changed (self) -> None:

		"""Flag a structural change and wake the scheduling thread (lock held)."""

		self._structure_changed = True
		self._wake.set()


	def _collect (self) -> bool:

		"""
		Prune finished programs and gather the next batch of events.

		Returns False, leaving the wake signal set, once the player is
		stopping.
		"""

		with self._lock:

			if not self.running:
				return False

			self._structure_changed = False
			self._wake.clear()
			self.collect_count += 1

			now = self._clock()

			for key in list(self._sequences.keys()):

				sequence = self._sequences[key]
				end = sequence.parent_end_time

				if sequence.is_torn_down or (end is not None and end <= now):
					marionette.event_collector.call_safely(sequence.destroy)
					del self._sequences[key]
					logger.debug(f"Program {key!r} finished")

			for sequence in self._sequences.values():
				sequence.append_events(self.collector)

			return True


	def _run_loop (self) -> None:

		"""Collect, wait, execute, notify - until stopped."""

		while self.running:

			if not self._collect():
				break

			if not self.collector.has_events():
				self._wake.wait()
				continue

			reached = self.collector.wait_until_event(self._wake)

			with self._lock:

				# Something changed while waiting: the batch may be stale.
				if self._structure_changed or not reached or not self.running:
					self.collector.restart()
					continue

			# Callbacks run without the lock; assign() and remove() from other
			# threads only wait for collection, never for a batch.
			self.collector.execute(wait=False)
			self.tick_count += 1

			self.events.emit("tick")
