import enum
import logging
import math
import typing

import marionette.constants
import marionette.event_collector
import marionette.time_transform


logger = logging.getLogger(__name__)


Collector = typing.Union[marionette.event_collector.EventCollector, marionette.event_collector.TransformedView]


class SequenceState (enum.Enum):

	"""
	Lifecycle states of a sequence.

	UNINITIALIZED -> RUNNING -> IDLE -> RUNNING ... (repeating sequences only)
	UNINITIALIZED | RUNNING | IDLE -> TORN_DOWN (terminal)
	"""

	UNINITIALIZED = "uninitialized"
	RUNNING = "running"
	IDLE = "idle"
	TORN_DOWN = "torn_down"


class Sequence:

	"""
	Base class for anything the player can schedule.

	A sequence lives on its own local timeline, placed on its parent's
	timeline by ``offset`` (parent units) and ``slope`` (local units per
	parent unit).  Its setup, end and resume transitions are ordinary events
	in the shared collector, so the merge never special-cases them: whichever
	event is nearest wins.

	Subclasses produce their own events by overriding :meth:`append_content`
	and hook into the lifecycle through :meth:`on_setup` and
	:meth:`on_teardown`.
	"""

	def __init__ (
		self,
		offset: float,
		slope: float = 1.0,
		start_time: float = 0.0,
		end_time: typing.Optional[float] = None,
		repeat_time: typing.Optional[float] = None,
		options: typing.Optional[typing.Dict[str, typing.Any]] = None
	) -> None:

		"""
		Parameters:
			offset: Origin of the local timeline, in parent time.
			slope: Local time units per parent time unit.  Must be nonzero.
			start_time: Local time at which the sequence sets up.
			end_time: Local time at which the sequence ends, or None to run
				until it is destroyed.  For repeating sequences this is the
				end within each period.
			repeat_time: Local period after which the timeline wraps.
			options: Arbitrary payload made available to subclasses.
		"""

		rounded_slope = round(slope, marionette.constants.SLOPE_PRECISION)

		if rounded_slope == 0:
			raise ValueError(f"Sequence slope must be nonzero (got {slope!r})")

		if repeat_time is not None:

			if repeat_time <= 0:
				raise ValueError("repeat_time must be positive")

			if end_time is not None and end_time >= repeat_time:
				raise ValueError("end_time must fall inside the repeat period")

		self.offset = offset
		self.slope = rounded_slope

		self.start_time: float = start_time
		self.end_time: typing.Optional[float] = end_time
		self.repeat_time: typing.Optional[float] = repeat_time

		self.options: typing.Dict[str, typing.Any] = dict(options or {})

		self.state = SequenceState.UNINITIALIZED


	@property
	def parent_start_time (self) -> float:

		"""Start time expressed in the parent's timeline."""

		return self.offset + self.start_time / self.slope


	@property
	def parent_end_time (self) -> typing.Optional[float]:

		"""
		End time expressed in the parent's timeline.

		None when the sequence has no end, or repeats (its end time then
		only closes each period, not the sequence).
		"""

		if self.end_time is None or self.repeat_time is not None:
			return None

		return self.offset + self.end_time / self.slope


	@property
	def is_torn_down (self) -> bool:
		return self.state is SequenceState.TORN_DOWN


	# Lifecycle

	def setup (self) -> None:

		"""Enter the RUNNING state and run :meth:`on_setup`."""

		if self.state is not SequenceState.UNINITIALIZED:
			raise RuntimeError(f"Cannot set up a sequence in state {self.state.value!r}")

		self.state = SequenceState.RUNNING
		logger.debug(f"Set up {self!r}")

		self.on_setup()


	def destroy (self) -> None:

		"""
		Tear the sequence down immediately.

		Runs :meth:`on_teardown` exactly once, whatever state the sequence was
		in.  Calling it again is a no-op.
		"""

		if self.state is SequenceState.TORN_DOWN:
			return

		self.state = SequenceState.TORN_DOWN
		logger.debug(f"Tearing down {self!r}")

		self.on_teardown()


	def on_setup (self) -> None:

		"""Hook called after entering RUNNING."""

		pass


	def on_resume (self) -> None:

		"""Hook called when a repeating sequence re-enters RUNNING."""

		pass


	def on_teardown (self) -> None:

		"""Hook called once when the sequence is torn down."""

		pass


	def append_content (self, collector: marionette.event_collector.TransformedView) -> None:

		"""Offer this sequence's own events to ``collector`` (local time)."""

		raise NotImplementedError


	# Scheduling

	def append_events (self, collector: Collector) -> None:

		"""
		Offer the next events of this sequence to ``collector``.

		Called once per tick by the owner (the player or a parent sequence)
		with a collector in the owner's timeline.
		"""

		view = collector.offset_collector(self.offset, self.slope)

		event_time = view.event_time

		if view.has_events() and event_time is not None and event_time < self.start_time:
			return

		if self.state is SequenceState.TORN_DOWN:
			return

		earliest = view.start_time + marionette.constants.PROGRESS_EPSILON

		if self.state is SequenceState.UNINITIALIZED:
			view.add_event(max(self.start_time, earliest), self._on_setup_event)
			return

		if self.state is SequenceState.IDLE:
			view.add_event(max(self._next_period_start(view.start_time), earliest), self._on_resume_event)
			return

		self.append_content(view)

		if self.end_time is not None:
			view.add_event(max(self._period_end_time(view.start_time), earliest), self._on_end_event)


	def _period_start (self, local_time: float) -> float:

		"""Start of the repeat period containing ``local_time``."""

		repeat_time = typing.cast(float, self.repeat_time)

		# 0.3 / 0.1 == 2.9999999999999996
		period = math.floor(round(local_time / repeat_time, 9))

		return marionette.time_transform.round_time(period * repeat_time)


	def _next_period_start (self, local_time: float) -> float:
		return marionette.time_transform.round_time(self._period_start(local_time) + typing.cast(float, self.repeat_time))


	def _period_end_time (self, local_time: float) -> float:

		"""End time of the current period (the plain end time when not repeating)."""

		end_time = typing.cast(float, self.end_time)

		if self.repeat_time is None:
			return end_time

		return self._period_start(local_time) + end_time


	def _on_setup_event (self) -> None:

		if self.state is SequenceState.UNINITIALIZED:
			self.setup()


	def _on_end_event (self) -> None:

		if self.state is not SequenceState.RUNNING:
			return

		if self.repeat_time is not None:
			self.state = SequenceState.IDLE
			logger.debug(f"{self!r} idle until next period")
			return

		self.destroy()


	def _on_resume_event (self) -> None:

		if self.state is SequenceState.IDLE:
			self.state = SequenceState.RUNNING
			self.on_resume()


	def __repr__ (self) -> str:
		return f"<{type(self).__name__} state={self.state.value} start={self.parent_start_time:.3f}>"
