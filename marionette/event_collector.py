import dataclasses
import logging
import threading
import time
import typing

import marionette.constants
import marionette.time_transform


logger = logging.getLogger(__name__)


EventCallback = typing.Callable[[], typing.Any]


def call_safely (callback: typing.Callable[..., typing.Any], *args: typing.Any) -> None:

	"""Run a user callback, logging (not raising) any exception it throws."""

	try:
		callback(*args)
	except Exception:
		logger.exception(f"Callback {getattr(callback, '__qualname__', callback)!r} failed")


@dataclasses.dataclass
class Event:

	"""
	A callback scheduled at an absolute (wall clock) time.
	"""

	time: float
	callback: EventCallback


class EventCollector:

	"""
	Finds the next batch of simultaneous events across a tree of sequences.

	A collector is filled once per tick by walking every active sequence.
	It keeps only the earliest events later than ``start_time``: an earlier
	event replaces the batch, an equal one joins it, later ones are dropped.
	No global sort is ever needed - the minimum falls out of the walk.

	Times held by the collector are in the root (wall clock) frame.  Nested
	sequences talk to it through a :class:`TransformedView`.
	"""

	def __init__ (
		self,
		clock: typing.Callable[[], float] = time.perf_counter,
		overdue_warning: float = marionette.constants.OVERDUE_WARNING,
		overdue_error: float = marionette.constants.OVERDUE_ERROR,
		start_time: float = 0.0
	) -> None:

		"""
		Parameters:
			clock: Wall clock used for waiting; must match the clock used to
				anchor top-level sequences.
			overdue_warning: Lateness (seconds) at which a warning is logged.
			overdue_error: Lateness (seconds) at which an error is logged.
			start_time: Initial floor; events at or before it are discarded.
		"""

		self._clock = clock
		self.overdue_warning = overdue_warning
		self.overdue_error = overdue_error

		self.start_time: float = start_time
		self.event_time: typing.Optional[float] = None
		self.current_events: typing.List[Event] = []


	def add_event (self, event_time: float, callback: EventCallback) -> None:

		"""
		Offer an event to the collector.

		The event is discarded if it is not later than ``start_time`` or later
		than the current batch.  An earlier event starts a new batch, an
		equal one is appended to it.
		"""

		if event_time <= self.start_time:
			return

		if self.event_time is not None and event_time > self.event_time:
			return

		if self.event_time is not None and event_time == self.event_time:
			self.current_events.append(Event(event_time, callback))
			return

		self.current_events = [Event(event_time, callback)]
		self.event_time = event_time


	def has_events (self) -> bool:

		"""Return True when a batch is pending."""

		return len(self.current_events) > 0


	def wait_until_event (self, wake: typing.Optional[threading.Event] = None) -> bool:

		"""
		Block until the wall clock reaches ``event_time``.

		Returns immediately if nothing is pending or the batch is already
		due.  Lateness is logged but never treated as a failure.  When a
		``wake`` event is given the wait ends early as soon as it is set.

		Returns:
			True if the event time was reached, False if there was nothing to
			wait for or the wait was interrupted.
		"""

		if not self.has_events() or self.event_time is None:
			return False

		remaining = self.event_time - self._clock()

		if remaining < -self.overdue_error:
			logger.error(f"Sequence long overdue ({-remaining:.3f}s late)")
		elif remaining < -self.overdue_warning:
			logger.warning(f"Sequencing overdue ({-remaining:.3f}s late)")

		while remaining > 0:

			if wake is None:
				time.sleep(remaining)

			elif wake.wait(remaining):
				return self._clock() >= self.event_time

			remaining = self.event_time - self._clock()

		return True


	def execute (self, wait: bool = True) -> None:

		"""
		Wait for the pending batch, run it and advance the floor.

		Callbacks run in the order they were added.  A failing callback is
		logged and does not prevent the rest of the batch from running.
		Pass ``wait=False`` when :meth:`wait_until_event` was already called.
		"""

		if not self.has_events() or self.event_time is None:
			return

		if wait:
			self.wait_until_event()

		for event in self.current_events:
			call_safely(event.callback)

		self.start_time = self.event_time
		self.restart()


	def restart (self) -> None:

		"""Drop the pending batch without advancing ``start_time``."""

		self.current_events = []
		self.event_time = None


	def offset_collector (self, offset: float, slope: float) -> "TransformedView":

		"""Return a view of this collector in a child's local timeline."""

		return TransformedView(self, marionette.time_transform.TimeTransform(offset, slope))


class TransformedView:

	"""
	A collector as seen from inside a sequence's local timeline.

	The view owns no events.  Reads convert the root collector's times into
	local time and writes convert local times back to the root frame before
	relaying them.  Views are cheap and rebuilt on every tick.
	"""

	def __init__ (self, root: EventCollector, transform: marionette.time_transform.TimeTransform) -> None:

		self.root = root
		self.transform = transform


	@property
	def offset (self) -> float:
		return self.transform.offset

	@property
	def slope (self) -> float:
		return self.transform.slope


	def convert_to_local (self, global_time: typing.Optional[float]) -> typing.Optional[float]:
		return self.transform.convert_to_local(global_time)

	def convert_to_global (self, local_time: typing.Optional[float]) -> typing.Optional[float]:
		return self.transform.convert_to_global(local_time)


	@property
	def start_time (self) -> float:

		"""The root floor, in local time."""

		return typing.cast(float, self.convert_to_local(self.root.start_time))


	@property
	def event_time (self) -> typing.Optional[float]:

		"""The pending batch time in local time, or None."""

		return self.convert_to_local(self.root.event_time)


	def has_events (self) -> bool:
		return self.root.has_events()


	def add_event (self, local_time: float, callback: EventCallback) -> None:

		"""Relay an event given in local time to the root collector."""

		self.root.add_event(typing.cast(float, self.convert_to_global(local_time)), callback)


	def offset_collector (self, offset: float, slope: float) -> "TransformedView":

		"""Return a view for a child placed at ``offset`` (local units) with ``slope``."""

		return TransformedView(self.root, self.transform.compose(offset, slope))
