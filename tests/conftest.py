import typing

import pytest

import marionette.event_collector
import marionette.sequence


class FakeClock:

	"""Manually advanced wall clock for deterministic scheduling tests."""

	def __init__ (self, now: float = 100.0) -> None:

		"""Start the clock at a fixed time."""

		self.now = now


	def __call__ (self) -> float:

		"""Return the current fake time."""

		return self.now


@pytest.fixture
def clock () -> FakeClock:

	"""A fake clock starting at t=100."""

	return FakeClock()


@pytest.fixture
def collector (clock: FakeClock) -> marionette.event_collector.EventCollector:

	"""A collector whose floor sits one second before the fake clock."""

	return marionette.event_collector.EventCollector(clock=clock, start_time=clock.now - 1)


def run_ticks (
	sequences: typing.List[marionette.sequence.Sequence],
	collector: marionette.event_collector.EventCollector,
	clock: FakeClock,
	count: int
) -> typing.List[float]:

	"""Drive the collect/execute cycle by hand, jumping the clock to each batch.

	Returns the times of the executed batches.  Stops early when nothing is
	left to execute.
	"""

	times: typing.List[float] = []

	for _ in range(count):

		for sequence in sequences:
			sequence.append_events(collector)

		if not collector.has_events():
			break

		clock.now = typing.cast(float, collector.event_time)
		times.append(clock.now)
		collector.execute()

	return times
