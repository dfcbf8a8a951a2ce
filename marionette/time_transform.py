import dataclasses
import typing

import marionette.constants


def round_time (value: float) -> float:

	"""Round a local time to the engine's fixed precision."""

	return round(value, marionette.constants.TIME_PRECISION)


@dataclasses.dataclass(frozen=True)
class TimeTransform:

	"""
	Affine mapping between a parent timeline and a child's local timeline.

	A child sequence whose origin sits at ``offset`` (parent units) and which
	advances ``slope`` local units per parent unit sees::

		local  = (parent - offset) * slope
		parent = offset + local / slope

	Local results are rounded to ``TIME_PRECISION`` decimals.  Composing two
	transforms multiplies the slopes and maps the inner offset through the
	outer transform, so an arbitrarily deep tree collapses into a single
	``(offset, slope)`` pair relative to the wall clock.
	"""

	offset: float = 0.0
	slope: float = 1.0

	def __post_init__ (self) -> None:

		if self.slope == 0:
			raise ValueError("Time transform slope must be nonzero")


	def convert_to_local (self, parent_time: typing.Optional[float]) -> typing.Optional[float]:

		"""Convert a parent-frame time into this transform's local frame."""

		if parent_time is None:
			return None

		return round_time((parent_time - self.offset) * self.slope)


	def convert_to_global (self, local_time: typing.Optional[float]) -> typing.Optional[float]:

		"""Convert a local time back into the parent frame."""

		if local_time is None:
			return None

		return self.offset + round_time(float(local_time)) / self.slope


	def compose (self, offset: float, slope: float) -> "TimeTransform":

		"""
		Return the transform of a child placed at ``offset`` with ``slope``
		inside this transform's local timeline.
		"""

		return TimeTransform(
			offset = typing.cast(float, self.convert_to_global(offset)),
			slope = self.slope * slope
		)
