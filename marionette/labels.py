"""Import label tracks exported from an audio editor.

Audacity exports labels as plain text, one label per line::

	1.500000	1.500000	blink
	2.000000	3.250000	wave left

A label whose text is ``TRACK: <name>`` starts a new named track; labels
before the first marker belong to the ``"default"`` track.  A marker that
repeats an earlier track name starts that track over.  Lines that do not
look like labels are skipped.

The reader only parses.  :meth:`LabelReader.schedule` and
:func:`sheet_from_track` turn a track into ``at`` calls on a sheet.
"""

import dataclasses
import logging
import re
import typing

import marionette.sheet

if typing.TYPE_CHECKING:
	from marionette.sheet_sequence import SheetContext


logger = logging.getLogger(__name__)

DEFAULT_TRACK = "default"

_LABEL_RE = re.compile(r"^\s*(?P<start>[\d.]+)\s+(?P<stop>[\d.]+)\s+(?P<text>\S.*?)\s*$")
_TRACK_RE = re.compile(r"^TRACK:\s*(?P<name>\S.*)$")


@dataclasses.dataclass(frozen=True)
class Label:

	"""
	A labelled region (or point, when ``start == stop``) in seconds.
	"""

	start: float
	stop: float
	text: str

	@property
	def duration (self) -> float:
		return self.stop - self.start


class LabelReader:

	"""
	Parses a label file into named tracks of :class:`Label` objects.
	"""

	def __init__ (self, path: typing.Optional[str] = None) -> None:

		"""
		Parameters:
			path: Label file to read.  When omitted the reader starts empty
				and :meth:`parse` can be fed lines directly.
		"""

		self._tracks: typing.Dict[str, typing.List[Label]] = {DEFAULT_TRACK: []}

		if path is not None:
			with open(path, 'r') as f:
				self.parse(f)


	def parse (self, lines: typing.Iterable[str]) -> None:

		"""Add the labels found in ``lines``."""

		current_track = DEFAULT_TRACK

		for line in lines:

			match = _LABEL_RE.match(line)
			if not match:
				continue

			text = match.group("text")
			track_match = _TRACK_RE.match(text)

			if track_match:
				current_track = track_match.group("name").strip()
				self._tracks[current_track] = []
				continue

			try:
				label = Label(float(match.group("start")), float(match.group("stop")), text)
			except ValueError:
				logger.warning(f"Skipping malformed label line: {line.rstrip()!r}")
				continue

			self._tracks[current_track].append(label)


	def __getitem__ (self, name: str) -> typing.List[Label]:

		"""Labels of a track (an empty list for unknown tracks)."""

		return list(self._tracks.get(name, []))


	def tracks (self) -> typing.List[str]:

		"""Names of the tracks holding at least one label."""

		return [name for name, labels in self._tracks.items() if labels]


	def schedule (
		self,
		context: "SheetContext",
		track: str,
		callback: typing.Callable[["SheetContext", Label], typing.Any]
	) -> int:

		"""
		Add one note per label of ``track`` to a sheet being filled.

		``callback`` is called with the context and the label at the label's
		start time.

		Returns:
			The number of notes added.
		"""

		labels = self[track]

		for label in labels:
			context.at(label.start, _bind_label(callback, label))

		return len(labels)


def _bind_label (callback: typing.Callable[["SheetContext", Label], typing.Any], label: Label) -> typing.Callable[["SheetContext"], typing.Any]:

	def fire (context: "SheetContext") -> typing.Any:
		return callback(context, label)

	return fire


def sheet_from_track (
	reader: LabelReader,
	track: str,
	callback: typing.Callable[["SheetContext", Label], typing.Any],
	**sheet_kwargs: typing.Any
) -> marionette.sheet.Sheet:

	"""
	Build a sheet that fires ``callback`` at every label of ``track``.

	Extra keyword arguments are passed to :class:`~marionette.sheet.Sheet`.
	"""

	sheet = marionette.sheet.Sheet(name=sheet_kwargs.pop("name", track), **sheet_kwargs)

	@sheet.fill
	def fill (context: "SheetContext") -> None:
		reader.schedule(context, track, callback)

	return sheet
