import shutil
import typing

import pytest

import marionette.config
import marionette.event_collector
import marionette.sequence
import marionette.sheet
import marionette.sheet_sequence

import conftest


def _sheet_with (notes: typing.Dict[float, typing.Callable[..., typing.Any]], **kwargs: typing.Any) -> marionette.sheet.Sheet:

	"""Build a sheet whose fill block adds the given notes."""

	sheet = marionette.sheet.Sheet(**kwargs)

	@sheet.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		for time, callback in notes.items():
			s.at(time, callback)

	return sheet


def test_requires_sheet () -> None:

	"""A sheet sequence cannot be built without a sheet."""

	with pytest.raises(ValueError):
		marionette.sheet_sequence.SheetSequence(0.0)


def test_tempo_scales_slope (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""At 120 bpm a note at beat 2 fires one second in, and the sheet ends just after."""

	fired: typing.List[float] = []

	sheet = _sheet_with({2: lambda: fired.append(clock.now)}, tempo=120)
	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=sheet)

	assert sequence.slope == 2.0
	assert sequence.end_time == 2.01

	times = conftest.run_ticks([sequence], collector, clock, 10)

	assert times == pytest.approx([100.0, 101.0, 101.005])
	assert fired == [101.0]
	assert sequence.is_torn_down


def test_simultaneous_notes_fire_in_one_batch (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""Notes at the same time run together, in the order they were added."""

	order: typing.List[str] = []

	sheet = marionette.sheet.Sheet()

	@sheet.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		s.at(2.5, lambda: order.append("first"))
		s.at(1.0, lambda: order.append("early"))
		s.at(2.5, lambda: order.append("second"))

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=sheet)

	times = conftest.run_ticks([sequence], collector, clock, 10)

	assert times == pytest.approx([100.0, 101.0, 102.5, 102.51])
	assert order == ["early", "first", "second"]


def test_notes_kept_sorted () -> None:

	"""Notes added out of order are stored by time."""

	sheet = marionette.sheet.Sheet()
	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=sheet)

	for time in (3, 1, 2):
		sequence.at(time, lambda: None)

	assert [note.time for note in sequence.notes] == [1.0, 2.0, 3.0]


def test_after_is_relative_to_latest () -> None:

	"""after() measures from the most recently added note."""

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet())

	sequence.at(1.5, lambda: None)
	note = sequence.after(2, lambda: None)

	assert note.time == 3.5


def test_at_as_decorator () -> None:

	"""Calling at() without a callback returns a decorator."""

	sheet = marionette.sheet.Sheet()

	@sheet.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:

		@s.at(2.5)
		def wave (s: marionette.sheet_sequence.SheetContext) -> None:
			pass

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=sheet)

	assert len(sequence.notes) == 1
	assert sequence.notes[0].time == 2.5
	assert sequence.notes[0].callback.__name__ == "wave"


def test_at_rejects_bad_arguments () -> None:

	"""Non-callable notes and sheet plus sequence together are errors."""

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet())

	with pytest.raises(ValueError):
		sequence.at(1, typing.cast(typing.Any, 5))

	with pytest.raises(ValueError):
		sequence.at(1, sheet=marionette.sheet.Sheet(), sequence=marionette.sequence.Sequence)


def test_repeating_times_wrap () -> None:

	"""Note times are taken modulo the repeat period."""

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet(repeat_time=4))

	note = sequence.at(5, lambda: None)

	assert note.time == 1.0
	assert sequence.end_time is None


def test_repeating_sheet_fires_every_period (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""A note at beat 1 of a 4-beat loop fires at 1, 5, 9, 13."""

	fired: typing.List[float] = []

	sheet = _sheet_with({1: lambda: fired.append(clock.now)}, repeat_time=4)
	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=sheet)

	times = conftest.run_ticks([sequence], collector, clock, 5)

	assert times == [100.0, 101.0, 105.0, 109.0, 113.0]
	assert fired == [101.0, 105.0, 109.0, 113.0]


def test_repeating_sheet_idles_after_end (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""Notes past end_time in a period never fire."""

	fired: typing.List[typing.Tuple[str, float]] = []

	sheet = _sheet_with(
		{
			1: lambda: fired.append(("one", clock.now)),
			3: lambda: fired.append(("three", clock.now)),
		},
		end_time = 2,
		repeat_time = 4
	)

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=sheet)

	times = conftest.run_ticks([sequence], collector, clock, 8)

	assert times == [100.0, 101.0, 102.0, 104.0, 105.0, 106.0, 108.0, 109.0]
	assert fired == [("one", 101.0), ("one", 105.0), ("one", 109.0)]
	assert sequence.state is marionette.sequence.SequenceState.RUNNING


def test_notes_at_start_fire_after_setup_block (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""The setup block runs first, then notes sitting on the start instant."""

	log: typing.List[str] = []

	sheet = marionette.sheet.Sheet()

	@sheet.setup
	def setup () -> None:
		log.append("setup")

	@sheet.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		s.at(0, lambda: log.append("note"))

	@sheet.teardown
	def teardown () -> None:
		log.append("teardown")

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=sheet)

	times = conftest.run_ticks([sequence], collector, clock, 10)

	assert times == pytest.approx([100.0, 100.01])
	assert log == ["setup", "note", "teardown"]


def test_nested_sheet_tempo_is_relative_to_absolute_speed (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""A 60 bpm child inside a 120 bpm parent runs at wall clock speed."""

	fired: typing.List[float] = []

	child = _sheet_with({1: lambda: fired.append(clock.now)}, tempo=60)

	parent = marionette.sheet.Sheet(tempo=120)

	@parent.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		s.at(2, sheet=child)

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=parent)
	nested = sequence.subprograms[0]

	assert nested.slope == 0.5
	assert typing.cast(marionette.sheet_sequence.SheetSequence, nested).absolute_slope == 1.0
	assert sequence.end_time == 4.03

	times = conftest.run_ticks([sequence], collector, clock, 10)

	assert times == pytest.approx([100.0, 101.0, 102.0, 102.01, 102.015])
	assert fired == [102.0]
	assert nested.is_torn_down
	assert sequence.is_torn_down
	assert sequence.subprograms == []


def test_child_events_precede_parent_notes (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""Simultaneous child and parent notes run child first."""

	order: typing.List[str] = []

	child = _sheet_with({1: lambda: order.append("child")})

	parent = marionette.sheet.Sheet()

	@parent.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		s.at(2, lambda: order.append("parent"))
		s.at(1, sheet=child)

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=parent)

	conftest.run_ticks([sequence], collector, clock, 10)

	assert order == ["child", "parent"]


def test_repeating_child_disables_auto_end () -> None:

	"""A child that never ends keeps its parent running."""

	sheet = marionette.sheet.Sheet()
	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=sheet)

	sequence.at(1, lambda: None)
	sequence.at(2, sheet=marionette.sheet.Sheet(repeat_time=1))

	assert sequence.end_time is None
	assert sequence.parent_end_time is None


def test_explicit_end_is_kept () -> None:

	"""A fixed end time is not extended by later notes."""

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet(end_time=1))

	sequence.at(5, lambda: None)

	assert sequence.end_time == 1


class Pulse (marionette.sequence.Sequence):

	"""A custom sequence that fires once, half a unit in, and lasts one unit."""

	def __init__ (self, offset: float, slope: float = 1.0, options: typing.Optional[typing.Dict[str, typing.Any]] = None) -> None:

		super().__init__(offset, slope, end_time=1.0, options=options)

		self.fired = False
		self.torn_down = 0
		self.fired_at: typing.List[float] = []

	def append_content (self, collector: marionette.event_collector.TransformedView) -> None:

		if not self.fired:
			collector.add_event(0.5, self._fire)

	def _fire (self) -> None:
		self.fired = True
		self.fired_at.append(self.options["clock"]())

	def on_teardown (self) -> None:
		self.torn_down += 1


def test_custom_sequence_class (collector: marionette.event_collector.EventCollector, clock: conftest.FakeClock) -> None:

	"""at(sequence=...) instantiates a Sequence subclass at the given time."""

	sequence = marionette.sheet_sequence.SheetSequence(100.0, sheet=marionette.sheet.Sheet())
	pulse = sequence.at(1, sequence=Pulse, options={"clock": clock})

	assert isinstance(pulse, Pulse)
	assert sequence.end_time == 2.01

	times = conftest.run_ticks([sequence], collector, clock, 10)

	assert times == pytest.approx([100.0, 101.0, 101.5, 102.0, 102.01])
	assert pulse.fired_at == [101.5]
	assert pulse.torn_down == 1


def test_teardown_destroys_children () -> None:

	"""Destroying the parent destroys subprograms that never started."""

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet())
	pulse = sequence.at(5, sequence=Pulse)

	sequence.destroy()

	assert pulse.is_torn_down
	assert pulse.torn_down == 1


def test_notes_of_stopped_sequence_do_not_fire () -> None:

	"""A note handed out before teardown does nothing afterwards."""

	fired: typing.List[int] = []

	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet())
	note = sequence.at(1, lambda: fired.append(1))

	sequence.setup()
	sequence.destroy()
	note.fire()

	assert fired == []


def test_options_reach_blocks () -> None:

	"""Blocks see the option payload through the context."""

	seen: typing.List[typing.Any] = []

	sheet = marionette.sheet.Sheet()

	@sheet.fill
	def fill (s: marionette.sheet_sequence.SheetContext) -> None:
		seen.append(s.options["colour"])

	marionette.sheet_sequence.SheetSequence(0.0, sheet=sheet, options={"colour": "red"})

	assert seen == ["red"]


@pytest.mark.skipif(shutil.which("sleep") is None, reason="needs the sleep command")
def test_play_is_stopped_on_teardown () -> None:

	"""Media processes are terminated when the sequence is torn down."""

	config = marionette.config.Config(play_command=["sleep", "30"])
	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet(), config=config)

	process = sequence.play("ignored.wav")

	assert process is not None
	assert process in sequence.processes

	sequence.destroy()

	assert process.wait(timeout=5) != 0


@pytest.mark.skipif(shutil.which("true") is None, reason="needs the true command")
def test_kill_finished_process_is_harmless () -> None:

	"""Killing a process that already exited is not an error."""

	config = marionette.config.Config(play_command=["true"])
	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet(), config=config)

	process = sequence.play("ignored.wav")

	assert process is not None

	process.wait(timeout=5)
	sequence.kill(process)
	sequence.kill(None)


def test_play_with_missing_player_returns_none () -> None:

	"""A media player that cannot be started yields None."""

	config = marionette.config.Config(play_command=["marionette-missing-player-binary", "{path}"])
	sequence = marionette.sheet_sequence.SheetSequence(0.0, sheet=marionette.sheet.Sheet(), config=config)

	assert sequence.play("ignored.wav") is None
