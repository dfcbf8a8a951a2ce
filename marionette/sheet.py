import inspect
import typing


if typing.TYPE_CHECKING:
	from marionette.sheet_sequence import SheetContext


Block = typing.Callable[..., typing.Any]


def accepts_context (fn: typing.Callable[..., typing.Any]) -> bool:

	"""
	Check whether a block or note callback takes the context argument.

	Callables that cannot be introspected are assumed to take it.
	"""

	try:
		parameters = inspect.signature(fn).parameters.values()
	except (TypeError, ValueError):
		return True

	for parameter in parameters:

		if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.VAR_POSITIONAL):
			return True

	return False


def call_with_context (fn: typing.Callable[..., typing.Any], context: "SheetContext") -> typing.Any:

	"""Call ``fn(context)``, or ``fn()`` when it takes no arguments."""

	if accepts_context(fn):
		return fn(context)

	return fn()


class Sheet:

	"""
	A reusable template for a timed program.

	A sheet is the script; a :class:`~marionette.sheet_sequence.SheetSequence`
	is one performance of it.  The same sheet can be instantiated any number
	of times, with different option payloads, at the top level or nested in
	other sheets.

	Example::

		blink = marionette.Sheet(tempo=120)

		@blink.fill
		def notes (s):
			s.at(0, lambda: eyes.close())
			s.at(0.5, lambda: eyes.open())

		@blink.teardown
		def reset (s):
			eyes.open()

	Blocks receive a :class:`~marionette.sheet_sequence.SheetContext`; blocks
	declared without parameters are called without it.
	"""

	def __init__ (
		self,
		start_time: float = 0.0,
		end_time: typing.Optional[float] = None,
		tempo: typing.Optional[float] = None,
		repeat_time: typing.Optional[float] = None,
		name: typing.Optional[str] = None
	) -> None:

		"""
		Parameters:
			start_time: Local time at which the program sets up.
			end_time: Local time at which it is torn down.  When omitted it
				is derived from the last note or subprogram (and never for
				repeating sheets).
			tempo: Speed in beats per minute; local times are then measured
				in beats.  When omitted the parent's speed is used.
			repeat_time: Local period after which the content replays.
			name: Optional label used in log messages.
		"""

		if tempo is not None and tempo <= 0:
			raise ValueError("Tempo must be positive")

		if repeat_time is not None and repeat_time <= 0:
			raise ValueError("repeat_time must be positive")

		if repeat_time is not None and end_time is not None and end_time >= repeat_time:
			raise ValueError("end_time must fall inside the repeat period")

		self.start_time = start_time
		self.end_time = end_time
		self.tempo = tempo
		self.repeat_time = repeat_time
		self.name = name

		self.fill_block: typing.Optional[Block] = None
		self.setup_block: typing.Optional[Block] = None
		self.teardown_block: typing.Optional[Block] = None


	def fill (self, fn: Block) -> Block:

		"""
		Register the block that adds notes and subprograms.

		Runs once, when a sequence is built from this sheet.
		"""

		self.fill_block = fn
		return fn


	def setup (self, fn: Block) -> Block:

		"""Register the block that runs when the sequence starts running."""

		self.setup_block = fn
		return fn


	def teardown (self, fn: Block) -> Block:

		"""
		Register the block that releases the program's resources.

		Guaranteed to run exactly once per sequence, however it ends.
		"""

		self.teardown_block = fn
		return fn


	def __repr__ (self) -> str:
		return f"<Sheet {self.name or hex(id(self))}>"
