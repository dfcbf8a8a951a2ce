import logging
import threading
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	A simple, thread-safe event emitter.

	Listeners run synchronously, in registration order, on the emitting
	thread.  A failing listener is logged and does not stop the others.
	"""

	def __init__ (self) -> None:

		"""
		Initialize an empty event registry.
		"""

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}
		self._lock = threading.Lock()


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		with self._lock:
			self._listeners.setdefault(event_name, []).append(callback)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		with self._lock:

			if event_name not in self._listeners or callback not in self._listeners[event_name]:
				raise ValueError(f"Callback not registered for event {event_name!r}")

			self._listeners[event_name].remove(callback)


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event, calling every listener with the given arguments.
		"""

		with self._lock:
			listeners = list(self._listeners.get(event_name, []))

		for callback in listeners:
			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener {getattr(callback, '__qualname__', callback)!r} for {event_name!r} failed")
