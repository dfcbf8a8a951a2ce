"""OSC remote control.

The server listens on a UDP port (default 9000) for control messages and
sends messages to a target host/port (default 127.0.0.1:9001).

Built-in Receive Handlers
─────────────────────────
- ``/play/<name>``: Start the registered program ``name``
- ``/stop/<key>``: Remove the program playing under player key ``key``
- ``/stop``: Remove every playing program
"""

import logging
import threading
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import marionette.collection
import marionette.config
import marionette.player


logger = logging.getLogger(__name__)


class OscServer:

	"""Threaded OSC server/client for remote control of a player."""

	def __init__ (
		self,
		player: marionette.player.Player,
		collection: marionette.collection.ProgramCollection,
		config: typing.Optional[marionette.config.Config] = None,
		receive_host: str = "0.0.0.0"
	) -> None:

		config = config or player.config

		self._player = player
		self._collection = collection
		self._receive_host = receive_host
		self._receive_port = config.osc_receive_port
		self._send_host = config.osc_send_host
		self._send_port = config.osc_send_port

		self._server: typing.Optional[pythonosc.osc_server.ThreadingOSCUDPServer] = None
		self._thread: typing.Optional[threading.Thread] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		# Register built-in handlers
		self._dispatcher.map("/play/*", self._handle_play)
		self._dispatcher.map("/stop/*", self._handle_stop)
		self._dispatcher.map("/stop", self._handle_stop_all)


	@property
	def port (self) -> typing.Optional[int]:

		"""The port actually bound (useful when configured with port 0)."""

		if self._server is None:
			return None

		return self._server.server_address[1]


	def start (self) -> None:

		"""Start the OSC server thread and client."""

		if self._server is not None:
			return

		# client for sending
		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		# server for receiving
		self._server = pythonosc.osc_server.ThreadingOSCUDPServer(
			(self._receive_host, self._receive_port),
			self._dispatcher
		)

		self._thread = threading.Thread(
			target = self._server.serve_forever,
			name = "marionette-osc",
			daemon = True
		)
		self._thread.start()

		logger.info(f"OSC listening on :{self.port}, sending to {self._send_host}:{self._send_port}")


	def stop (self) -> None:

		"""Stop the OSC server."""

		if self._server is None:
			return

		self._server.shutdown()
		self._server.server_close()
		self._server = None

		if self._thread is not None:
			self._thread.join()
			self._thread = None

		logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Handlers

	def _handle_play (self, address: str, *args: typing.Any) -> None:
		# address is like /play/blink
		parts = address.split("/", 2)
		if len(parts) == 3 and parts[2]:
			self._collection.play(parts[2])

	def _handle_stop (self, address: str, *args: typing.Any) -> None:
		parts = address.split("/", 2)
		if len(parts) == 3 and parts[2]:
			self._player.remove(parts[2])

	def _handle_stop_all (self, address: str, *args: typing.Any) -> None:
		for key in self._player.keys():
			self._player.remove(key)
