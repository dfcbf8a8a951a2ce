import argparse
import logging
import os
import time
import typing

import marionette.collection
import marionette.config
import marionette.labels
import marionette.osc
import marionette.player


logger = logging.getLogger(__name__)


def parse_args (argv: typing.Optional[typing.List[str]] = None) -> argparse.Namespace:

	"""
	Parse command line arguments.
	"""

	parser = argparse.ArgumentParser(prog="marionette", description="Play label-scripted shows and accept OSC control.")
	parser.add_argument("--config", default="marionette.yaml", help="YAML config file (default: marionette.yaml)")
	parser.add_argument("label_files", nargs="*", help="Audacity label exports; each track becomes a program")

	return parser.parse_args(argv)


def register_label_programs (
	collection: marionette.collection.ProgramCollection,
	osc_server: marionette.osc.OscServer,
	label_files: typing.List[str]
) -> typing.List[str]:

	"""
	Register every track of every label file as a program.

	Programs are named ``<file stem>.<track>`` and play under the key
	``<file stem>``; each label sends ``/label <text>`` over OSC.
	"""

	def send_label (context: typing.Any, label: marionette.labels.Label) -> None:
		osc_server.send("/label", label.text)

	names: typing.List[str] = []

	for path in label_files:

		stem = os.path.splitext(os.path.basename(path))[0]
		reader = marionette.labels.LabelReader(path)

		for track in reader.tracks():
			name = f"{stem}.{track}"
			collection.register(name, marionette.labels.sheet_from_track(reader, track, send_label, name=name), key=stem)
			names.append(name)

	return names


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the marionette application.
	"""

	args = parse_args(argv)
	config = marionette.config.load_config(args.config)

	# Configure logging
	logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))

	logger.info("Marionette starting...")

	player = marionette.player.Player(config=config)
	collection = marionette.collection.ProgramCollection(player)
	osc_server = marionette.osc.OscServer(player, collection, config)

	for name in register_label_programs(collection, osc_server, args.label_files):
		logger.info(f"Registered program {name!r} (send /play/{name} to start)")

	player.start()
	osc_server.start()

	try:
		while True:
			time.sleep(1)
	except KeyboardInterrupt:
		logger.info("Stopping...")
	finally:
		osc_server.stop()
		player.stop()


if __name__ == "__main__":
	main()
