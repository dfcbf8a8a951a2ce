"""Timing constants shared by the sequencing engine.

Local times are rounded to ``TIME_PRECISION`` decimal places whenever they
cross a time transform, so that deeply nested offsets and slopes do not
accumulate floating point jitter.  Slopes are rounded to ``SLOPE_PRECISION``.
"""

# Decimal places kept for local times (1 ms at slope 1).
TIME_PRECISION = 3

# Decimal places kept for slopes.
SLOPE_PRECISION = 6

# Smallest local-time step used to guarantee forward progress when a setup,
# end or resume event would otherwise land on an instant that already passed.
PROGRESS_EPSILON = 0.01

# Lateness thresholds (seconds) for the overdue warnings in the collector.
OVERDUE_WARNING = 0.1
OVERDUE_ERROR = 0.5

# Default beats-per-minute a tempo is measured against (slope 1 = 60 BPM).
SECONDS_PER_MINUTE = 60.0

# argv template for media playback (SoX ``play``).
DEFAULT_PLAY_COMMAND = ["play", "-q", "--volume", "{volume}", "{path}"]
DEFAULT_PLAY_VOLUME = 0.3
