"""
Marionette - a hierarchical show sequencer for physical devices.

Marionette drives animatronics, costume electronics, lighting and sound
from timed programs.  A program is a tree of nested timelines: each one
has its own start, speed (tempo) and optional repeat period, and fires
Python callbacks at precise moments.  The whole tree is merged into one
wall-clock schedule and played by a single thread that sleeps until the
next batch of simultaneous events is due.

- **Sheets and sequences.** A ``Sheet`` is a reusable script; each time it
  is played a ``SheetSequence`` performs it with its own option payload.
- **Nesting with independent time.** Sheets can place other sheets on
  their timeline.  Tempo and slope compose through the tree, so every
  sheet is written against a simple 0-based local timeline.
- **Deterministic lifecycle.** Setup, end and teardown are ordinary
  events in the same timeline; teardown always runs, exactly once, and
  releases nested programs and media playback.
- **Live control.** Programs are assigned to, replaced under, and removed
  from keys at any time and from any thread.  ``on_tick`` hooks push
  accumulated device changes after every batch.
- **Label import and OSC.** Audacity label tracks become notes; an OSC
  server starts and stops registered programs remotely.

Minimal example:

    ```python
    import marionette

    blink = marionette.Sheet(tempo=120, name="blink")

    @blink.fill
    def notes (s):
        s.at(0, lambda: print("close"))
        s.at(1, lambda: print("open"))

    player = marionette.Player()
    player.start()
    player.assign("eyes", blink)
    ```

Package-level exports: ``Player``, ``Sheet``, ``SheetSequence``,
``Sequence``, ``Config``, ``load_config``.
"""

import marionette.config
import marionette.player
import marionette.sequence
import marionette.sheet
import marionette.sheet_sequence


Config = marionette.config.Config
load_config = marionette.config.load_config
Player = marionette.player.Player
Sequence = marionette.sequence.Sequence
SequenceState = marionette.sequence.SequenceState
Sheet = marionette.sheet.Sheet
SheetSequence = marionette.sheet_sequence.SheetSequence
