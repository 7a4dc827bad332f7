# src/parastage/plugins/hookspecs.py
"""pluggy hook specifications for stage lifecycle observers.

Observers implement these hooks to watch stages without touching their
bookkeeping. Hooks are notifications only: return values are ignored and
an observer must not call back into the stage.

Usage (implementing an observer plugin):
    from parastage.plugins.hookspecs import hookimpl

    class PhaseRecorder:
        def __init__(self):
            self.phases = []

        @hookimpl
        def parastage_phase_changed(self, stage_name, previous, current):
            self.phases.append(current)

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks plugin implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from parastage.contracts.enums import StagePhase
    from parastage.contracts.errors import StageError

# Project name for pluggy
PROJECT_NAME = "parastage"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for observer plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class ParastageLifecycleSpec:
    """Hook specifications for stage lifecycle observers."""

    @hookspec
    def parastage_phase_changed(self, stage_name: str, previous: "StagePhase", current: "StagePhase") -> None:
        """Called after every finalization phase transition.

        Entering FLUSHING after the finalize hook corresponds to a
        stream "finish"; entering COMPLETE corresponds to "end".

        Args:
            stage_name: StageConfig.name of the stage
            previous: Phase before the transition
            current: Phase after the transition
        """

    @hookspec
    def parastage_item_released(self, stage_name: str, sequence: int, output_count: int) -> None:
        """Called when an item's admission slot is released.

        Args:
            stage_name: StageConfig.name of the stage
            sequence: Admission sequence of the item
            output_count: Number of outputs the item produced
        """

    @hookspec
    def parastage_stage_failed(self, stage_name: str, error: "StageError") -> None:
        """Called once when a stage escalates its first fatal error.

        Args:
            stage_name: StageConfig.name of the stage
            error: TaskFailure or ProtocolViolation escalated to the substrate
        """
