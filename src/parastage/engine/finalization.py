# src/parastage/engine/finalization.py
"""Finalization coordinator: the two-phase shutdown state machine.

Phases only move forward:

    ACTIVE -> DRAINING -> FINALIZING -> FLUSHING -> COMPLETE

- DRAINING is entered on end of input.
- The drain guard (every admitted item DONE and released, no output
  backlog) is evaluated by the stage during its lifecycle advance.
- The finalize hook runs once; its successful terminal call enters
  FLUSHING synchronously, and the flush hook is invoked right there,
  inside that terminal call.
- COMPLETE fires the completion signal exactly once.

Missing hooks skip their phase: without a finalize hook the coordinator
goes from DRAINING straight to FLUSHING, without a flush hook FLUSHING
completes immediately.
"""

from __future__ import annotations

from collections.abc import Callable

from parastage.contracts.enums import StagePhase, phase_index
from parastage.contracts.errors import CompletionOrigin, StageClosedError, StageInvariantError
from parastage.contracts.types import HookFn
from parastage.core.config import StageHooks

# Runs a hook with a fresh completion; calls on_success from inside the
# hook's successful terminal call.
HookRunner = Callable[[CompletionOrigin, HookFn, Callable[[], None]], None]


class FinalizationCoordinator:
    """Owns the stage phase and sequences the shutdown hooks.

    The coordinator never decides when the stage is drained; the stage
    passes that in to advance(). Failure handling is also the stage's job:
    when a hook fails, its on_success callback is simply never called and
    the phase stays where it is.
    """

    def __init__(
        self,
        *,
        hooks: StageHooks,
        run_hook: HookRunner,
        on_complete: Callable[[], None],
        on_phase_change: Callable[[StagePhase, StagePhase], None] | None = None,
    ) -> None:
        """Initialize in ACTIVE phase.

        Args:
            hooks: Optional finalize/flush hooks
            run_hook: Stage-provided hook invoker
            on_complete: Completion signal, called once on entering COMPLETE
            on_phase_change: Observer called with (previous, current)
        """
        self._hooks = hooks
        self._run_hook = run_hook
        self._on_complete = on_complete
        self._on_phase_change = on_phase_change
        self._phase = StagePhase.ACTIVE

    @property
    def phase(self) -> StagePhase:
        return self._phase

    @property
    def is_complete(self) -> bool:
        return self._phase is StagePhase.COMPLETE

    def begin_draining(self) -> None:
        """Record end of input.

        Raises:
            StageClosedError: If end of input was already recorded
        """
        if self._phase is not StagePhase.ACTIVE:
            raise StageClosedError(f"end of input signalled twice (phase is {self._phase})")
        self._transition(StagePhase.DRAINING)

    def advance(self, drained: bool) -> bool:
        """Start finalization if draining and the drain guard holds.

        Args:
            drained: Whether every admitted item is DONE and released
                and no output is waiting to be forwarded

        Returns:
            True if finalization started
        """
        if self._phase is not StagePhase.DRAINING or not drained:
            return False

        if self._hooks.finalize is None:
            self._enter_flushing()
        else:
            self._transition(StagePhase.FINALIZING)
            self._run_hook("finalize", self._hooks.finalize, self._enter_flushing)
        return True

    def _enter_flushing(self) -> None:
        self._transition(StagePhase.FLUSHING)
        if self._hooks.flush is None:
            self._enter_complete()
        else:
            self._run_hook("flush", self._hooks.flush, self._enter_complete)

    def _enter_complete(self) -> None:
        self._transition(StagePhase.COMPLETE)
        self._on_complete()

    def _transition(self, target: StagePhase) -> None:
        if phase_index(target) <= phase_index(self._phase):
            raise StageInvariantError(f"Illegal phase transition {self._phase} -> {target}")
        previous = self._phase
        self._phase = target
        if self._on_phase_change is not None:
            self._on_phase_change(previous, target)
