"""Status codes and phases shared across stage components."""

from enum import StrEnum


class ItemState(StrEnum):
    """Lifecycle of a single item inside a stage.

    PENDING and RUNNING items occupy an admission slot. DONE items keep
    their slot until released (immediately in unordered mode, by the
    order buffer's drain in ordered mode).
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class StagePhase(StrEnum):
    """Finalization phase of a stage.

    Phases only move forward, in declaration order. Use phase_index()
    to compare them.
    """

    ACTIVE = "active"
    DRAINING = "draining"
    FINALIZING = "finalizing"
    FLUSHING = "flushing"
    COMPLETE = "complete"


_PHASE_ORDER: tuple[StagePhase, ...] = tuple(StagePhase)


def phase_index(phase: StagePhase) -> int:
    """Return the position of a phase in the forward-only ordering."""
    return _PHASE_ORDER.index(phase)
