"""
parastage: bounded-concurrency transform stages for streaming pipelines.

Applies an asynchronous transform to a stream of items with a cap on how
many transforms run at once, optional input-order preservation, and an
ordered finalize/flush shutdown sequence.
"""

from parastage.contracts import (
    Item,
    ItemState,
    ProtocolViolation,
    StageClosedError,
    StageError,
    StageInvariantError,
    StagePhase,
    TaskFailure,
)
from parastage.core.config import StageConfig, StageHooks, load_stage_config
from parastage.engine import (
    AsyncioScheduler,
    Completion,
    ConcurrentStage,
    ManualScheduler,
)
from parastage.substrate import AsyncQueueSubstrate, InlineSubstrate, stream_through

__version__ = "0.1.0"

__all__ = [
    "AsyncQueueSubstrate",
    "AsyncioScheduler",
    "Completion",
    "ConcurrentStage",
    "InlineSubstrate",
    "Item",
    "ItemState",
    "ManualScheduler",
    "ProtocolViolation",
    "StageClosedError",
    "StageConfig",
    "StageError",
    "StageHooks",
    "StageInvariantError",
    "StagePhase",
    "TaskFailure",
    "load_stage_config",
    "stream_through",
]
