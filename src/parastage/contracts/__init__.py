"""Shared contracts for types that cross component boundaries.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Configuration models live in parastage.core.config.
"""

from parastage.contracts.enums import ItemState, StagePhase, phase_index
from parastage.contracts.errors import (
    CompletionOrigin,
    ProtocolViolation,
    StageClosedError,
    StageError,
    StageInvariantError,
    TaskFailure,
)
from parastage.contracts.items import Item
from parastage.contracts.sentinels import MISSING, MissingSentinel
from parastage.contracts.types import HookFn, TransformFn

__all__ = [
    "MISSING",
    "CompletionOrigin",
    "HookFn",
    "Item",
    "ItemState",
    "MissingSentinel",
    "ProtocolViolation",
    "StageClosedError",
    "StageError",
    "StageInvariantError",
    "StagePhase",
    "TaskFailure",
    "TransformFn",
    "phase_index",
]
