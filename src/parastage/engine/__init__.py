# src/parastage/engine/__init__.py
"""Stage execution engine.

Components, leaves first:
- AdmissionGate: bounds in-flight items
- Completion / TaskRunner: single-resolution completions around user code
- OrderBuffer: releases completed items in admission order
- FinalizationCoordinator: ACTIVE -> ... -> COMPLETE shutdown sequencing
- ConcurrentStage: wires the above to a substrate
"""

from parastage.engine.admission import AdmissionGate
from parastage.engine.completion import Completion, TaskRunner
from parastage.engine.finalization import FinalizationCoordinator
from parastage.engine.reorder_buffer import OrderBuffer
from parastage.engine.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from parastage.engine.stage import ConcurrentStage

__all__ = [
    "AdmissionGate",
    "AsyncioScheduler",
    "Completion",
    "ConcurrentStage",
    "FinalizationCoordinator",
    "ManualScheduler",
    "OrderBuffer",
    "Scheduler",
    "TaskRunner",
]
