# src/parastage/engine/stage.py
"""ConcurrentStage: bounded-concurrency transform stage.

Wires the admission gate, task runner, order buffer and finalization
coordinator to a substrate. The stage never buffers input itself: a
refused delivery leaves the item queued in the substrate, and the stage
asks for redelivery once a slot frees up.

Work happens in two phases:

1. Task settlement runs synchronously inside a completion's terminal
   call: record outputs, mark the item DONE or FAILED, buffer or forward
   its outputs, release its slot.
2. The stage lifecycle advance is a single coalesced callback scheduled
   after any settlement, end of input or readiness change. While ACTIVE
   it requests redelivery if a slot is free; while DRAINING it evaluates
   the drain guard and starts finalization. Because it is deferred it
   always observes every settlement applied before it.

Failure policy: the first TaskFailure or ProtocolViolation is escalated
to the substrate exactly once. After that nothing is admitted or
forwarded and the hooks never run. Tasks still in flight are abandoned:
their terminal calls are accepted but their outputs are dropped.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Mapping
from functools import partial
from typing import TYPE_CHECKING, Any

from parastage.contracts.enums import ItemState, StagePhase
from parastage.contracts.errors import (
    CompletionOrigin,
    StageClosedError,
    StageError,
    StageInvariantError,
    TaskFailure,
)
from parastage.contracts.items import Item
from parastage.contracts.sentinels import MISSING
from parastage.contracts.types import HookFn, TransformFn
from parastage.core.config import StageConfig, StageHooks
from parastage.core.logging import get_logger
from parastage.engine.admission import AdmissionGate
from parastage.engine.completion import Completion, TaskRunner
from parastage.engine.finalization import FinalizationCoordinator
from parastage.engine.reorder_buffer import OrderBuffer
from parastage.engine.scheduler import AsyncioScheduler, Scheduler
from parastage.plugins.manager import StageEvents, create_stage_events

if TYPE_CHECKING:
    from parastage.substrate.ports import Substrate

logger = get_logger(__name__)


class ConcurrentStage:
    """Applies a transform to each delivered item with bounded concurrency.

    The transform is called as transform(payload, completion). It may
    settle the completion itself (callback style) or be a coroutine
    function whose return value becomes the item's final output.

    Usage:
        substrate = InlineSubstrate()
        stage = ConcurrentStage(
            enrich,
            substrate,
            StageConfig(max_concurrency=4, preserve_order=True),
            StageHooks(finalize=write_summary),
        )
        substrate.write(record)
        substrate.end()
    """

    def __init__(
        self,
        transform: TransformFn,
        substrate: Substrate,
        config: StageConfig | None = None,
        hooks: StageHooks | None = None,
        *,
        scheduler: Scheduler | None = None,
        events: StageEvents | None = None,
    ) -> None:
        """Create the stage and attach it to the substrate.

        Args:
            transform: Called as transform(payload, completion)
            substrate: Pipeline substrate providing input and taking output
            config: Stage configuration (defaults to StageConfig())
            hooks: Optional finalize/flush hooks
            scheduler: Scheduler for deferred work (defaults to AsyncioScheduler)
            events: Lifecycle event publisher (defaults to logging only)
        """
        self._transform = transform
        self._substrate = substrate
        self._config = config if config is not None else StageConfig()
        self._hooks = hooks if hooks is not None else StageHooks()
        self._scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._events = events if events is not None else create_stage_events()

        self._gate = AdmissionGate(self._config.max_concurrency)
        self._runner = TaskRunner(self._scheduler, self._escalate, stage_name=self._config.name)
        self._order_buffer: OrderBuffer | None = None
        if self._config.preserve_order:
            self._order_buffer = OrderBuffer(
                forward=self._forward,
                release=self._release,
                is_ready=substrate.is_ready,
                name=self._config.name,
            )
        self._coordinator = FinalizationCoordinator(
            hooks=self._hooks,
            run_hook=self._run_hook,
            on_complete=self._signal_complete,
            on_phase_change=self._on_phase_change,
        )

        # Unordered outputs waiting for downstream readiness
        self._backlog: deque[Any] = deque()
        self._next_sequence = 0
        self._failure: StageError | None = None
        self._advance_scheduled = False
        self._outputs_forwarded = 0

        self._log = logger.bind(stage=self._config.name)
        substrate.attach(self)

    # -- Read-only state -------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StageConfig:
        return self._config

    @property
    def phase(self) -> StagePhase:
        return self._coordinator.phase

    @property
    def in_flight(self) -> int:
        """Items admitted and not yet released."""
        return self._gate.in_flight

    @property
    def failure(self) -> StageError | None:
        """The escalated error, if the stage has failed."""
        return self._failure

    @property
    def is_complete(self) -> bool:
        return self._coordinator.is_complete

    def get_metrics(self) -> dict[str, Any]:
        """Get metrics snapshot for observability."""
        metrics: dict[str, Any] = {
            "name": self._config.name,
            "phase": str(self._coordinator.phase),
            "preserve_order": self._config.preserve_order,
            "failed": self._failure is not None,
            "backlog": len(self._backlog),
            "outputs_forwarded": self._outputs_forwarded,
            **self._gate.get_metrics(),
        }
        if self._order_buffer is not None:
            metrics["order_buffer"] = self._order_buffer.get_metrics()
        return metrics

    # -- Substrate-facing operations -------------------------------------

    def deliver(self, payload: Any, metadata: Mapping[str, Any] | None = None) -> bool:
        """Offer one input item.

        Args:
            payload: Value handed to the transform
            metadata: Optional substrate metadata exposed on the completion

        Returns:
            True if the item was admitted and its transform invoked,
            False if the substrate must keep it queued (gate full or
            stage failed)

        Raises:
            StageClosedError: If end of input was already signalled
        """
        if self._coordinator.phase is not StagePhase.ACTIVE:
            raise StageClosedError(f"Stage {self._config.name!r} received input after end of input")
        if self._failure is not None:
            return False
        if not self._gate.try_admit():
            return False

        item = Item(
            sequence=self._next_sequence,
            payload=payload,
            metadata=metadata,
            admitted_at=time.perf_counter(),
        )
        self._next_sequence += 1
        item.state = ItemState.RUNNING
        self._log.debug("item_admitted", sequence=item.sequence, in_flight=self._gate.in_flight)

        completion = Completion(
            origin="transform",
            sequence=item.sequence,
            metadata=metadata,
            on_emit=partial(self._on_item_output, item),
            on_settle=partial(self._on_item_settled, item),
            on_violation=self._escalate,
        )
        self._runner.invoke(self._transform, (payload,), completion)
        return True

    def end_of_input(self) -> None:
        """Record that no more input will be delivered.

        Raises:
            StageClosedError: If end of input was already signalled
        """
        self._coordinator.begin_draining()
        self._schedule_advance()

    def on_downstream_ready(self) -> None:
        """Resume forwarding after the substrate became ready again."""
        if self._failure is not None:
            return
        self._flush_backlog()
        if self._order_buffer is not None and not self._backlog:
            self._order_buffer.drain()
        self._schedule_advance()

    # -- Task settlement -------------------------------------------------

    def _on_item_output(self, item: Item, value: Any) -> None:
        if self._failure is not None:
            return
        item.outputs.append(value)
        if self._order_buffer is None:
            self._forward(value)

    def _on_item_settled(self, item: Item, error: BaseException | None, value: Any) -> None:
        item.completed_at = time.perf_counter()
        if error is not None:
            item.state = ItemState.FAILED
            self._escalate(TaskFailure(error, origin="transform", sequence=item.sequence))
            return

        item.state = ItemState.DONE
        if self._failure is not None:
            # Abandoned after the stage failed
            return

        if value is not MISSING:
            self._on_item_output(item, value)
        if self._order_buffer is not None:
            self._order_buffer.complete(item)
        else:
            self._release(item)
        self._schedule_advance()

    def _release(self, item: Item) -> None:
        if item.released:
            raise StageInvariantError(f"Item {item.sequence} released twice")
        item.released = True
        self._gate.release()
        self._events.item_released(self._config.name, item.sequence, len(item.outputs))

    def _forward(self, value: Any) -> None:
        if self._failure is not None:
            return
        if self._backlog or not self._substrate.is_ready():
            self._backlog.append(value)
        else:
            self._push(value)

    def _flush_backlog(self) -> None:
        while self._backlog and self._substrate.is_ready():
            self._push(self._backlog.popleft())

    def _push(self, value: Any) -> None:
        self._outputs_forwarded += 1
        self._substrate.emit(value)

    # -- Stage lifecycle advance -----------------------------------------

    def _schedule_advance(self) -> None:
        if self._advance_scheduled or self._failure is not None:
            return
        self._advance_scheduled = True
        self._scheduler.call_soon(self._advance)

    def _advance(self) -> None:
        self._advance_scheduled = False
        if self._failure is not None:
            return

        phase = self._coordinator.phase
        if phase is StagePhase.ACTIVE:
            if self._gate.has_capacity:
                self._substrate.request_redelivery()
        elif phase is StagePhase.DRAINING:
            self._coordinator.advance(self._is_drained())

    def _is_drained(self) -> bool:
        if self._gate.in_flight or self._backlog:
            return False
        return self._order_buffer is None or self._order_buffer.pending_count == 0

    # -- Finalization ----------------------------------------------------

    def _run_hook(self, origin: CompletionOrigin, hook: HookFn, on_success: Callable[[], None]) -> None:
        def settle(error: BaseException | None, value: Any) -> None:
            if error is not None:
                self._escalate(TaskFailure(error, origin=origin))
                return
            if self._failure is not None:
                return
            if value is not MISSING:
                self._push(value)
            on_success()

        completion = Completion(
            origin=origin,
            on_emit=self._on_hook_output,
            on_settle=settle,
            on_violation=self._escalate,
        )
        self._log.debug("hook_started", hook=origin)
        self._runner.invoke(hook, (), completion)

    def _on_hook_output(self, value: Any) -> None:
        if self._failure is None:
            self._push(value)

    def _on_phase_change(self, previous: StagePhase, current: StagePhase) -> None:
        self._events.phase_changed(self._config.name, previous, current)

    def _signal_complete(self) -> None:
        self._log.debug("stage_complete", outputs_forwarded=self._outputs_forwarded)
        self._substrate.complete()

    # -- Errors ----------------------------------------------------------

    def _escalate(self, error: StageError) -> None:
        if self._failure is not None:
            self._log.debug(
                "error_after_failure_ignored",
                error_type=type(error).__name__,
                error=str(error),
            )
            return
        if self._coordinator.is_complete:
            # Completion already signalled; the substrate sees one terminal signal
            self._log.error(
                "error_after_complete_dropped",
                error_type=type(error).__name__,
                error=str(error),
                origin=getattr(error, "origin", None),
                sequence=getattr(error, "sequence", None),
            )
            return
        self._failure = error
        self._backlog.clear()
        self._events.stage_failed(self._config.name, error)
        self._substrate.fail(error)

    def __repr__(self) -> str:
        return (
            f"<ConcurrentStage {self._config.name!r} phase={self._coordinator.phase} "
            f"in_flight={self._gate.in_flight}/{self._gate.capacity}>"
        )
