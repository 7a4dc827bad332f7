# src/parastage/substrate/inline.py
"""Synchronous in-memory substrate.

Useful for testing and for driving a stage from plain code: input is
queued in a FIFO and offered to the stage whenever it asks, outputs are
collected into a list, and readiness is controlled explicitly with
pause()/resume().
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from parastage.contracts.errors import StageClosedError
from parastage.substrate.ports import StageInput


class InlineSubstrate:
    """In-memory substrate with an explicit readiness switch.

    Usage:
        substrate = InlineSubstrate()
        stage = ConcurrentStage(transform, substrate, scheduler=scheduler)

        for record in records:
            substrate.write(record)
        substrate.end()

        scheduler.run_pending()
        assert substrate.completed
        print(substrate.outputs)
    """

    def __init__(self) -> None:
        self._stage: StageInput | None = None
        self._queue: deque[tuple[Any, Mapping[str, Any] | None]] = deque()
        self._ended = False
        self._end_sent = False
        self._pumping = False
        self._paused = False

        self.outputs: list[Any] = []
        self.completed = False
        self.error: BaseException | None = None
        self._complete_listeners: list[Callable[[], None]] = []
        self._error_listeners: list[Callable[[BaseException], None]] = []

    @property
    def stage(self) -> StageInput:
        if self._stage is None:
            raise RuntimeError("No stage attached to this substrate")
        return self._stage

    @property
    def queued(self) -> int:
        """Written items not yet accepted by the stage."""
        return len(self._queue)

    @property
    def paused(self) -> bool:
        return self._paused

    # -- Producer side ---------------------------------------------------

    def write(self, payload: Any, metadata: Mapping[str, Any] | None = None) -> None:
        """Queue one input item and offer queued input to the stage.

        Raises:
            StageClosedError: If end() was already called
        """
        if self._ended:
            raise StageClosedError("write() after end()")
        self._queue.append((payload, metadata))
        self._pump()

    def end(self) -> None:
        """Mark the input finished; the stage sees end of input once the queue is empty.

        Raises:
            StageClosedError: If end() was already called
        """
        if self._ended:
            raise StageClosedError("end() called twice")
        self._ended = True
        self._pump()

    # -- Consumer side ---------------------------------------------------

    def pause(self) -> None:
        """Report not-ready to the stage until resume()."""
        self._paused = True

    def resume(self) -> None:
        """Report ready again and notify the stage."""
        if not self._paused:
            return
        self._paused = False
        self.stage.on_downstream_ready()

    def on_complete(self, listener: Callable[[], None]) -> None:
        self._complete_listeners.append(listener)

    def on_error(self, listener: Callable[[BaseException], None]) -> None:
        self._error_listeners.append(listener)

    # -- Substrate protocol ----------------------------------------------

    def attach(self, stage: StageInput) -> None:
        if self._stage is not None:
            raise RuntimeError("A stage is already attached to this substrate")
        self._stage = stage

    def is_ready(self) -> bool:
        return not self._paused

    def emit(self, value: Any) -> None:
        self.outputs.append(value)

    def request_redelivery(self) -> None:
        self._pump()

    def complete(self) -> None:
        if self.completed:
            raise RuntimeError("complete() called twice")
        self.completed = True
        for listener in self._complete_listeners:
            listener()

    def fail(self, error: BaseException) -> None:
        if self.error is not None:
            raise RuntimeError("fail() called twice") from error
        self.error = error
        for listener in self._error_listeners:
            listener(error)

    def _pump(self) -> None:
        if self._pumping or self._stage is None:
            return

        self._pumping = True
        try:
            while self._queue:
                payload, metadata = self._queue[0]
                if not self._stage.deliver(payload, metadata):
                    break
                self._queue.popleft()
        finally:
            self._pumping = False

        if self._ended and not self._queue and not self._end_sent:
            self._end_sent = True
            self._stage.end_of_input()
