# src/parastage/substrate/ports.py
"""Port abstractions between a stage and its pipeline substrate.

The substrate owns generic channel mechanics: input queueing, output
buffering, readiness propagation and end/finish notifications. The stage
only sees the narrow interface below. This enables:
- Swapping substrates (in-memory, asyncio queues, a framework's streams)
- Backpressure without the stage buffering input itself
- Deterministic tests that drive the stage directly
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StageInput(Protocol):
    """What a substrate drives on the stage."""

    def deliver(self, payload: Any, metadata: Mapping[str, Any] | None = None) -> bool:
        """Offer one input item.

        Returns:
            True if accepted; False means the substrate keeps the item
            queued and offers it again after request_redelivery()
        """
        ...

    def end_of_input(self) -> None:
        """Signal that no more items will be delivered."""
        ...

    def on_downstream_ready(self) -> None:
        """Signal that is_ready() turned True after having been False."""
        ...


@runtime_checkable
class Substrate(Protocol):
    """What the stage consumes from its pipeline substrate.

    Contract:
    - Refused deliveries stay queued and are redelivered in FIFO order
      after request_redelivery()
    - emit() always accepts; is_ready() is advisory backpressure
    - complete() and fail() are each called at most once
    """

    def attach(self, stage: StageInput) -> None:
        """Bind the stage this substrate drives."""
        ...

    def is_ready(self) -> bool:
        """Whether downstream currently wants more output."""
        ...

    def emit(self, value: Any) -> None:
        """Forward one output downstream."""
        ...

    def request_redelivery(self) -> None:
        """Ask for queued input to be offered again."""
        ...

    def complete(self) -> None:
        """Completion signal: all outputs, including hook outputs, are forwarded."""
        ...

    def fail(self, error: BaseException) -> None:
        """Error escalation: the stage failed and will produce nothing more."""
        ...
