# src/parastage/engine/reorder_buffer.py
"""Order buffer that releases completed items in admission order.

Items may complete out of order (transforms have varying latencies), but
their outputs are forwarded in exactly the order the items were admitted.
An item also keeps its admission slot until it is released here, so a slow
head item blocks admission of new work (head-of-line blocking).

Release is additionally gated on downstream readiness: while the
substrate reports it is not ready, nothing is forwarded and no slot is
freed. Completed items stay buffered and draining resumes from the same
cursor once readiness is restored.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from parastage.contracts.errors import StageInvariantError
from parastage.contracts.items import Item
from parastage.core.logging import get_logger

logger = get_logger(__name__)


class OrderBuffer:
    """Holds DONE items until every smaller sequence has been released.

    Invariants:
    - Only items with sequence >= cursor are held
    - Items are released in strictly increasing sequence order

    Usage:
        buffer = OrderBuffer(
            forward=substrate.emit,
            release=gate_release,
            is_ready=substrate.is_ready,
        )

        item.state = ItemState.DONE
        buffer.complete(item)   # stores, then drains whatever is releasable

        # After downstream signals readiness again
        buffer.drain()
    """

    def __init__(
        self,
        *,
        forward: Callable[[Any], None],
        release: Callable[[Item], None],
        is_ready: Callable[[], bool],
        name: str = "order-buffer",
    ) -> None:
        """Initialize empty buffer.

        Args:
            forward: Called once per output, in order
            release: Called once per item after its outputs are forwarded
            is_ready: Downstream readiness check, called before each item
            name: Name for logging and metrics
        """
        self._forward = forward
        self._release = release
        self._is_ready = is_ready
        self._name = name

        self._waiting: dict[int, Item] = {}
        self._cursor = 0
        self._stalled = False
        self._draining = False

        # Metrics
        self._total_released = 0
        self._total_stalls = 0
        self._max_observed_waiting = 0
        self._total_wait_time_ms = 0.0

    @property
    def cursor(self) -> int:
        """Smallest sequence not yet released."""
        return self._cursor

    @property
    def pending_count(self) -> int:
        """Completed items waiting for release."""
        return len(self._waiting)

    @property
    def stalled(self) -> bool:
        """Whether the last drain stopped because downstream was not ready."""
        return self._stalled

    def complete(self, item: Item) -> int:
        """Store a DONE item and release everything now releasable.

        Args:
            item: Item whose terminal call succeeded

        Returns:
            Number of items released by the drain

        Raises:
            StageInvariantError: If the item is not DONE, was already
                released, or its sequence is already held
        """
        if not item.is_done:
            raise StageInvariantError(f"Item {item.sequence} stored in order buffer in state {item.state}")
        if item.sequence < self._cursor:
            raise StageInvariantError(f"Item {item.sequence} is behind the release cursor {self._cursor}")
        if item.sequence in self._waiting:
            raise StageInvariantError(f"Item {item.sequence} stored in order buffer twice")

        self._waiting[item.sequence] = item
        if len(self._waiting) > self._max_observed_waiting:
            self._max_observed_waiting = len(self._waiting)

        return self.drain()

    def drain(self) -> int:
        """Release items from the cursor onward while possible.

        Stops at the first missing sequence (head-of-line block) or when
        downstream reports it is not ready (stall).

        Returns:
            Number of items released
        """
        # Forwarding can re-enter the stage; the outer drain keeps going.
        if self._draining:
            return 0

        self._draining = True
        released = 0
        try:
            while self._cursor in self._waiting:
                if not self._is_ready():
                    if not self._stalled:
                        self._total_stalls += 1
                        logger.debug(
                            "order_buffer_stalled",
                            buffer=self._name,
                            cursor=self._cursor,
                            waiting=len(self._waiting),
                        )
                    self._stalled = True
                    break

                self._stalled = False
                item = self._waiting.pop(self._cursor)
                if item.completed_at is not None:
                    self._total_wait_time_ms += (time.perf_counter() - item.completed_at) * 1000

                for output in item.outputs:
                    self._forward(output)
                self._release(item)

                self._cursor += 1
                self._total_released += 1
                released += 1
        finally:
            self._draining = False

        return released

    def get_metrics(self) -> dict[str, Any]:
        """Get metrics snapshot for observability."""
        return {
            "name": self._name,
            "cursor": self._cursor,
            "current_waiting": len(self._waiting),
            "max_observed_waiting": self._max_observed_waiting,
            "total_released": self._total_released,
            "total_stalls": self._total_stalls,
            "stalled": self._stalled,
            "avg_buffer_wait_ms": (self._total_wait_time_ms / self._total_released if self._total_released > 0 else 0.0),
        }
