# src/parastage/engine/admission.py
"""Admission gate bounding how many items are in flight.

The gate is a plain counter, not a semaphore: callers never wait on it.
A refused admission leaves the item queued in the substrate, which
redelivers it when the stage requests more input.

When a slot is released depends on the ordering mode:
- Unordered: as soon as the item's task settles
- Ordered: when the order buffer releases the item (head-of-line blocking)
"""

from __future__ import annotations

from typing import Any

from parastage.contracts.errors import StageInvariantError


class AdmissionGate:
    """Tracks in-flight items against a fixed capacity.

    Invariant: 0 <= in_flight <= capacity at every observable instant.

    Usage:
        gate = AdmissionGate(capacity=4)

        if gate.try_admit():
            start_task(item)
        else:
            leave_item_queued(item)

        # Later, when the item's slot is freed
        gate.release()
    """

    def __init__(self, capacity: int) -> None:
        """Initialize an empty gate.

        Args:
            capacity: Maximum concurrent items (must be >= 1)
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._in_flight = 0

        # Statistics
        self._max_observed = 0
        self._total_admitted = 0
        self._total_released = 0

    @property
    def capacity(self) -> int:
        """Maximum concurrent items."""
        return self._capacity

    @property
    def in_flight(self) -> int:
        """Items admitted and not yet released."""
        return self._in_flight

    @property
    def has_capacity(self) -> bool:
        """Whether try_admit() would currently succeed."""
        return self._in_flight < self._capacity

    def try_admit(self) -> bool:
        """Take a slot if one is free.

        Returns:
            True if the slot was taken, False if the gate is full
        """
        if self._in_flight >= self._capacity:
            return False
        self._in_flight += 1
        self._total_admitted += 1
        if self._in_flight > self._max_observed:
            self._max_observed = self._in_flight
        return True

    def release(self) -> None:
        """Give a slot back.

        Raises:
            StageInvariantError: If nothing is in flight
        """
        if self._in_flight == 0:
            raise StageInvariantError("release() called with no items in flight")
        self._in_flight -= 1
        self._total_released += 1

    def get_metrics(self) -> dict[str, Any]:
        """Get gate statistics."""
        return {
            "capacity": self._capacity,
            "in_flight": self._in_flight,
            "max_observed_in_flight": self._max_observed,
            "total_admitted": self._total_admitted,
            "total_released": self._total_released,
        }
