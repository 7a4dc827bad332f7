# src/parastage/contracts/items.py
"""Item record tracked by a stage from admission to release."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from parastage.contracts.enums import ItemState


@dataclass
class Item:
    """One unit of input admitted to a stage.

    Attributes:
        sequence: Admission order (0-indexed), defines write order
        payload: Value handed to the transform
        metadata: Optional substrate-provided metadata (e.g. encoding)
        state: Current lifecycle state
        outputs: Values produced for this item, in call order
        released: Whether the item's admission slot has been released
        admitted_at: time.perf_counter() at admission
        completed_at: time.perf_counter() at the terminal call
    """

    sequence: int
    payload: Any
    metadata: Mapping[str, Any] | None = None
    state: ItemState = ItemState.PENDING
    outputs: list[Any] = field(default_factory=list)
    released: bool = False
    admitted_at: float = 0.0
    completed_at: float | None = None

    @property
    def is_done(self) -> bool:
        return self.state is ItemState.DONE
