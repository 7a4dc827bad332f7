"""Callable shapes accepted by a stage."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from parastage.engine.completion import Completion

# transform(payload, completion) -> None | Awaitable
TransformFn: TypeAlias = Callable[[Any, "Completion"], Any]

# hook(completion) -> None | Awaitable
HookFn: TypeAlias = Callable[["Completion"], Any]
