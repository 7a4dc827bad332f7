# src/parastage/engine/completion.py
"""Completion handles and the task runner that invokes user code.

Every transform call and every hook call gets its own Completion. The
Completion encodes the single-resolution contract structurally: the first
terminal call (done/fail) wins, and anything after it is a
ProtocolViolation that is escalated to the stage and raised to the caller.

TaskRunner is the only place where user code is called. It turns raised
exceptions into failed completions and drives awaitables returned by
coroutine transforms, so callback-style and async-style transforms share
one settlement path.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, NoReturn

from parastage.contracts.errors import (
    CompletionOrigin,
    ProtocolViolation,
    StageError,
    TaskFailure,
)
from parastage.contracts.sentinels import MISSING
from parastage.core.logging import task_context
from parastage.engine.scheduler import Scheduler

EmitCallback = Callable[[Any], None]
SettleCallback = Callable[[BaseException | None, Any], None]
ViolationCallback = Callable[[ProtocolViolation], None]


class Completion:
    """Single-resolution completion interface handed to transforms and hooks.

    Usage (callback style):
        def transform(payload, completion):
            completion.emit(payload.header)     # zero or more
            completion.done(payload.body)       # exactly one terminal call

    Callback-style callers may also invoke the completion directly:
        completion(None, value)    # success with an output
        completion(error)          # failure
    """

    __slots__ = (
        "_metadata",
        "_on_emit",
        "_on_settle",
        "_on_violation",
        "_origin",
        "_sequence",
        "_settled",
    )

    def __init__(
        self,
        *,
        origin: CompletionOrigin,
        on_emit: EmitCallback,
        on_settle: SettleCallback,
        on_violation: ViolationCallback,
        sequence: int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self._origin: CompletionOrigin = origin
        self._on_emit = on_emit
        self._on_settle = on_settle
        self._on_violation = on_violation
        self._sequence = sequence
        self._metadata = metadata
        self._settled = False

    @property
    def origin(self) -> CompletionOrigin:
        """What this completion belongs to: transform, finalize or flush."""
        return self._origin

    @property
    def sequence(self) -> int | None:
        """Sequence number of the item (None for hooks)."""
        return self._sequence

    @property
    def metadata(self) -> Mapping[str, Any] | None:
        """Substrate-provided metadata for the item (None for hooks)."""
        return self._metadata

    @property
    def settled(self) -> bool:
        """Whether the terminal call has happened."""
        return self._settled

    def emit(self, value: Any) -> None:
        """Produce an output before the terminal call.

        Raises:
            ProtocolViolation: If called after done()/fail()
        """
        if self._settled:
            self._violate("emit() called after the terminal call")
        self._on_emit(value)

    def done(self, value: Any = MISSING) -> None:
        """Signal success, optionally with one final output.

        Raises:
            ProtocolViolation: If a terminal call already happened
        """
        self._settle(None, value)

    def fail(self, error: BaseException) -> None:
        """Signal failure.

        Raises:
            ProtocolViolation: If a terminal call already happened
            TypeError: If error is not an exception instance
        """
        if not isinstance(error, BaseException):
            raise TypeError(f"fail() requires an exception instance, got {type(error).__name__}")
        self._settle(error, MISSING)

    def __call__(self, error: BaseException | str | None = None, value: Any = MISSING) -> None:
        if error is None:
            self.done(value)
        elif isinstance(error, BaseException):
            self.fail(error)
        else:
            self.fail(RuntimeError(error))

    def _settle(self, error: BaseException | None, value: Any) -> None:
        if self._settled:
            self._violate("terminal call made more than once")
        self._settled = True
        self._on_settle(error, value)

    def _violate(self, what: str) -> NoReturn:
        violation = ProtocolViolation(f"{self._describe()}: {what}", origin=self._origin, sequence=self._sequence)
        self._on_violation(violation)
        raise violation

    def _describe(self) -> str:
        if self._sequence is not None:
            return f"{self._origin} for item {self._sequence}"
        return f"{self._origin} hook"

    def __repr__(self) -> str:
        state = "settled" if self._settled else "pending"
        return f"<Completion {self._describe()} {state}>"


class TaskRunner:
    """Invokes user callables exactly once and normalizes their outcome.

    - Raised exceptions fail the completion (or, if it already settled,
      are escalated as TaskFailure).
    - Awaitable results are driven on the scheduler; the awaited value
      becomes the terminal output unless the coroutine settled the
      completion itself. A None result means "no output".
    - ProtocolViolations propagating out of user code were already
      escalated by the completion that raised them.

    User code runs inside task_context(), so its log events carry the
    stage name, origin and item sequence.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        escalate: Callable[[StageError], None],
        *,
        stage_name: str | None = None,
    ) -> None:
        """Initialize runner.

        Args:
            scheduler: Scheduler that drives awaitable results
            escalate: Stage error sink for failures that can no longer
                be routed through the completion
            stage_name: Stage name bound into user code's log context
        """
        self._scheduler = scheduler
        self._escalate = escalate
        self._stage_name = stage_name

    def invoke(self, fn: Callable[..., Any], args: tuple[Any, ...], completion: Completion) -> None:
        """Call fn(*args, completion) once.

        Args:
            fn: Transform or hook
            args: Positional arguments before the completion
            completion: Completion handed to fn as its last argument
        """
        try:
            with task_context(self._stage_name, completion.origin, completion.sequence):
                result = fn(*args, completion)
        except ProtocolViolation:
            return
        except Exception as exc:
            self._settle_error(completion, exc)
            return

        if inspect.isawaitable(result):
            self._scheduler.spawn(self._await_result(result, completion))

    async def _await_result(self, awaitable: Awaitable[Any], completion: Completion) -> None:
        try:
            with task_context(self._stage_name, completion.origin, completion.sequence):
                value = await awaitable
        except ProtocolViolation:
            return
        except Exception as exc:
            self._settle_error(completion, exc)
            return

        if completion.settled:
            if value is not None:
                self._escalate(
                    ProtocolViolation(
                        f"{completion!r} returned {value!r} after its terminal call",
                        origin=completion.origin,
                        sequence=completion.sequence,
                    )
                )
            return
        completion.done(MISSING if value is None else value)

    def _settle_error(self, completion: Completion, exc: Exception) -> None:
        if completion.settled:
            self._escalate(TaskFailure(exc, origin=completion.origin, sequence=completion.sequence))
        else:
            completion.fail(exc)
