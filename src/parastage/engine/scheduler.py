# src/parastage/engine/scheduler.py
"""Scheduler abstraction for deterministic cooperative execution.

A stage never touches the event loop directly. It defers its lifecycle
work through a Scheduler, which makes every ordering guarantee testable
without patching global scheduler primitives.

Production code uses AsyncioScheduler (the default).
Tests inject ManualScheduler to run deferred work step by step.
"""

from __future__ import annotations

import asyncio
import contextvars
from collections import deque
from collections.abc import Callable, Coroutine
from functools import partial
from typing import Any, Protocol


class Scheduler(Protocol):
    """Abstract single-threaded scheduler.

    Implementations:
    - AsyncioScheduler: Runs on the running asyncio event loop (production)
    - ManualScheduler: Queues work until the test runs it (testing)
    """

    def call_soon(self, callback: Callable[[], None]) -> None:
        """Run callback on a later turn of the scheduler, in FIFO order."""
        ...

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        """Drive a coroutine to completion on this scheduler."""
        ...


class AsyncioScheduler:
    """Production scheduler backed by an asyncio event loop.

    The loop is resolved lazily, so the scheduler can be created outside
    a running loop and used once one is running.

    Spawned tasks are kept in a set until done; asyncio only holds weak
    references to tasks.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._get_loop().call_soon(callback)

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        task = self._get_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def active_tasks(self) -> int:
        """Number of spawned coroutines that have not finished."""
        return len(self._tasks)


class ManualScheduler:
    """Controllable scheduler for deterministic testing.

    Deferred callbacks queue up until the test runs them. Coroutines are
    stepped one send() per turn; they may only suspend on bare yields such
    as ``await asyncio.sleep(0)``.

    Example:
        scheduler = ManualScheduler()
        stage = ConcurrentStage(transform, substrate, scheduler=scheduler)

        substrate.write("a")
        completion.done("A")      # settles synchronously
        scheduler.run_pending()   # lifecycle advance runs here
    """

    def __init__(self, max_steps: int = 100_000) -> None:
        """Initialize an empty queue.

        Args:
            max_steps: Upper bound on callbacks run by one run_pending()
                call, to turn runaway rescheduling into an error.
        """
        self._queue: deque[Callable[[], None]] = deque()
        self._max_steps = max_steps

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._queue.append(callback)

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        # Each coroutine steps in its own context copy, as an asyncio Task does
        self._queue.append(partial(self._step, coroutine, contextvars.copy_context()))

    def _step(self, coroutine: Coroutine[Any, Any, None], context: contextvars.Context) -> None:
        try:
            yielded = context.run(coroutine.send, None)
        except StopIteration:
            return
        if yielded is not None:
            coroutine.close()
            raise TypeError(
                f"ManualScheduler cannot wait on {yielded!r}; only bare yields (e.g. asyncio.sleep(0)) are supported"
            )
        self._queue.append(partial(self._step, coroutine, context))

    @property
    def pending(self) -> int:
        """Number of queued callbacks."""
        return len(self._queue)

    def run_once(self) -> bool:
        """Run the oldest queued callback.

        Returns:
            True if a callback ran, False if the queue was empty
        """
        if not self._queue:
            return False
        callback = self._queue.popleft()
        callback()
        return True

    def run_pending(self) -> int:
        """Run callbacks until the queue is empty, including newly queued ones.

        Returns:
            Number of callbacks run

        Raises:
            RuntimeError: If more than max_steps callbacks run
        """
        steps = 0
        while self.run_once():
            steps += 1
            if steps > self._max_steps:
                raise RuntimeError(f"ManualScheduler exceeded {self._max_steps} steps; work keeps rescheduling itself")
        return steps
