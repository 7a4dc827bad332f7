# src/parastage/substrate/queues.py
"""asyncio substrate: feed an (async) iterable in, iterate outputs out.

Backpressure runs both ways:
- feed() waits while the stage keeps refusing input and the inbox is at
  its high-water mark
- the stage sees is_ready() == False once the outbox reaches its
  high-water mark, and is notified when the consumer drains it
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Mapping
from typing import Any

from parastage.contracts.types import TransformFn
from parastage.core.config import DEFAULT_MAX_CONCURRENCY, StageConfig, StageHooks
from parastage.core.logging import get_logger
from parastage.engine.scheduler import AsyncioScheduler
from parastage.engine.stage import ConcurrentStage
from parastage.plugins.manager import create_stage_events
from parastage.substrate.ports import StageInput

logger = get_logger(__name__)


class AsyncQueueSubstrate:
    """Substrate bridging a stage to asyncio producers and consumers.

    Iterating the substrate yields outputs in forwarding order. Iteration
    ends after the completion signal, or raises the escalated error once
    every output forwarded before the failure has been yielded.

    Usage:
        substrate = AsyncQueueSubstrate(high_water_mark=8)
        ConcurrentStage(transform, substrate)

        feeder = asyncio.create_task(substrate.feed(source))
        async for value in substrate:
            handle(value)
        await feeder
    """

    def __init__(self, high_water_mark: int = DEFAULT_MAX_CONCURRENCY) -> None:
        """Initialize empty queues.

        Args:
            high_water_mark: Size at which the inbox blocks feed() and the
                outbox reports not-ready to the stage (must be >= 1)
        """
        if high_water_mark < 1:
            raise ValueError(f"high_water_mark must be >= 1, got {high_water_mark}")
        self._high_water_mark = high_water_mark
        self._stage: StageInput | None = None

        self._inbox: deque[tuple[Any, Mapping[str, Any] | None]] = deque()
        self._outbox: deque[Any] = deque()
        self._ended = False
        self._end_sent = False
        self._pumping = False
        self._backpressured = False

        self._completed = False
        self._error: BaseException | None = None

        self._room = asyncio.Event()
        self._room.set()
        self._output_ready = asyncio.Event()

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def closed(self) -> bool:
        """Whether no further output will arrive."""
        return self._completed or self._error is not None

    # -- Producer side ---------------------------------------------------

    async def put(self, payload: Any, metadata: Mapping[str, Any] | None = None) -> None:
        """Queue one input item, waiting while the inbox is full.

        Items put after the stage failed are dropped.
        """
        if self._ended:
            raise RuntimeError("put() after end()")
        if self.closed:
            return

        self._inbox.append((payload, metadata))
        self._pump()
        while len(self._inbox) >= self._high_water_mark and not self.closed:
            self._room.clear()
            await self._room.wait()

    def end(self) -> None:
        """Mark the input finished."""
        if self._ended:
            raise RuntimeError("end() called twice")
        self._ended = True
        self._pump()

    async def feed(self, source: Iterable[Any] | AsyncIterable[Any]) -> None:
        """Put every item from source, then end the input.

        A source that raises aborts the substrate: iteration re-raises the
        source's error.
        """
        try:
            if isinstance(source, AsyncIterable):
                async for payload in source:
                    if self.closed:
                        break
                    await self.put(payload)
            else:
                for payload in source:
                    if self.closed:
                        break
                    await self.put(payload)
        except Exception as exc:
            logger.error("substrate_source_failed", error_type=type(exc).__name__, error=str(exc))
            self._abort(exc)
            return
        self.end()

    # -- Consumer side ---------------------------------------------------

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iter_outputs()

    async def _iter_outputs(self) -> AsyncIterator[Any]:
        while True:
            if self._outbox:
                value = self._outbox.popleft()
                self._notify_if_ready()
                yield value
                continue
            if self._error is not None:
                raise self._error
            if self._completed:
                return
            self._output_ready.clear()
            await self._output_ready.wait()

    def _notify_if_ready(self) -> None:
        if self._backpressured and len(self._outbox) < self._high_water_mark and self._stage is not None:
            self._backpressured = False
            self._stage.on_downstream_ready()

    # -- Substrate protocol ----------------------------------------------

    def attach(self, stage: StageInput) -> None:
        if self._stage is not None:
            raise RuntimeError("A stage is already attached to this substrate")
        self._stage = stage

    def is_ready(self) -> bool:
        ready = len(self._outbox) < self._high_water_mark
        if not ready:
            self._backpressured = True
        return ready

    def emit(self, value: Any) -> None:
        self._outbox.append(value)
        self._output_ready.set()

    def request_redelivery(self) -> None:
        self._pump()

    def complete(self) -> None:
        self._completed = True
        self._output_ready.set()

    def fail(self, error: BaseException) -> None:
        self._abort(error)

    def _abort(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
        self._output_ready.set()
        self._room.set()

    def _pump(self) -> None:
        if self._pumping or self._stage is None:
            return

        self._pumping = True
        try:
            while self._inbox:
                payload, metadata = self._inbox[0]
                if not self._stage.deliver(payload, metadata):
                    break
                self._inbox.popleft()
        finally:
            self._pumping = False

        if len(self._inbox) < self._high_water_mark:
            self._room.set()
        if self._ended and not self._inbox and not self._end_sent:
            self._end_sent = True
            self._stage.end_of_input()


async def stream_through(
    source: Iterable[Any] | AsyncIterable[Any],
    transform: TransformFn,
    *,
    config: StageConfig | None = None,
    hooks: StageHooks | None = None,
    plugins: Iterable[Any] = (),
) -> AsyncIterator[Any]:
    """Run source through a ConcurrentStage and yield its outputs.

    Usage:
        async def enrich(record, completion):
            return await lookup(record)

        async for value in stream_through(records, enrich, config=StageConfig(max_concurrency=8)):
            print(value)

    Raises:
        TaskFailure: If a transform or hook failed
        ProtocolViolation: If a transform or hook misused its completion
    """
    config = config if config is not None else StageConfig()
    substrate = AsyncQueueSubstrate(high_water_mark=config.max_concurrency)
    ConcurrentStage(
        transform,
        substrate,
        config,
        hooks,
        scheduler=AsyncioScheduler(),
        events=create_stage_events(plugins),
    )

    feeder = asyncio.create_task(substrate.feed(source))
    try:
        async for value in substrate:
            yield value
        await feeder
    finally:
        if not feeder.done():
            feeder.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await feeder
