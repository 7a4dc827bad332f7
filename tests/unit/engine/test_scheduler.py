# tests/unit/engine/test_scheduler.py
"""Tests for the scheduler implementations."""

import asyncio
import contextvars

import pytest

from parastage.engine.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    def test_call_soon_defers_until_run(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []

        scheduler.call_soon(lambda: ran.append("a"))

        assert ran == []
        assert scheduler.pending == 1
        assert scheduler.run_pending() == 1
        assert ran == ["a"]

    def test_runs_in_fifo_order_including_newly_queued(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []

        def first() -> None:
            ran.append("first")
            scheduler.call_soon(lambda: ran.append("third"))

        scheduler.call_soon(first)
        scheduler.call_soon(lambda: ran.append("second"))
        scheduler.run_pending()

        assert ran == ["first", "second", "third"]

    def test_run_once_runs_a_single_callback(self) -> None:
        scheduler = ManualScheduler()
        ran: list[int] = []
        scheduler.call_soon(lambda: ran.append(1))
        scheduler.call_soon(lambda: ran.append(2))

        assert scheduler.run_once() is True
        assert ran == [1]
        assert scheduler.run_once() is True
        assert scheduler.run_once() is False

    def test_drives_coroutines_with_bare_yields(self) -> None:
        scheduler = ManualScheduler()
        steps: list[int] = []

        async def work() -> None:
            steps.append(1)
            await asyncio.sleep(0)
            steps.append(2)

        scheduler.spawn(work())
        assert steps == []

        scheduler.run_once()
        assert steps == [1]

        scheduler.run_pending()
        assert steps == [1, 2]

    def test_coroutines_keep_their_own_context(self) -> None:
        scheduler = ManualScheduler()
        current: contextvars.ContextVar[str] = contextvars.ContextVar("current", default="unset")
        seen: list[tuple[str, str]] = []

        async def work(name: str) -> None:
            current.set(name)
            await asyncio.sleep(0)
            seen.append((name, current.get()))

        scheduler.spawn(work("a"))
        scheduler.spawn(work("b"))
        scheduler.run_pending()

        assert seen == [("a", "a"), ("b", "b")]
        assert current.get() == "unset"

    def test_rejects_coroutines_waiting_on_futures(self) -> None:
        scheduler = ManualScheduler()
        loop = asyncio.new_event_loop()
        try:
            future = loop.create_future()

            async def work() -> None:
                await future

            scheduler.spawn(work())
            with pytest.raises(TypeError, match="only bare yields"):
                scheduler.run_pending()
        finally:
            loop.close()

    def test_runaway_rescheduling_is_an_error(self) -> None:
        scheduler = ManualScheduler(max_steps=10)

        def again() -> None:
            scheduler.call_soon(again)

        scheduler.call_soon(again)
        with pytest.raises(RuntimeError, match="exceeded 10 steps"):
            scheduler.run_pending()


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_call_soon_runs_on_next_loop_turn(self) -> None:
        scheduler = AsyncioScheduler()
        ran: list[str] = []

        scheduler.call_soon(lambda: ran.append("x"))
        assert ran == []

        await asyncio.sleep(0)
        assert ran == ["x"]

    @pytest.mark.asyncio
    async def test_spawn_keeps_task_until_done(self) -> None:
        scheduler = AsyncioScheduler()
        done = asyncio.Event()

        async def work() -> None:
            await done.wait()

        scheduler.spawn(work())
        await asyncio.sleep(0)
        assert scheduler.active_tasks == 1

        done.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert scheduler.active_tasks == 0

    def test_can_be_created_outside_a_running_loop(self) -> None:
        scheduler = AsyncioScheduler()

        assert scheduler.active_tasks == 0
