# tests/integration/test_scenarios.py
"""End-to-end stage scenarios through the in-memory substrate.

Each scenario drives a full ConcurrentStage (gate, order buffer,
coordinator) through InlineSubstrate with a ManualScheduler, so every
deferred step is explicit.
"""

from __future__ import annotations

import asyncio
from typing import Any

from parastage.contracts.enums import StagePhase
from parastage.core.config import StageHooks
from parastage.engine.completion import Completion
from tests.conftest import DeferredTransform, build_stage


class TestConcurrencyScenarios:
    def test_capacity_four_starts_four_of_ten(self) -> None:
        """Ten writes, nothing completed: exactly four transforms running."""
        transform = DeferredTransform()
        harness = build_stage(transform, max_concurrency=4)

        harness.write_all(list(range(10)))
        harness.scheduler.run_pending()

        assert transform.started == 4
        assert transform.payloads == [0, 1, 2, 3]

    def test_unordered_completion_of_two_starts_two_more(self) -> None:
        """Completing positions 0 and 2 out of four frees two slots."""
        transform = DeferredTransform()
        harness = build_stage(transform, max_concurrency=4)
        harness.write_all(list(range(10)))

        transform.completion(0).done()
        transform.completion(2).done()
        harness.scheduler.run_pending()

        assert transform.started == 6
        assert transform.payloads == [0, 1, 2, 3, 4, 5]

    def test_ordered_completion_with_paused_downstream_starts_nothing(self) -> None:
        """Completing 2 then 0 while downstream is not ready frees no slot.

        With a ready downstream, completing the head releases item 0 at once
        and a fifth transform starts; see the test below. That is intended.
        """
        transform = DeferredTransform()
        harness = build_stage(transform, max_concurrency=4, preserve_order=True)
        harness.substrate.pause()
        harness.write_all(list(range(10)))

        transform.completion(2).done()
        transform.completion(0).done()
        harness.scheduler.run_pending()

        assert transform.started == 4
        assert harness.stage.in_flight == 4

    def test_ordered_completion_with_ready_downstream_admits_fifth(self) -> None:
        """Head completion drains at once when downstream is ready."""
        transform = DeferredTransform()
        harness = build_stage(transform, max_concurrency=4, preserve_order=True)
        harness.write_all(list(range(10)))

        transform.completion(2).done("two")
        transform.completion(0).done("zero")
        harness.scheduler.run_pending()

        assert harness.substrate.outputs == ["zero"]
        assert transform.started == 5
        assert harness.stage.in_flight == 4

    def test_ordered_completion_resumes_when_downstream_ready(self) -> None:
        transform = DeferredTransform()
        harness = build_stage(transform, max_concurrency=4, preserve_order=True)
        harness.substrate.pause()
        harness.write_all(list(range(10)))
        transform.completion(2).done("two")
        transform.completion(0).done("zero")
        harness.scheduler.run_pending()

        harness.substrate.resume()
        harness.scheduler.run_pending()

        assert harness.substrate.outputs == ["zero"]
        assert transform.started == 5


class TestShutdownScenario:
    def test_item_finalize_and_flush_outputs_arrive_in_order(self) -> None:
        """Capacity 1, two items, finalize then flush, then completion."""

        def transform(payload: Any, completion: Completion) -> None:
            completion.emit({"original": payload})
            completion.done()

        def finalize(completion: Completion) -> None:
            completion.emit({"finished": True})
            completion.done()

        def flush(completion: Completion) -> None:
            completion.emit({"flushed": True})
            completion.done()

        harness = build_stage(transform, max_concurrency=1, hooks=StageHooks(finalize=finalize, flush=flush))
        completed_with: list[list[Any]] = []
        harness.substrate.on_complete(lambda: completed_with.append(list(harness.substrate.outputs)))

        harness.write_all(["a", "b"])
        harness.substrate.end()
        harness.scheduler.run_pending()

        expected = [
            {"original": "a"},
            {"original": "b"},
            {"finished": True},
            {"flushed": True},
        ]
        assert harness.substrate.outputs == expected
        assert completed_with == [expected]
        assert harness.stage.phase is StagePhase.COMPLETE

    def test_async_transforms_with_hooks(self) -> None:
        async def transform(payload: int, completion: Completion) -> int:
            for _ in range(payload):
                await asyncio.sleep(0)
            return payload * 10

        async def finalize(completion: Completion) -> None:
            completion.emit("finalized")

        harness = build_stage(
            transform,
            max_concurrency=3,
            preserve_order=True,
            hooks=StageHooks(finalize=finalize),
        )
        harness.write_all([3, 1, 2, 0, 4])
        harness.substrate.end()
        harness.scheduler.run_pending()

        assert harness.substrate.outputs == [30, 10, 20, 0, 40, "finalized"]
        assert harness.substrate.completed
        assert harness.stage.get_metrics()["max_observed_in_flight"] == 3
