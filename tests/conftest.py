# tests/conftest.py
"""Shared test fixtures and helpers.

Test Helpers:
- DeferredTransform: records every transform call; tests settle the
  completions explicitly, in whatever order the scenario needs
- RecordingObserver: pluggy observer capturing lifecycle events
- build_stage: ConcurrentStage + InlineSubstrate + ManualScheduler

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from parastage.contracts.enums import StagePhase
from parastage.contracts.errors import StageError
from parastage.core.config import StageConfig, StageHooks
from parastage.engine.completion import Completion
from parastage.engine.scheduler import ManualScheduler
from parastage.engine.stage import ConcurrentStage
from parastage.plugins.hookspecs import hookimpl
from parastage.plugins.manager import create_stage_events
from parastage.substrate.inline import InlineSubstrate

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Shared Test Helpers
# =============================================================================


class DeferredTransform:
    """Transform that never settles on its own.

    Every call is recorded so the test can emit/done/fail each completion
    later, in any order.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, Completion]] = []

    def __call__(self, payload: Any, completion: Completion) -> None:
        self.calls.append((payload, completion))

    @property
    def started(self) -> int:
        return len(self.calls)

    @property
    def payloads(self) -> list[Any]:
        return [payload for payload, _ in self.calls]

    def completion(self, index: int) -> Completion:
        return self.calls[index][1]


class RecordingObserver:
    """Observer plugin capturing every lifecycle event."""

    def __init__(self) -> None:
        self.phases: list[tuple[StagePhase, StagePhase]] = []
        self.released: list[tuple[int, int]] = []
        self.failures: list[StageError] = []

    @hookimpl
    def parastage_phase_changed(self, stage_name: str, previous: StagePhase, current: StagePhase) -> None:
        self.phases.append((previous, current))

    @hookimpl
    def parastage_item_released(self, stage_name: str, sequence: int, output_count: int) -> None:
        self.released.append((sequence, output_count))

    @hookimpl
    def parastage_stage_failed(self, stage_name: str, error: StageError) -> None:
        self.failures.append(error)

    @property
    def visited(self) -> list[StagePhase]:
        return [current for _, current in self.phases]


@dataclass
class StageHarness:
    """A stage wired to an in-memory substrate and a manual scheduler."""

    stage: ConcurrentStage
    substrate: InlineSubstrate
    scheduler: ManualScheduler
    observer: RecordingObserver = field(default_factory=RecordingObserver)

    def write_all(self, payloads: list[Any]) -> None:
        for payload in payloads:
            self.substrate.write(payload)


def build_stage(
    transform: Any,
    *,
    max_concurrency: int = 4,
    preserve_order: bool = False,
    hooks: StageHooks | None = None,
) -> StageHarness:
    """Create a stage driven by a ManualScheduler and an InlineSubstrate."""
    substrate = InlineSubstrate()
    scheduler = ManualScheduler()
    observer = RecordingObserver()
    stage = ConcurrentStage(
        transform,
        substrate,
        StageConfig(max_concurrency=max_concurrency, preserve_order=preserve_order, name="test-stage"),
        hooks,
        scheduler=scheduler,
        events=create_stage_events([observer]),
    )
    return StageHarness(stage=stage, substrate=substrate, scheduler=scheduler, observer=observer)


@pytest.fixture
def deferred() -> DeferredTransform:
    return DeferredTransform()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
