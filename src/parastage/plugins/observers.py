# src/parastage/plugins/observers.py
"""Built-in lifecycle observers."""

from __future__ import annotations

from parastage.contracts.enums import StagePhase
from parastage.contracts.errors import StageError
from parastage.core.logging import get_logger
from parastage.plugins.hookspecs import hookimpl

logger = get_logger(__name__)


class LoggingObserver:
    """Logs stage lifecycle events through structlog.

    Registered by default on every StageEvents. Phase changes log at info,
    releases at debug, failures at error.
    """

    @hookimpl
    def parastage_phase_changed(self, stage_name: str, previous: StagePhase, current: StagePhase) -> None:
        logger.info(
            "stage_phase_changed",
            stage=stage_name,
            previous=str(previous),
            current=str(current),
        )

    @hookimpl
    def parastage_item_released(self, stage_name: str, sequence: int, output_count: int) -> None:
        logger.debug(
            "stage_item_released",
            stage=stage_name,
            sequence=sequence,
            output_count=output_count,
        )

    @hookimpl
    def parastage_stage_failed(self, stage_name: str, error: StageError) -> None:
        logger.error(
            "stage_failed",
            stage=stage_name,
            error_type=type(error).__name__,
            error=str(error),
            origin=getattr(error, "origin", None),
            sequence=getattr(error, "sequence", None),
        )
