# src/parastage/core/__init__.py
"""Core infrastructure: configuration and logging."""

from parastage.core.config import (
    DEFAULT_MAX_CONCURRENCY,
    StageConfig,
    StageHooks,
    load_stage_config,
)
from parastage.core.logging import configure_logging, get_logger, task_context

__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "StageConfig",
    "StageHooks",
    "configure_logging",
    "get_logger",
    "load_stage_config",
    "task_context",
]
