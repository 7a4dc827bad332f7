# src/parastage/plugins/manager.py
"""Lifecycle event publishing through a pluggy PluginManager.

StageEvents is the only path through which a stage publishes events.
It owns a PluginManager with the lifecycle hookspecs, the built-in
LoggingObserver, and any observer plugins supplied by the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy

from parastage.contracts.enums import StagePhase
from parastage.contracts.errors import StageError
from parastage.plugins.hookspecs import PROJECT_NAME, ParastageLifecycleSpec
from parastage.plugins.observers import LoggingObserver


class PluginRegistrationError(Exception):
    """An observer plugin could not be registered."""


class StageEvents:
    """Publishes lifecycle events to registered observer plugins.

    Usage:
        events = create_stage_events(plugins=[MyObserver()])
        stage = ConcurrentStage(transform, substrate, events=events)
    """

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._pm = plugin_manager

    @property
    def plugin_manager(self) -> pluggy.PluginManager:
        return self._pm

    def phase_changed(self, stage_name: str, previous: StagePhase, current: StagePhase) -> None:
        self._pm.hook.parastage_phase_changed(stage_name=stage_name, previous=previous, current=current)

    def item_released(self, stage_name: str, sequence: int, output_count: int) -> None:
        self._pm.hook.parastage_item_released(stage_name=stage_name, sequence=sequence, output_count=output_count)

    def stage_failed(self, stage_name: str, error: StageError) -> None:
        self._pm.hook.parastage_stage_failed(stage_name=stage_name, error=error)


def create_stage_events(plugins: Iterable[Any] = (), *, include_logging: bool = True) -> StageEvents:
    """Create a StageEvents with the built-in and supplied observers.

    Args:
        plugins: Additional observer objects implementing parastage hooks
        include_logging: Register the built-in LoggingObserver

    Returns:
        StageEvents ready to hand to a ConcurrentStage

    Raises:
        PluginRegistrationError: If a plugin implements an unknown hook,
            uses a wrong signature, or is registered twice
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(ParastageLifecycleSpec)

    plugins_to_register: list[Any] = [LoggingObserver()] if include_logging else []
    plugins_to_register.extend(plugins)
    for plugin in plugins_to_register:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            # PluginValidationError: hook spec mismatch (unknown hook, bad arguments)
            # ValueError: duplicate plugin object or plugin name already registered
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise PluginRegistrationError(f"Invalid stage observer plugin {type(plugin).__name__}: {e}") from e

    return StageEvents(plugin_manager)
