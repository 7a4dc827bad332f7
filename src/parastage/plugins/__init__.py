# src/parastage/plugins/__init__.py
"""Lifecycle observer plugins (pluggy)."""

from parastage.plugins.hookspecs import PROJECT_NAME, ParastageLifecycleSpec, hookimpl, hookspec
from parastage.plugins.manager import PluginRegistrationError, StageEvents, create_stage_events
from parastage.plugins.observers import LoggingObserver

__all__ = [
    "PROJECT_NAME",
    "LoggingObserver",
    "ParastageLifecycleSpec",
    "PluginRegistrationError",
    "StageEvents",
    "create_stage_events",
    "hookimpl",
    "hookspec",
]
