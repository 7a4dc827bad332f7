# src/parastage/substrate/__init__.py
"""Substrate ports and reference substrates."""

from parastage.substrate.inline import InlineSubstrate
from parastage.substrate.ports import StageInput, Substrate
from parastage.substrate.queues import AsyncQueueSubstrate, stream_through

__all__ = [
    "AsyncQueueSubstrate",
    "InlineSubstrate",
    "StageInput",
    "Substrate",
    "stream_through",
]
