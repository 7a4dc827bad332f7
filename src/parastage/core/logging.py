# src/parastage/core/logging.py
"""Structured logging for parastage.

Stage internals log through get_logger(); applications opt into rendering
with configure_logging(), which sends structlog events and plain stdlib
records through one ProcessorFormatter so both render identically.

While a transform or hook runs, task_context() binds the stage name,
completion origin and item sequence into structlog's contextvars. Anything
the user code logs (structlog or stdlib) is therefore tagged with the item
it was processing, without the transform having to thread that through.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Loggers that stay at WARNING even when parastage runs at DEBUG
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio",)


@contextmanager
def task_context(stage: str | None, origin: str, sequence: int | None = None) -> Iterator[None]:
    """Bind stage/origin/sequence for logs emitted while user code runs.

    Previous bindings are restored on exit, so nested stages and hooks
    invoked from inside a transform see their own context.
    """
    context: dict[str, Any] = {"origin": origin}
    if stage is not None:
        context["stage"] = stage
    if sequence is not None:
        context["sequence"] = sequence
    with structlog.contextvars.bound_contextvars(**context):
        yield


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: IO[str] | None = None,
) -> None:
    """Route structlog and stdlib logging through one renderer.

    Args:
        json_output: Render JSON lines instead of console text
        level: Root log level name (DEBUG, INFO, WARNING, ERROR)
        stream: Destination (defaults to sys.stdout at call time)
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
        pre_render: list[Any] = [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
        pre_render = []

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, *pre_render, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str, **initial_values: Any) -> Any:
    """Get a structlog logger, optionally pre-bound with context.

    Args:
        name: Logger name (typically __name__)
        **initial_values: Key-value pairs attached to every event
    """
    return structlog.get_logger(name, **initial_values)
