"""Exception hierarchy for stage execution.

Two error kinds cross the stage boundary to the substrate:

- TaskFailure: a transform or hook reported (or raised) an error
- ProtocolViolation: a transform or hook broke the completion contract

Both are fatal to the stage and are escalated exactly once. The remaining
exceptions are raised to the caller that misused the stage API.
"""

from typing import Literal

CompletionOrigin = Literal["transform", "finalize", "flush"]


class StageError(Exception):
    """Base class for all errors raised by parastage."""


class TaskFailure(StageError):
    """A transform, finalize hook or flush hook failed.

    The original exception is available as ``cause`` and is also chained
    as ``__cause__``.

    Attributes:
        cause: Exception reported by user code
        origin: Which kind of callable failed
        sequence: Item sequence number (None for hooks)
    """

    def __init__(
        self,
        cause: BaseException,
        *,
        origin: CompletionOrigin,
        sequence: int | None = None,
    ) -> None:
        self.cause = cause
        self.origin = origin
        self.sequence = sequence
        where = f"item {sequence}" if sequence is not None else f"{origin} hook"
        super().__init__(f"{origin} failed for {where}: {cause!r}")
        self.__cause__ = cause


class ProtocolViolation(StageError):
    """A completion was used after its terminal call.

    Raised for a second terminal call (done/fail) or an emit after the
    terminal call. This is a defect in the transform or hook, never a
    runtime condition to recover from.
    """

    def __init__(
        self,
        message: str,
        *,
        origin: CompletionOrigin,
        sequence: int | None = None,
    ) -> None:
        self.origin = origin
        self.sequence = sequence
        super().__init__(message)


class StageClosedError(StageError):
    """Input was offered to a stage that no longer accepts it."""


class StageInvariantError(StageError):
    """Internal bookkeeping invariant was violated.

    Indicates a bug in the stage or a substrate driving it incorrectly
    (e.g. releasing a slot twice).
    """
