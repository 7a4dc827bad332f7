"""Sentinel for "no output value".

A completion's terminal call may carry a single output. ``None`` is a valid
output, so absence is represented by MISSING:

    completion.done()          # no output
    completion.done(None)      # forwards None downstream
"""

from typing import Final


class MissingSentinel:
    """Sentinel class marking an absent output value.

    This is a singleton - use the MISSING instance, not the class directly.
    Comparison should always use `is` identity, never equality.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "<MISSING>"


MISSING: Final[MissingSentinel] = MissingSentinel()
