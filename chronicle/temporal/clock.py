"""
Creation Clocks
===============

Injectable sources of event creation timestamps (epoch milliseconds).

Creation timestamps break ties inside one message in the fold order,
so tests and migrations that must reproduce a log byte for byte inject
SequenceClock instead of wall time.

GUARANTEES:
- Same tick sequence = same timestamps = same fold order
- SequenceClock never repeats a value
"""

import time


def wall_clock_ms() -> int:
    """Wall-clock creation timestamp in epoch milliseconds."""
    return int(time.time() * 1000)


class SequenceClock:
    """
    Deterministic clock yielding strictly increasing millisecond values.
    """

    def __init__(self, start: int = 0, step: int = 1):
        self._value = start
        self._step = step

    def __call__(self) -> int:
        self._value += self._step
        return self._value

    @property
    def last(self) -> int:
        return self._value
