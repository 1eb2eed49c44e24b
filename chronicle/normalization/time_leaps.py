"""
Time Leap Capping

Two consecutive large time jumps are usually an extraction artefact
(the model re-counting a scene break), so the second one is clamped.

The cap is applied once, when a delta is appended, and written into the
stored event. The fold never recomputes it. The uncapped value is kept
as `raw_delta` so the next comparison sees what was actually proposed.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Iterable, Optional

from ..contracts.events import StateEvent, TimeDeltaEvent, TimeInitialEvent
from ..contracts.narrative import TimeDelta


DEFAULT_LEAP_THRESHOLD_MINUTES = 20


def previous_raw_seconds(timeline: Iterable[StateEvent]) -> int:
    """
    Uncapped size of the last time step on an ordered timeline.

    A TimeInitialEvent resets the comparison to zero.
    """
    last = 0
    for event in timeline:
        if isinstance(event, TimeInitialEvent):
            last = 0
        elif isinstance(event, TimeDeltaEvent):
            last = event.uncapped.total_seconds
    return last


def cap_time_leap(
    candidate: TimeDeltaEvent,
    previous_seconds: int,
    threshold_minutes: Optional[int],
) -> TimeDeltaEvent:
    """Clamp the candidate if it and the previous step both exceed the threshold."""
    if threshold_minutes is None:
        return candidate
    threshold = threshold_minutes * 60
    seconds = candidate.delta.total_seconds
    if seconds > threshold and previous_seconds > threshold:
        return replace(candidate, delta=TimeDelta.from_seconds(threshold), raw_delta=candidate.delta)
    return candidate
