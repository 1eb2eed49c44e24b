"""
Normalization Layer

RESPONSIBILITY: Gate candidate state events before they reach the log
ALLOWED INPUTS: Candidate events (or two projections to diff) plus the
projection they would apply to
OUTPUTS: The candidates that change state, with corrected payloads

WHAT THIS LAYER MUST NOT DO:
============================
- Append or persist events
- Reorder candidates
- Rewrite events already in the log
"""

from .dedup import dedupe, dedupe_event
from .diff import events_from_diff, time_delta_between
from .time_leaps import DEFAULT_LEAP_THRESHOLD_MINUTES, cap_time_leap, previous_raw_seconds

__all__ = [
    'dedupe',
    'dedupe_event',
    'events_from_diff',
    'time_delta_between',
    'DEFAULT_LEAP_THRESHOLD_MINUTES',
    'cap_time_leap',
    'previous_raw_seconds',
]
