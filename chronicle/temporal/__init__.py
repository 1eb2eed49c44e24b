"""
Temporal Layer
==============

Event-sourced state for one narrative.

INVARIANTS:
- All state is derived from the initial projection plus the live log
- No stored event is mutated; edits and deletes replace values
- Same log -> same derived state (deterministic)
- Snapshots are a cache; using one never changes a result

Modules:
- clock: Creation-timestamp sources
- event_log: Append-only state and narrative event storage
- swipes: Canonical swipe resolution
- projection: Pure fold
- snapshots: Chapter snapshot cache and invalidation
- replay: Point-in-time replay and verification
- initial: Initial projection validation
"""

from .clock import SequenceClock, wall_clock_ms
from .event_log import EventLog, fold_order
from .swipes import (
    ChatMessage,
    canonical_swipe,
    chat_from_swipes,
    coerce_chat,
    parse_chat,
    select_timeline,
)
from .projection import apply_state_event, empty_projection, fold, project
from .snapshots import ChapterSnapshot, SnapshotCache, project_optimized, timeline_swipes
from .replay import ReplayEngine
from .initial import InitialProjectionHolder, validate_initial_projection

__all__ = [
    'SequenceClock',
    'wall_clock_ms',
    'EventLog',
    'fold_order',
    'ChatMessage',
    'canonical_swipe',
    'chat_from_swipes',
    'coerce_chat',
    'parse_chat',
    'select_timeline',
    'apply_state_event',
    'empty_projection',
    'fold',
    'project',
    'ChapterSnapshot',
    'SnapshotCache',
    'project_optimized',
    'timeline_swipes',
    'ReplayEngine',
    'InitialProjectionHolder',
    'validate_initial_projection',
]
