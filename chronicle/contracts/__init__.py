"""
Contracts Module

Immutable data types shared by every layer of the store: state events,
narrative events, projected state and error values. No layer may reach
into another layer's implementation; they exchange these types only.

DESIGN PRINCIPLES:
==================
1. All contract types are frozen dataclasses
2. Non-fatal anomalies are Error values, not exceptions
3. Relationship identity always goes through pair_key
4. Creation timestamps are epoch milliseconds and never mutated
"""

from .base import (
    Clock,
    Error,
    ErrorCode,
    InvalidProjectionError,
    generate_event_id,
)
from .events import (
    BaseStateEvent,
    CharacterEvent,
    CharacterSubkind,
    DirectionalRelationshipEvent,
    LocationMovedEvent,
    LocationPropEvent,
    LocationSubkind,
    RelationshipEvent,
    RelationshipSubkind,
    StateEvent,
    StatusChangedEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
    UnknownStateEvent,
    event_kind,
)
from .narrative import (
    AffectedPair,
    EVENT_TYPES,
    EVENT_TYPE_TO_MILESTONE,
    MILESTONE_TYPES,
    NarrativeDateTime,
    NarrativeEvent,
    TensionLevel,
    TensionType,
    TimeDelta,
)
from .pairs import Pair, derive_pair, pair_key, sort_pair
from .projection import (
    OUTFIT_SLOTS,
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedRelationship,
    ProjectedState,
    RelationshipAttitude,
    RelationshipStatus,
)

__all__ = [
    'Clock', 'Error', 'ErrorCode', 'InvalidProjectionError',
    'generate_event_id',
    'BaseStateEvent', 'CharacterEvent', 'CharacterSubkind',
    'DirectionalRelationshipEvent', 'LocationMovedEvent', 'LocationPropEvent',
    'LocationSubkind', 'RelationshipEvent', 'RelationshipSubkind', 'StateEvent',
    'StatusChangedEvent', 'TimeDeltaEvent', 'TimeInitialEvent',
    'UnknownStateEvent', 'event_kind',
    'AffectedPair', 'EVENT_TYPES', 'EVENT_TYPE_TO_MILESTONE', 'MILESTONE_TYPES',
    'NarrativeDateTime', 'NarrativeEvent', 'TensionLevel', 'TensionType',
    'TimeDelta',
    'Pair', 'derive_pair', 'pair_key', 'sort_pair',
    'OUTFIT_SLOTS', 'ProjectedCharacter', 'ProjectedLocation',
    'ProjectedRelationship', 'ProjectedState', 'RelationshipAttitude',
    'RelationshipStatus',
]
