"""
State Event Contracts
=====================

Structured mutations of narrative state.

Every state event shares one envelope:
    id, message_id, swipe_id, timestamp, deleted

and is keyed by `kind` (a class constant) plus, for most kinds, a
`subkind` enum. The fold in temporal.projection dispatches on the
concrete class and subkind with one exhaustive match.

INVARIANTS:
- Events are immutable. Corrective edits and soft deletes replace the
  stored event with a new value.
- id == "" and timestamp == 0 mark a candidate that has not been appended.
- `deleted` events are excluded from every fold, snapshot and
  milestone computation, but are never physically removed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from .narrative import NarrativeDateTime, TimeDelta
from .pairs import Pair, derive_pair, sort_pair
from .projection import RelationshipStatus


# =============================================================================
# SUBKINDS
# =============================================================================

class LocationSubkind(Enum):
    MOVED = "moved"
    PROP_ADDED = "prop_added"
    PROP_REMOVED = "prop_removed"


class CharacterSubkind(Enum):
    APPEARED = "appeared"
    DEPARTED = "departed"
    POSITION_CHANGED = "position_changed"
    ACTIVITY_CHANGED = "activity_changed"
    MOOD_ADDED = "mood_added"
    MOOD_REMOVED = "mood_removed"
    PHYSICAL_STATE_ADDED = "physical_state_added"
    PHYSICAL_STATE_REMOVED = "physical_state_removed"
    OUTFIT_CHANGED = "outfit_changed"


class RelationshipSubkind(Enum):
    FEELING_ADDED = "feeling_added"
    FEELING_REMOVED = "feeling_removed"
    SECRET_ADDED = "secret_added"
    SECRET_REMOVED = "secret_removed"
    WANT_ADDED = "want_added"
    WANT_REMOVED = "want_removed"
    STATUS_CHANGED = "status_changed"

    @property
    def aspect(self) -> Optional[str]:
        """Attitude field a directional subkind touches (feelings/secrets/wants)."""
        if self is RelationshipSubkind.STATUS_CHANGED:
            return None
        return self.value.split("_")[0] + "s"

    @property
    def is_addition(self) -> bool:
        return self.value.endswith("_added")


# =============================================================================
# EVENT ENVELOPE
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class BaseStateEvent:
    """Envelope shared by every state event."""
    kind: ClassVar[str] = ""

    id: str = ""
    message_id: int
    swipe_id: int = 0
    timestamp: int = 0
    deleted: bool = False

    @property
    def subkind_name(self) -> Optional[str]:
        subkind = getattr(self, "subkind", None)
        return subkind.value if isinstance(subkind, Enum) else subkind


# =============================================================================
# TIME
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class TimeInitialEvent(BaseStateEvent):
    """Establishes the absolute narrative time."""
    kind: ClassVar[str] = "time_initial"

    initial_time: NarrativeDateTime


@dataclass(frozen=True, kw_only=True)
class TimeDeltaEvent(BaseStateEvent):
    """
    Advances narrative time.

    raw_delta holds the uncapped value when leap capping clamped `delta`
    at append time; the fold only ever reads `delta`.
    """
    kind: ClassVar[str] = "time"

    delta: TimeDelta
    raw_delta: Optional[TimeDelta] = None

    @property
    def uncapped(self) -> TimeDelta:
        return self.raw_delta if self.raw_delta is not None else self.delta


# =============================================================================
# LOCATION
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class LocationMovedEvent(BaseStateEvent):
    """Scene moved. Props carry forward unless new_props is supplied."""
    kind: ClassVar[str] = "location"
    subkind: LocationSubkind = field(default=LocationSubkind.MOVED, init=False)

    new_area: str
    new_place: str
    new_position: str
    previous_area: Optional[str] = None
    previous_place: Optional[str] = None
    previous_position: Optional[str] = None
    new_props: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True, kw_only=True)
class LocationPropEvent(BaseStateEvent):
    kind: ClassVar[str] = "location"

    subkind: LocationSubkind
    prop: str

    def __post_init__(self):
        if self.subkind is LocationSubkind.MOVED:
            raise ValueError("LocationPropEvent cannot carry the 'moved' subkind")


# =============================================================================
# CHARACTER
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class CharacterEvent(BaseStateEvent):
    """
    A change to one character.

    Payload fields by subkind:
        appeared                      initial_position, initial_activity
        position/activity_changed     new_value, previous_value
        mood_added/removed            mood
        physical_state_added/removed  physical_state
        outfit_changed                slot, new_value (None = explicitly empty),
                                      previous_value
    """
    kind: ClassVar[str] = "character"

    subkind: CharacterSubkind
    character: str
    initial_position: Optional[str] = None
    initial_activity: Optional[str] = None
    new_value: Optional[str] = None
    previous_value: Optional[str] = None
    mood: Optional[str] = None
    physical_state: Optional[str] = None
    slot: Optional[str] = None


# =============================================================================
# RELATIONSHIP
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class DirectionalRelationshipEvent(BaseStateEvent):
    """A feeling, secret or want held by from_character toward toward_character."""
    kind: ClassVar[str] = "relationship"

    subkind: RelationshipSubkind
    from_character: str
    toward_character: str
    value: str

    def __post_init__(self):
        if self.subkind is RelationshipSubkind.STATUS_CHANGED:
            raise ValueError("Use StatusChangedEvent for status changes")

    @property
    def pair(self) -> Optional[Pair]:
        return derive_pair(self.from_character, self.toward_character)


@dataclass(frozen=True, kw_only=True)
class StatusChangedEvent(BaseStateEvent):
    kind: ClassVar[str] = "relationship"
    subkind: RelationshipSubkind = field(
        default=RelationshipSubkind.STATUS_CHANGED, init=False
    )

    pair: Pair
    new_status: RelationshipStatus
    previous_status: Optional[RelationshipStatus] = None

    def __post_init__(self):
        object.__setattr__(self, 'pair', sort_pair(*self.pair))


# =============================================================================
# UNKNOWN
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class UnknownStateEvent(BaseStateEvent):
    """
    An event whose kind/subkind this version does not recognise.

    Preserved verbatim so it round-trips through storage; the fold
    treats it as a no-op.
    """
    raw_kind: str
    raw_subkind: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def subkind_name(self) -> Optional[str]:
        return self.raw_subkind


StateEvent = Union[
    TimeInitialEvent,
    TimeDeltaEvent,
    LocationMovedEvent,
    LocationPropEvent,
    CharacterEvent,
    DirectionalRelationshipEvent,
    StatusChangedEvent,
    UnknownStateEvent,
]

RelationshipEvent = Union[DirectionalRelationshipEvent, StatusChangedEvent]


def event_kind(event: StateEvent) -> str:
    if isinstance(event, UnknownStateEvent):
        return event.raw_kind
    return event.kind
