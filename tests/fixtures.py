"""
Test Fixtures

Explicit factories for candidate events and projections.
All fixtures are deterministic - no wall-clock time, no random ids.
"""

from itertools import count
from typing import Iterable, Optional, Tuple

from chronicle.contracts.events import (
    CharacterEvent,
    CharacterSubkind,
    DirectionalRelationshipEvent,
    LocationMovedEvent,
    LocationPropEvent,
    LocationSubkind,
    RelationshipSubkind,
    StatusChangedEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
)
from chronicle.contracts.narrative import AffectedPair, NarrativeDateTime, NarrativeEvent, TimeDelta
from chronicle.contracts.projection import (
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedRelationship,
    ProjectedState,
    RelationshipAttitude,
    RelationshipStatus,
)
from chronicle.engine import NarrativeStore, StoreConfig
from chronicle.temporal.clock import SequenceClock
from chronicle.temporal.event_log import EventLog


# =============================================================================
# FIXED TIMES
# =============================================================================

FRIDAY_EVENING = NarrativeDateTime(2024, 3, 15, 23, 30)


def sequential_ids(prefix: str = "evt"):
    counter = count(1)
    return lambda: f"{prefix}_{next(counter):04d}"


def make_log() -> EventLog:
    return EventLog(clock=SequenceClock(), id_factory=sequential_ids())


def make_store(backend=None, **config) -> NarrativeStore:
    return NarrativeStore(StoreConfig(**config), clock=SequenceClock(), backend=backend)


# =============================================================================
# STATE EVENT FACTORIES
# =============================================================================

def time_initial(value: NarrativeDateTime = FRIDAY_EVENING, message_id: int = 0, swipe_id: int = 0):
    return TimeInitialEvent(message_id=message_id, swipe_id=swipe_id, initial_time=value)


def time_delta(hours: int = 0, minutes: int = 0, days: int = 0, message_id: int = 0, swipe_id: int = 0):
    return TimeDeltaEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        delta=TimeDelta(days=days, hours=hours, minutes=minutes),
    )


def moved(area: str, place: str, position: str, props: Optional[Tuple[str, ...]] = None,
          message_id: int = 0, swipe_id: int = 0):
    return LocationMovedEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        new_area=area,
        new_place=place,
        new_position=position,
        new_props=props,
    )


def prop(name: str, removed: bool = False, message_id: int = 0, swipe_id: int = 0):
    return LocationPropEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        subkind=LocationSubkind.PROP_REMOVED if removed else LocationSubkind.PROP_ADDED,
        prop=name,
    )


def appeared(name: str, position: Optional[str] = None, activity: Optional[str] = None,
             message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        subkind=CharacterSubkind.APPEARED,
        character=name,
        initial_position=position,
        initial_activity=activity,
    )


def departed(name: str, message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id, swipe_id=swipe_id,
        subkind=CharacterSubkind.DEPARTED, character=name,
    )


def mood(name: str, value: str, removed: bool = False, message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        subkind=CharacterSubkind.MOOD_REMOVED if removed else CharacterSubkind.MOOD_ADDED,
        character=name,
        mood=value,
    )


def position(name: str, value: Optional[str], message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id, swipe_id=swipe_id,
        subkind=CharacterSubkind.POSITION_CHANGED, character=name, new_value=value,
    )


def activity(name: str, value: Optional[str], message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id, swipe_id=swipe_id,
        subkind=CharacterSubkind.ACTIVITY_CHANGED, character=name, new_value=value,
    )


def outfit(name: str, slot: str, value: Optional[str], previous: Optional[str] = None,
           message_id: int = 0, swipe_id: int = 0):
    return CharacterEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        subkind=CharacterSubkind.OUTFIT_CHANGED,
        character=name,
        slot=slot,
        new_value=value,
        previous_value=previous,
    )


def feeling(source: str, target: str, value: str, removed: bool = False,
            message_id: int = 0, swipe_id: int = 0):
    return DirectionalRelationshipEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        subkind=RelationshipSubkind.FEELING_REMOVED if removed else RelationshipSubkind.FEELING_ADDED,
        from_character=source,
        toward_character=target,
        value=value,
    )


def secret(source: str, target: str, value: str, message_id: int = 0, swipe_id: int = 0):
    return DirectionalRelationshipEvent(
        message_id=message_id, swipe_id=swipe_id,
        subkind=RelationshipSubkind.SECRET_ADDED,
        from_character=source, toward_character=target, value=value,
    )


def status(first: str, second: str, value: RelationshipStatus, message_id: int = 0, swipe_id: int = 0):
    return StatusChangedEvent(
        message_id=message_id, swipe_id=swipe_id,
        pair=(first, second), new_status=value,
    )


# =============================================================================
# NARRATIVE EVENT FACTORIES
# =============================================================================

def beat(event_types: Iterable[str] = (), pairs: Iterable[Tuple[str, str]] = (("Alice", "Bob"),),
         message_id: int = 0, swipe_id: int = 0, summary: str = "", first_for: Tuple[str, ...] = (),
         descriptions: Tuple[Tuple[str, str], ...] = ()):
    return NarrativeEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        summary=summary,
        event_types=tuple(event_types),
        affected_pairs=tuple(
            AffectedPair(pair=p, first_for=first_for, milestone_descriptions=descriptions)
            for p in pairs
        ),
    )


# =============================================================================
# PROJECTIONS
# =============================================================================

def tavern_projection() -> ProjectedState:
    """Alice and Bob in a tavern, already acquainted."""
    return ProjectedState(
        time=FRIDAY_EVENING,
        location=ProjectedLocation(
            area="Harbor District", place="The Salty Gull", position="by the hearth", props=(),
        ),
        characters={
            "Alice": ProjectedCharacter(
                name="Alice", position="at the bar", mood=("curious",),
                outfit={"torso": "linen shirt", "feet": None},
            ),
            "Bob": ProjectedCharacter(name="Bob", position="near the door"),
        },
        relationships={
            "alice|bob": ProjectedRelationship(
                pair=("Alice", "Bob"),
                status=RelationshipStatus.ACQUAINTANCES,
                a_to_b=RelationshipAttitude(feelings=("wary",)),
            ),
        },
    )
