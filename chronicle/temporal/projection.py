"""
Projection Engine
=================

Pure fold: initial projection + ordered events -> ProjectedState.

INVARIANTS:
- Same inputs -> value-equal output (deterministic)
- The starting state is never mutated; each step builds new containers
  for whatever it touches and shares the rest
- Deleted events and events off the canonical swipe timeline are never
  folded (see temporal.swipes)
- Unrecognised events are a no-op, never an abort
"""

from __future__ import annotations
from dataclasses import replace
from datetime import timedelta
from typing import Dict, Iterable, Optional, Tuple
import logging

from ..contracts.events import (
    CharacterEvent,
    CharacterSubkind,
    DirectionalRelationshipEvent,
    LocationMovedEvent,
    LocationPropEvent,
    LocationSubkind,
    StateEvent,
    StatusChangedEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
    UnknownStateEvent,
)
from ..contracts.narrative import NarrativeDateTime, TimeDelta
from ..contracts.pairs import Pair, is_first_of_pair, pair_key, sort_pair
from ..contracts.projection import (
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedRelationship,
    ProjectedState,
)
from .event_log import fold_order
from .swipes import Chat, select_timeline


logger = logging.getLogger(__name__)

# Starting point for a delta applied before any time was established.
BASE_TIME = NarrativeDateTime(year=2024, month=1, day=1)


# =============================================================================
# ORDERED-SET HELPERS
# =============================================================================

def _with(values: Tuple[str, ...], value: Optional[str]) -> Tuple[str, ...]:
    if not value or value in values:
        return values
    return values + (value,)


def _without(values: Tuple[str, ...], value: Optional[str]) -> Tuple[str, ...]:
    if not value or value not in values:
        return values
    return tuple(v for v in values if v != value)


# =============================================================================
# TIME
# =============================================================================

def apply_time_delta(time: NarrativeDateTime, delta: TimeDelta) -> NarrativeDateTime:
    """Add a delta with full calendar carry (minute through year, leap days)."""
    shifted = time.to_datetime() + timedelta(
        days=delta.days,
        hours=delta.hours,
        minutes=delta.minutes,
        seconds=delta.seconds,
    )
    return NarrativeDateTime.from_datetime(shifted)


# =============================================================================
# PER-KIND STEPS
# =============================================================================

def _apply_location_prop(state: ProjectedState, event: LocationPropEvent) -> ProjectedState:
    location = state.location or ProjectedLocation.unknown()
    if event.subkind is LocationSubkind.PROP_ADDED:
        props = _with(location.props, event.prop)
    else:
        props = _without(location.props, event.prop)
    return replace(state, location=replace(location, props=props))


def _apply_character(state: ProjectedState, event: CharacterEvent) -> ProjectedState:
    name = event.character
    characters: Dict[str, ProjectedCharacter] = dict(state.characters)
    char = characters.get(name) or ProjectedCharacter(name=name)

    match event.subkind:
        case CharacterSubkind.APPEARED:
            if event.initial_position is not None:
                char = replace(char, position=event.initial_position)
            if event.initial_activity is not None:
                char = replace(char, activity=event.initial_activity)
        case CharacterSubkind.DEPARTED:
            characters.pop(name, None)
            return replace(state, characters=characters)
        case CharacterSubkind.POSITION_CHANGED:
            if event.new_value is not None:
                char = replace(char, position=event.new_value)
        case CharacterSubkind.ACTIVITY_CHANGED:
            char = replace(char, activity=event.new_value)
        case CharacterSubkind.MOOD_ADDED:
            char = replace(char, mood=_with(char.mood, event.mood))
        case CharacterSubkind.MOOD_REMOVED:
            char = replace(char, mood=_without(char.mood, event.mood))
        case CharacterSubkind.PHYSICAL_STATE_ADDED:
            char = replace(char, physical_state=_with(char.physical_state, event.physical_state))
        case CharacterSubkind.PHYSICAL_STATE_REMOVED:
            char = replace(char, physical_state=_without(char.physical_state, event.physical_state))
        case CharacterSubkind.OUTFIT_CHANGED:
            if event.slot:
                char = replace(char, outfit={**char.outfit, event.slot: event.new_value})

    characters[name] = char
    return replace(state, characters=characters)


def _with_relationship(
    state: ProjectedState, pair: Pair
) -> Tuple[Dict[str, ProjectedRelationship], ProjectedRelationship]:
    relationships = dict(state.relationships)
    key = pair_key(*pair)
    rel = relationships.get(key) or ProjectedRelationship(pair=sort_pair(*pair))
    return relationships, rel


def _apply_directional(
    state: ProjectedState, event: DirectionalRelationshipEvent
) -> ProjectedState:
    pair = event.pair
    if pair is None:
        return state
    relationships, rel = _with_relationship(state, pair)

    aspect = event.subkind.aspect
    forward = is_first_of_pair(event.from_character, rel.pair)
    attitude = rel.a_to_b if forward else rel.b_to_a
    current = attitude.values(aspect)
    if event.subkind.is_addition:
        updated = _with(current, event.value)
    else:
        updated = _without(current, event.value)
    attitude = replace(attitude, **{aspect: updated})
    rel = replace(rel, a_to_b=attitude) if forward else replace(rel, b_to_a=attitude)

    relationships[rel.key] = rel
    return replace(state, relationships=relationships)


def _apply_status(state: ProjectedState, event: StatusChangedEvent) -> ProjectedState:
    relationships, rel = _with_relationship(state, event.pair)
    relationships[rel.key] = replace(rel, status=event.new_status)
    return replace(state, relationships=relationships)


# =============================================================================
# FOLD
# =============================================================================

def apply_state_event(state: ProjectedState, event: StateEvent) -> ProjectedState:
    """
    One fold step. Returns a new state; `state` is left untouched.
    """
    match event:
        case TimeInitialEvent():
            return replace(state, time=event.initial_time)
        case TimeDeltaEvent():
            return replace(state, time=apply_time_delta(state.time or BASE_TIME, event.delta))
        case LocationMovedEvent():
            props = event.new_props
            if props is None:
                props = state.location.props if state.location else ()
            return replace(state, location=ProjectedLocation(
                area=event.new_area,
                place=event.new_place,
                position=event.new_position,
                props=tuple(props),
            ))
        case LocationPropEvent():
            return _apply_location_prop(state, event)
        case CharacterEvent():
            return _apply_character(state, event)
        case DirectionalRelationshipEvent():
            return _apply_directional(state, event)
        case StatusChangedEvent():
            return _apply_status(state, event)
        case UnknownStateEvent():
            logger.debug(
                "Ignoring unrecognised event %s (%s/%s)",
                event.id, event.raw_kind, event.raw_subkind,
            )
            return state
        case _:
            raise TypeError(f"Not a state event: {type(event).__name__}")


def fold(start: ProjectedState, events: Iterable[StateEvent]) -> ProjectedState:
    """Fold already-selected, already-ordered events over a starting state."""
    state = start
    for event in events:
        state = apply_state_event(state, event)
    return state


def empty_projection() -> ProjectedState:
    return ProjectedState()


def project(
    initial: Optional[ProjectedState],
    events: Iterable[StateEvent],
    target_message_id: int,
    target_swipe_id: int,
    chat: Optional[Chat] = None,
) -> ProjectedState:
    """
    Full replay from the initial projection to (message, swipe).

    Args:
        initial: Starting snapshot; None starts from an empty state
        events: The whole state-event log (filtering happens here)
        target_message_id: Last message to include
        target_swipe_id: Swipe to use for the target message itself
        chat: Host chat used to resolve canonical swipes of earlier messages
    """
    selected = fold_order(select_timeline(events, target_message_id, target_swipe_id, chat))
    return fold(initial or empty_projection(), selected)

