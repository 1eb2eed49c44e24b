"""
Deduplication Filter
====================

Pre-append gate: drops candidate events whose effect already holds in
the live projection.

RULES (per subkind):
- prop_added / mood_added / physical_state_added / *_added attitudes:
  dropped if the value is already held
- the complementary *_removed subkinds: dropped if the value is absent
- position_changed / activity_changed: dropped if equal to the current value
- outfit_changed: dropped if equal to the current slot value (an unset
  slot counts as None); otherwise previous_value is rewritten to the
  slot's actual current value
- status_changed: dropped if equal to the pair's current status; kept
  when the pair does not exist yet (it creates the pair)
- directional events with an underivable pair: dropped
- time, location moved, appeared, departed: never deduplicated

The fold's own set semantics are idempotent too; this filter exists to
keep the persisted log clean.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Iterable, List, Optional
import logging

from ..contracts.events import (
    CharacterEvent,
    CharacterSubkind,
    DirectionalRelationshipEvent,
    LocationPropEvent,
    LocationSubkind,
    StateEvent,
    StatusChangedEvent,
)
from ..contracts.pairs import pair_key
from ..contracts.projection import ProjectedState
from ..temporal.projection import apply_state_event


logger = logging.getLogger(__name__)


def _dedupe_prop(event: LocationPropEvent, projection: ProjectedState) -> Optional[StateEvent]:
    props = projection.location.props if projection.location else ()
    held = event.prop in props
    if event.subkind is LocationSubkind.PROP_ADDED:
        return None if held else event
    return event if held else None


def _dedupe_character(event: CharacterEvent, projection: ProjectedState) -> Optional[StateEvent]:
    char = projection.character(event.character)

    match event.subkind:
        case CharacterSubkind.MOOD_ADDED:
            if char is not None and event.mood in char.mood:
                return None
        case CharacterSubkind.MOOD_REMOVED:
            if char is None or event.mood not in char.mood:
                return None
        case CharacterSubkind.PHYSICAL_STATE_ADDED:
            if char is not None and event.physical_state in char.physical_state:
                return None
        case CharacterSubkind.PHYSICAL_STATE_REMOVED:
            if char is None or event.physical_state not in char.physical_state:
                return None
        case CharacterSubkind.POSITION_CHANGED:
            if char is not None and event.new_value == char.position:
                return None
        case CharacterSubkind.ACTIVITY_CHANGED:
            if char is not None and event.new_value == char.activity:
                return None
        case CharacterSubkind.OUTFIT_CHANGED:
            if event.slot:
                current = char.outfit.get(event.slot) if char is not None else None
                if event.new_value == current:
                    return None
                if event.previous_value != current:
                    return replace(event, previous_value=current)
        case CharacterSubkind.APPEARED | CharacterSubkind.DEPARTED:
            pass
    return event


def _dedupe_directional(
    event: DirectionalRelationshipEvent, projection: ProjectedState
) -> Optional[StateEvent]:
    pair = event.pair
    if pair is None:
        return None
    relationship = projection.relationships.get(pair_key(*pair))
    held = (
        relationship is not None
        and event.value in relationship.attitude_from(event.from_character).values(event.subkind.aspect)
    )
    if event.subkind.is_addition:
        return None if held else event
    return event if held else None


def _dedupe_status(event: StatusChangedEvent, projection: ProjectedState) -> Optional[StateEvent]:
    relationship = projection.relationships.get(pair_key(*event.pair))
    if relationship is not None and relationship.status is event.new_status:
        return None
    return event


def dedupe_event(event: StateEvent, projection: ProjectedState) -> Optional[StateEvent]:
    """
    Check one candidate against a projection.

    Returns the candidate (possibly with a corrected previous_value) if it
    would change state, or None if it is a no-op.
    """
    match event:
        case LocationPropEvent():
            return _dedupe_prop(event, projection)
        case CharacterEvent():
            return _dedupe_character(event, projection)
        case DirectionalRelationshipEvent():
            return _dedupe_directional(event, projection)
        case StatusChangedEvent():
            return _dedupe_status(event, projection)
        case _:
            return event


def dedupe(projection: ProjectedState, candidates: Iterable[StateEvent]) -> List[StateEvent]:
    """
    Filter a batch of candidates against the current projection.

    Each accepted candidate is folded into a working copy of the
    projection before the next one is checked, so duplicates inside one
    batch are dropped as well. `projection` itself is not modified.
    """
    working = projection
    accepted: List[StateEvent] = []
    for candidate in candidates:
        result = dedupe_event(candidate, working)
        if result is None:
            logger.debug(
                "Dropped no-op %s/%s at message %d",
                type(candidate).__name__, candidate.subkind_name, candidate.message_id,
            )
            continue
        accepted.append(result)
        working = apply_state_event(working, result)
    return accepted
