"""
State Diffing
=============

Turns two full projections into the fine-grained state events that
lead from one to the other. Used when an extractor reports a whole
scene instead of individual changes.

RULES:
- time: time_initial when there was no previous time or the clock moved
  backwards; otherwise one time delta with exact calendar arithmetic
- location: one moved event when area, place or position differ, then
  prop_added / prop_removed against the previous props
- characters: appeared (carrying position and activity) for newcomers,
  departed for anyone missing from the current state, and per-field
  changes for the rest
- outfit: a slot the current state sets to None is reported even when the
  previous state never mentioned it
- relationships are not diffed; they arrive as explicit events

The output is a list of candidates. It still goes through dedupe before
it is appended.
"""

from __future__ import annotations
from typing import Iterable, List, Mapping, Optional, Tuple

from ..contracts.events import (
    CharacterEvent,
    CharacterSubkind,
    LocationMovedEvent,
    LocationPropEvent,
    LocationSubkind,
    StateEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
)
from ..contracts.narrative import NarrativeDateTime, TimeDelta
from ..contracts.projection import (
    OUTFIT_SLOTS,
    UNKNOWN_POSITION,
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedState,
)
from ..temporal.projection import empty_projection


def time_delta_between(start: NarrativeDateTime, end: NarrativeDateTime) -> TimeDelta:
    """Elapsed time from start to end; end must not precede start."""
    seconds = int((end.to_datetime() - start.to_datetime()).total_seconds())
    if seconds < 0:
        raise ValueError(f"Time moved backwards: {end} precedes {start}")
    return TimeDelta.from_seconds(seconds)


def _time_events(
    message_id: int,
    swipe_id: int,
    previous: Optional[NarrativeDateTime],
    current: Optional[NarrativeDateTime],
) -> List[StateEvent]:
    if current is None or current == previous:
        return []
    if previous is None or current.to_datetime() < previous.to_datetime():
        return [TimeInitialEvent(message_id=message_id, swipe_id=swipe_id, initial_time=current)]
    return [TimeDeltaEvent(
        message_id=message_id,
        swipe_id=swipe_id,
        delta=time_delta_between(previous, current),
    )]


def _location_events(
    message_id: int,
    swipe_id: int,
    previous: Optional[ProjectedLocation],
    current: Optional[ProjectedLocation],
) -> List[StateEvent]:
    if current is None:
        return []
    events: List[StateEvent] = []
    where = (current.area, current.place, current.position)
    if previous is None or (previous.area, previous.place, previous.position) != where:
        events.append(LocationMovedEvent(
            message_id=message_id,
            swipe_id=swipe_id,
            new_area=current.area,
            new_place=current.place,
            new_position=current.position,
            previous_area=previous.area if previous else None,
            previous_place=previous.place if previous else None,
            previous_position=previous.position if previous else None,
        ))

    held = previous.props if previous else ()
    for prop in current.props:
        if prop not in held:
            events.append(LocationPropEvent(
                message_id=message_id, swipe_id=swipe_id,
                subkind=LocationSubkind.PROP_ADDED, prop=prop,
            ))
    for prop in held:
        if prop not in current.props:
            events.append(LocationPropEvent(
                message_id=message_id, swipe_id=swipe_id,
                subkind=LocationSubkind.PROP_REMOVED, prop=prop,
            ))
    return events


def _set_changes(
    before: Tuple[str, ...], after: Tuple[str, ...]
) -> Tuple[List[str], List[str]]:
    """(added, removed), each in the order the values were held."""
    return [v for v in after if v not in before], [v for v in before if v not in after]


def _slot_order(slot: str) -> Tuple[int, str]:
    return (OUTFIT_SLOTS.index(slot) if slot in OUTFIT_SLOTS else len(OUTFIT_SLOTS), slot)


def _outfit_slots(before: Mapping[str, Optional[str]], after: Mapping[str, Optional[str]]) -> List[str]:
    """Every slot either side mentions; known slots first, in body order."""
    return sorted(set(before) | set(after), key=_slot_order)


def _character_events(
    message_id: int,
    swipe_id: int,
    name: str,
    previous: Optional[ProjectedCharacter],
    current: ProjectedCharacter,
) -> List[StateEvent]:
    def event(subkind: CharacterSubkind, **payload) -> CharacterEvent:
        return CharacterEvent(
            message_id=message_id, swipe_id=swipe_id,
            subkind=subkind, character=name, **payload,
        )

    events: List[StateEvent] = []
    if previous is None:
        position = None if current.position == UNKNOWN_POSITION else current.position
        events.append(event(
            CharacterSubkind.APPEARED,
            initial_position=position,
            initial_activity=current.activity,
        ))
        previous = ProjectedCharacter(name=name, position=current.position, activity=current.activity)

    if current.position != previous.position and current.position != UNKNOWN_POSITION:
        events.append(event(
            CharacterSubkind.POSITION_CHANGED,
            new_value=current.position, previous_value=previous.position,
        ))
    if current.activity != previous.activity:
        events.append(event(
            CharacterSubkind.ACTIVITY_CHANGED,
            new_value=current.activity, previous_value=previous.activity,
        ))

    added, removed = _set_changes(previous.mood, current.mood)
    events.extend(event(CharacterSubkind.MOOD_ADDED, mood=m) for m in added)
    events.extend(event(CharacterSubkind.MOOD_REMOVED, mood=m) for m in removed)

    added, removed = _set_changes(previous.physical_state, current.physical_state)
    events.extend(event(CharacterSubkind.PHYSICAL_STATE_ADDED, physical_state=p) for p in added)
    events.extend(event(CharacterSubkind.PHYSICAL_STATE_REMOVED, physical_state=p) for p in removed)

    for slot in _outfit_slots(previous.outfit, current.outfit):
        before, after = previous.outfit.get(slot), current.outfit.get(slot)
        newly_emptied = slot in current.outfit and slot not in previous.outfit
        if before != after or newly_emptied:
            events.append(event(
                CharacterSubkind.OUTFIT_CHANGED,
                slot=slot, new_value=after, previous_value=before,
            ))
    return events


def events_from_diff(
    message_id: int,
    swipe_id: int,
    previous: Optional[ProjectedState],
    current: ProjectedState,
) -> List[StateEvent]:
    """
    State events that turn `previous` into `current` at (message, swipe).

    A missing previous state diffs against the empty projection. Events
    come out in fold-safe order: time, location, then each current
    character in mapping order, then departures.
    """
    previous = previous or empty_projection()
    events = _time_events(message_id, swipe_id, previous.time, current.time)
    events.extend(_location_events(message_id, swipe_id, previous.location, current.location))

    for name, char in current.characters.items():
        events.extend(_character_events(message_id, swipe_id, name, previous.character(name), char))

    events.extend(_departures(message_id, swipe_id, previous.characters, current.characters))
    return events


def _departures(
    message_id: int,
    swipe_id: int,
    before: Iterable[str],
    after: Mapping[str, ProjectedCharacter],
) -> List[StateEvent]:
    return [
        CharacterEvent(
            message_id=message_id, swipe_id=swipe_id,
            subkind=CharacterSubkind.DEPARTED, character=name,
        )
        for name in before
        if name not in after
    ]
