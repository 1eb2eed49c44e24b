"""
Store Serialization
===================

Plain-dict (JSON-ready) forms of every persisted type, and the single
per-narrative store document that holds them together.

RULES:
1. Enums are written as their .value
2. Tuples are written as lists and read back as tuples
3. Keys are snake_case; unknown event kinds survive a round trip
4. Readers raise ValueError on structurally invalid input; callers
   decide whether that is fatal
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import json

from ..contracts.events import (
    CharacterEvent,
    CharacterSubkind,
    DirectionalRelationshipEvent,
    LocationMovedEvent,
    LocationPropEvent,
    LocationSubkind,
    RelationshipSubkind,
    StateEvent,
    StatusChangedEvent,
    TimeDeltaEvent,
    TimeInitialEvent,
    UnknownStateEvent,
)
from ..contracts.narrative import (
    AffectedPair,
    NarrativeDateTime,
    NarrativeEvent,
    TensionLevel,
    TensionType,
    TimeDelta,
)
from ..contracts.projection import (
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedRelationship,
    ProjectedState,
    RelationshipAttitude,
    RelationshipStatus,
)
from ..temporal.snapshots import ChapterSnapshot


STORE_VERSION = 1

ENVELOPE_KEYS = ("id", "message_id", "swipe_id", "timestamp", "deleted")

CHARACTER_PAYLOAD: Dict[CharacterSubkind, Tuple[str, ...]] = {
    CharacterSubkind.APPEARED: ("initial_position", "initial_activity"),
    CharacterSubkind.DEPARTED: (),
    CharacterSubkind.POSITION_CHANGED: ("new_value", "previous_value"),
    CharacterSubkind.ACTIVITY_CHANGED: ("new_value", "previous_value"),
    CharacterSubkind.MOOD_ADDED: ("mood",),
    CharacterSubkind.MOOD_REMOVED: ("mood",),
    CharacterSubkind.PHYSICAL_STATE_ADDED: ("physical_state",),
    CharacterSubkind.PHYSICAL_STATE_REMOVED: ("physical_state",),
    CharacterSubkind.OUTFIT_CHANGED: ("slot", "new_value", "previous_value"),
}


def dumps(document: Mapping[str, Any], indent: Optional[int] = 2) -> str:
    """Encode a document built by the *_to_dict writers below."""
    return json.dumps(document, indent=indent, allow_nan=False)


# =============================================================================
# FIELD READERS
# =============================================================================

def _require(data: Mapping[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in data:
        raise ValueError(f"{where}: missing '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(
            f"{where}: '{key}' must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def _string_tuple(value: Any, where: str) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where}: expected a list of strings")
    return tuple(value)


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


# =============================================================================
# TIME
# =============================================================================

def datetime_to_dict(value: NarrativeDateTime) -> Dict[str, Any]:
    data = asdict(value)
    data["day_of_week"] = value.day_of_week
    return data


def datetime_from_dict(data: Mapping[str, Any]) -> NarrativeDateTime:
    if not isinstance(data, Mapping):
        raise ValueError("time: expected an object")
    return NarrativeDateTime(
        year=_require(data, "year", int, "time"),
        month=_require(data, "month", int, "time"),
        day=_require(data, "day", int, "time"),
        hour=int(data.get("hour", 0)),
        minute=int(data.get("minute", 0)),
        second=int(data.get("second", 0)),
    )


def delta_to_dict(value: TimeDelta) -> Dict[str, int]:
    return asdict(value)


def delta_from_dict(data: Mapping[str, Any]) -> TimeDelta:
    if not isinstance(data, Mapping):
        raise ValueError("delta: expected an object")
    return TimeDelta(
        days=int(data.get("days", 0)),
        hours=int(data.get("hours", 0)),
        minutes=int(data.get("minutes", 0)),
        seconds=int(data.get("seconds", 0)),
    )


# =============================================================================
# PROJECTED STATE
# =============================================================================

def attitude_to_dict(value: RelationshipAttitude) -> Dict[str, List[str]]:
    return {
        "feelings": list(value.feelings),
        "secrets": list(value.secrets),
        "wants": list(value.wants),
    }


def attitude_from_dict(data: Any, where: str) -> RelationshipAttitude:
    if not isinstance(data, Mapping):
        raise ValueError(f"{where}: attitude must be an object")
    return RelationshipAttitude(
        feelings=_string_tuple(data.get("feelings", []), f"{where}.feelings"),
        secrets=_string_tuple(data.get("secrets", []), f"{where}.secrets"),
        wants=_string_tuple(data.get("wants", []), f"{where}.wants"),
    )


def projection_to_dict(state: ProjectedState) -> Dict[str, Any]:
    location = None
    if state.location is not None:
        location = {
            "area": state.location.area,
            "place": state.location.place,
            "position": state.location.position,
            "props": list(state.location.props),
        }
    return {
        "time": datetime_to_dict(state.time) if state.time else None,
        "location": location,
        "characters": {
            name: {
                "name": char.name,
                "position": char.position,
                "activity": char.activity,
                "mood": list(char.mood),
                "physical_state": list(char.physical_state),
                "outfit": dict(char.outfit),
            }
            for name, char in state.characters.items()
        },
        "relationships": {
            key: {
                "pair": list(rel.pair),
                "status": rel.status.value,
                "a_to_b": attitude_to_dict(rel.a_to_b),
                "b_to_a": attitude_to_dict(rel.b_to_a),
            }
            for key, rel in state.relationships.items()
        },
    }


def _character_from_dict(name: str, data: Any) -> ProjectedCharacter:
    where = f"characters.{name}"
    if not isinstance(data, Mapping):
        raise ValueError(f"{where}: must be an object")
    outfit = _require(data, "outfit", dict, where)
    for slot, item in outfit.items():
        if item is not None and not isinstance(item, str):
            raise ValueError(f"{where}.outfit.{slot}: must be a string or null")
    return ProjectedCharacter(
        name=data.get("name") or name,
        position=data.get("position") or "unknown",
        activity=_optional_str(data, "activity"),
        mood=_string_tuple(_require(data, "mood", list, where), f"{where}.mood"),
        physical_state=_string_tuple(
            _require(data, "physical_state", list, where), f"{where}.physical_state"
        ),
        outfit=dict(outfit),
    )


def _relationship_from_dict(key: str, data: Any) -> ProjectedRelationship:
    where = f"relationships.{key}"
    if not isinstance(data, Mapping):
        raise ValueError(f"{where}: must be an object")
    pair = _string_tuple(_require(data, "pair", list, where), f"{where}.pair")
    if len(pair) != 2:
        raise ValueError(f"{where}.pair: expected two names")
    try:
        status = RelationshipStatus(data.get("status", "strangers"))
    except ValueError:
        raise ValueError(f"{where}: unknown status {data.get('status')!r}") from None
    return ProjectedRelationship(
        pair=pair,
        status=status,
        a_to_b=attitude_from_dict(_require(data, "a_to_b", dict, where), f"{where}.a_to_b"),
        b_to_a=attitude_from_dict(_require(data, "b_to_a", dict, where), f"{where}.b_to_a"),
    )


def projection_from_dict(data: Mapping[str, Any]) -> ProjectedState:
    """
    Strict reader. Raises ValueError if a required container is missing
    or has the wrong shape.
    """
    if not isinstance(data, Mapping):
        raise ValueError("projection: expected an object")
    characters = _require(data, "characters", dict, "projection")
    relationships = _require(data, "relationships", dict, "projection")

    location = None
    raw_location = data.get("location")
    if raw_location is not None:
        if not isinstance(raw_location, Mapping):
            raise ValueError("location: must be an object or null")
        location = ProjectedLocation(
            area=_require(raw_location, "area", str, "location"),
            place=_require(raw_location, "place", str, "location"),
            position=_require(raw_location, "position", str, "location"),
            props=_string_tuple(_require(raw_location, "props", list, "location"), "location.props"),
        )

    raw_time = data.get("time")
    return ProjectedState(
        time=datetime_from_dict(raw_time) if raw_time is not None else None,
        location=location,
        characters={
            name: _character_from_dict(name, value) for name, value in characters.items()
        },
        relationships={
            key: _relationship_from_dict(key, value) for key, value in relationships.items()
        },
    )


# =============================================================================
# STATE EVENTS
# =============================================================================

def state_event_to_dict(event: StateEvent) -> Dict[str, Any]:
    data: Dict[str, Any] = {key: getattr(event, key) for key in ENVELOPE_KEYS}

    match event:
        case TimeInitialEvent():
            data.update(kind=event.kind, initial_time=datetime_to_dict(event.initial_time))
        case TimeDeltaEvent():
            data.update(kind=event.kind, delta=delta_to_dict(event.delta))
            if event.raw_delta is not None:
                data["raw_delta"] = delta_to_dict(event.raw_delta)
        case LocationMovedEvent():
            data.update(
                kind=event.kind,
                subkind=event.subkind.value,
                new_area=event.new_area,
                new_place=event.new_place,
                new_position=event.new_position,
                previous_area=event.previous_area,
                previous_place=event.previous_place,
                previous_position=event.previous_position,
            )
            if event.new_props is not None:
                data["new_props"] = list(event.new_props)
        case LocationPropEvent():
            data.update(kind=event.kind, subkind=event.subkind.value, prop=event.prop)
        case CharacterEvent():
            data.update(kind=event.kind, subkind=event.subkind.value, character=event.character)
            for key in CHARACTER_PAYLOAD[event.subkind]:
                data[key] = getattr(event, key)
        case DirectionalRelationshipEvent():
            data.update(
                kind=event.kind,
                subkind=event.subkind.value,
                from_character=event.from_character,
                toward_character=event.toward_character,
                value=event.value,
            )
        case StatusChangedEvent():
            data.update(
                kind=event.kind,
                subkind=event.subkind.value,
                pair=list(event.pair),
                new_status=event.new_status.value,
                previous_status=event.previous_status.value if event.previous_status else None,
            )
        case UnknownStateEvent():
            data.update(event.payload)
            data["kind"] = event.raw_kind
            if event.raw_subkind is not None:
                data["subkind"] = event.raw_subkind
        case _:
            raise TypeError(f"Not a state event: {type(event).__name__}")
    return data


def _envelope(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(data.get("id", "")),
        "message_id": _require(data, "message_id", int, "event"),
        "swipe_id": int(data.get("swipe_id", 0)),
        "timestamp": int(data.get("timestamp", 0)),
        "deleted": bool(data.get("deleted", False)),
    }


def _unknown(data: Mapping[str, Any], envelope: Dict[str, Any]) -> UnknownStateEvent:
    payload = {
        k: v for k, v in data.items()
        if k not in ENVELOPE_KEYS and k not in ("kind", "subkind")
    }
    return UnknownStateEvent(
        raw_kind=str(data.get("kind", "")),
        raw_subkind=data.get("subkind"),
        payload=payload,
        **envelope,
    )


def state_event_from_dict(data: Mapping[str, Any]) -> StateEvent:
    """Read one state event; unrecognised kind/subkind -> UnknownStateEvent."""
    if not isinstance(data, Mapping):
        raise ValueError("event: expected an object")
    envelope = _envelope(data)
    kind = data.get("kind")
    subkind = data.get("subkind")

    if kind == TimeInitialEvent.kind:
        return TimeInitialEvent(initial_time=datetime_from_dict(data["initial_time"]), **envelope)

    if kind == TimeDeltaEvent.kind:
        raw = data.get("raw_delta")
        return TimeDeltaEvent(
            delta=delta_from_dict(data["delta"]),
            raw_delta=delta_from_dict(raw) if raw is not None else None,
            **envelope,
        )

    if kind == "location" and subkind == LocationSubkind.MOVED.value:
        props = data.get("new_props")
        return LocationMovedEvent(
            new_area=_require(data, "new_area", str, "event"),
            new_place=_require(data, "new_place", str, "event"),
            new_position=_require(data, "new_position", str, "event"),
            previous_area=_optional_str(data, "previous_area"),
            previous_place=_optional_str(data, "previous_place"),
            previous_position=_optional_str(data, "previous_position"),
            new_props=_string_tuple(props, "event.new_props") if props is not None else None,
            **envelope,
        )

    if kind == "location" and subkind in (
        LocationSubkind.PROP_ADDED.value, LocationSubkind.PROP_REMOVED.value
    ):
        return LocationPropEvent(
            subkind=LocationSubkind(subkind),
            prop=_require(data, "prop", str, "event"),
            **envelope,
        )

    if kind == CharacterEvent.kind and subkind in {s.value for s in CharacterSubkind}:
        character_subkind = CharacterSubkind(subkind)
        payload = {key: data.get(key) for key in CHARACTER_PAYLOAD[character_subkind]}
        return CharacterEvent(
            subkind=character_subkind,
            character=_require(data, "character", str, "event"),
            **payload,
            **envelope,
        )

    if kind == "relationship" and subkind == RelationshipSubkind.STATUS_CHANGED.value:
        pair = _string_tuple(_require(data, "pair", list, "event"), "event.pair")
        previous = data.get("previous_status")
        return StatusChangedEvent(
            pair=pair,
            new_status=RelationshipStatus(data["new_status"]),
            previous_status=RelationshipStatus(previous) if previous else None,
            **envelope,
        )

    if kind == "relationship" and subkind in {s.value for s in RelationshipSubkind}:
        return DirectionalRelationshipEvent(
            subkind=RelationshipSubkind(subkind),
            from_character=str(data.get("from_character") or ""),
            toward_character=str(data.get("toward_character") or ""),
            value=_require(data, "value", str, "event"),
            **envelope,
        )

    return _unknown(data, envelope)


# =============================================================================
# NARRATIVE EVENTS
# =============================================================================

def affected_pair_to_dict(value: AffectedPair) -> Dict[str, Any]:
    data: Dict[str, Any] = {"pair": list(value.pair)}
    if value.first_for:
        data["first_for"] = list(value.first_for)
    if value.milestone_descriptions:
        data["milestone_descriptions"] = dict(value.milestone_descriptions)
    return data


def affected_pair_from_dict(data: Mapping[str, Any]) -> AffectedPair:
    pair = _string_tuple(_require(data, "pair", list, "affected_pair"), "affected_pair.pair")
    if len(pair) != 2:
        raise ValueError("affected_pair.pair: expected two names")
    descriptions = data.get("milestone_descriptions") or {}
    return AffectedPair(
        pair=pair,
        first_for=_string_tuple(data.get("first_for") or [], "affected_pair.first_for"),
        milestone_descriptions=tuple((str(k), str(v)) for k, v in descriptions.items()),
    )


def narrative_event_to_dict(event: NarrativeEvent) -> Dict[str, Any]:
    data: Dict[str, Any] = {key: getattr(event, key) for key in ENVELOPE_KEYS}
    data.update(
        summary=event.summary,
        event_types=list(event.event_types),
        tension_level=event.tension_level.value if event.tension_level else None,
        tension_type=event.tension_type.value if event.tension_type else None,
        witnesses=list(event.witnesses),
        location=event.location,
        narrative_timestamp=(
            datetime_to_dict(event.narrative_timestamp) if event.narrative_timestamp else None
        ),
        affected_pairs=[affected_pair_to_dict(ap) for ap in event.affected_pairs],
        chapter_index=event.chapter_index,
    )
    return data


def narrative_event_from_dict(data: Mapping[str, Any]) -> NarrativeEvent:
    if not isinstance(data, Mapping):
        raise ValueError("narrative event: expected an object")
    level = data.get("tension_level")
    tension_type = data.get("tension_type")
    stamp = data.get("narrative_timestamp")
    return NarrativeEvent(
        summary=str(data.get("summary", "")),
        event_types=_string_tuple(data.get("event_types") or [], "narrative.event_types"),
        tension_level=TensionLevel(level) if level else None,
        tension_type=TensionType(tension_type) if tension_type else None,
        witnesses=_string_tuple(data.get("witnesses") or [], "narrative.witnesses"),
        location=str(data.get("location") or ""),
        narrative_timestamp=datetime_from_dict(stamp) if stamp else None,
        affected_pairs=tuple(
            affected_pair_from_dict(ap) for ap in data.get("affected_pairs") or []
        ),
        chapter_index=data.get("chapter_index"),
        **_envelope(data),
    )


# =============================================================================
# SNAPSHOTS AND THE STORE DOCUMENT
# =============================================================================

def snapshot_to_dict(snapshot: ChapterSnapshot) -> Dict[str, Any]:
    return {
        "chapter_index": snapshot.chapter_index,
        "message_id": snapshot.message_id,
        "swipe_id": snapshot.swipe_id,
        "swipes": list(snapshot.swipes),
        "projection": projection_to_dict(snapshot.projection),
    }


def _swipe_tuple(value: Any) -> Tuple[int, ...]:
    if not isinstance(value, list) or not all(isinstance(v, int) and v >= 0 for v in value):
        raise ValueError("snapshot.swipes: expected a list of swipe indices")
    return tuple(value)


def snapshot_from_dict(data: Mapping[str, Any]) -> ChapterSnapshot:
    return ChapterSnapshot(
        chapter_index=_require(data, "chapter_index", int, "snapshot"),
        message_id=_require(data, "message_id", int, "snapshot"),
        swipe_id=int(data.get("swipe_id", 0)),
        projection=projection_from_dict(_require(data, "projection", dict, "snapshot")),
        swipes=_swipe_tuple(data.get("swipes") or []),
    )


@dataclass(frozen=True)
class StoreDocument:
    """Everything persisted for one narrative."""
    initial_projection: Optional[ProjectedState] = None
    state_events: Tuple[StateEvent, ...] = ()
    narrative_events: Tuple[NarrativeEvent, ...] = ()
    chapter_snapshots: Tuple[ChapterSnapshot, ...] = ()
    projection_invalid_from: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "initial_projection": (
                projection_to_dict(self.initial_projection)
                if self.initial_projection is not None else None
            ),
            "state_events": [state_event_to_dict(e) for e in self.state_events],
            "narrative_events": [narrative_event_to_dict(e) for e in self.narrative_events],
            "chapter_snapshots": [snapshot_to_dict(s) for s in self.chapter_snapshots],
            "projection_invalid_from": self.projection_invalid_from,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> StoreDocument:
        if not isinstance(data, Mapping):
            raise ValueError("store: expected an object")
        version = data.get("version", STORE_VERSION)
        if version != STORE_VERSION:
            raise ValueError(f"store: unsupported version {version!r}")
        initial = data.get("initial_projection")
        invalid_from = data.get("projection_invalid_from")
        return StoreDocument(
            initial_projection=projection_from_dict(initial) if initial is not None else None,
            state_events=tuple(state_event_from_dict(e) for e in data.get("state_events") or []),
            narrative_events=tuple(
                narrative_event_from_dict(e) for e in data.get("narrative_events") or []
            ),
            chapter_snapshots=tuple(
                snapshot_from_dict(s) for s in data.get("chapter_snapshots") or []
            ),
            projection_invalid_from=invalid_from if isinstance(invalid_from, int) else None,
        )
