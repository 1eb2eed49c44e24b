"""
Projected State Contracts

The materialized view of the narrative at one (message, swipe) point.

WHY FROZEN:
===========
A ProjectedState may be shared between the initial projection, a
chapter snapshot and a live fold accumulator at the same time. No fold
step mutates one in place; every change builds a new container and
leaves the old one untouched. Ordered-set fields (props, mood, feelings,
...) are tuples. Mapping fields (characters, relationships, outfit) are
wrapped in read-only mapping proxies over a private copy, so a caller
holding a returned projection cannot reach into stored state.
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Optional, Tuple
import hashlib
import json

from .narrative import NarrativeDateTime
from .pairs import Pair, is_first_of_pair, pair_key, sort_pair


OUTFIT_SLOTS: Tuple[str, ...] = (
    "head", "neck", "jacket", "back", "torso",
    "legs", "footwear", "socks", "underwear",
)

UNKNOWN_POSITION = "unknown"
UNKNOWN_PLACE = "Unknown"


def _freeze_mapping(obj: Any, name: str) -> None:
    value = getattr(obj, name)
    if isinstance(value, Mapping):
        object.__setattr__(obj, name, MappingProxyType(dict(value)))


class RelationshipStatus(Enum):
    STRANGERS = "strangers"
    ACQUAINTANCES = "acquaintances"
    FRIENDLY = "friendly"
    CLOSE = "close"
    INTIMATE = "intimate"
    STRAINED = "strained"
    HOSTILE = "hostile"
    COMPLICATED = "complicated"


@dataclass(frozen=True)
class ProjectedLocation:
    area: str
    place: str
    position: str
    props: Tuple[str, ...] = ()

    @staticmethod
    def unknown() -> ProjectedLocation:
        """Placeholder used when a prop changes before any location exists."""
        return ProjectedLocation(UNKNOWN_PLACE, UNKNOWN_PLACE, UNKNOWN_PLACE)


@dataclass(frozen=True)
class ProjectedCharacter:
    """
    One present character.

    outfit maps slot -> item. A slot mapped to None is explicitly empty;
    a slot missing from the mapping has never been set.
    """
    name: str
    position: str = UNKNOWN_POSITION
    activity: Optional[str] = None
    mood: Tuple[str, ...] = ()
    physical_state: Tuple[str, ...] = ()
    outfit: Dict[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze_mapping(self, "outfit")


@dataclass(frozen=True)
class RelationshipAttitude:
    """How one side of a pair regards the other."""
    feelings: Tuple[str, ...] = ()
    secrets: Tuple[str, ...] = ()
    wants: Tuple[str, ...] = ()

    def values(self, aspect: str) -> Tuple[str, ...]:
        return getattr(self, aspect)


@dataclass(frozen=True)
class ProjectedRelationship:
    pair: Pair
    status: RelationshipStatus = RelationshipStatus.STRANGERS
    a_to_b: RelationshipAttitude = field(default_factory=RelationshipAttitude)
    b_to_a: RelationshipAttitude = field(default_factory=RelationshipAttitude)

    @property
    def key(self) -> str:
        return pair_key(*self.pair)

    def attitude_from(self, character: str) -> RelationshipAttitude:
        """Attitude held by `character` toward the other side."""
        return self.a_to_b if is_first_of_pair(character, self.pair) else self.b_to_a

    @staticmethod
    def default(first: str, second: str) -> ProjectedRelationship:
        return ProjectedRelationship(pair=sort_pair(first, second))


@dataclass(frozen=True)
class ProjectedState:
    """
    Complete narrative state at a point in the log.

    Computed fresh by the fold; value-equal for equal inputs.
    """
    time: Optional[NarrativeDateTime] = None
    location: Optional[ProjectedLocation] = None
    characters: Dict[str, ProjectedCharacter] = field(default_factory=dict)
    relationships: Dict[str, ProjectedRelationship] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze_mapping(self, "characters")
        _freeze_mapping(self, "relationships")

    def character(self, name: str) -> Optional[ProjectedCharacter]:
        return self.characters.get(name)

    def has_relationship(self, first: str, second: str) -> bool:
        return pair_key(first, second) in self.relationships

    def relationship(self, first: str, second: str) -> ProjectedRelationship:
        """
        Relationship for a pair, in either order.

        Unknown pairs yield a strangers-status, empty-attitude default.
        """
        existing = self.relationships.get(pair_key(first, second))
        if existing is not None:
            return existing
        return ProjectedRelationship.default(first, second)

    def state_hash(self) -> str:
        """Deterministic hash over the canonical content."""
        content = json.dumps(_canonical(self), sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()


def _canonical(obj: Any) -> Any:
    if is_dataclass(obj):
        return {f.name: _canonical(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Mapping):
        return {key: _canonical(value) for key, value in obj.items()}
    if isinstance(obj, tuple):
        return [_canonical(value) for value in obj]
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    raise TypeError(f"Unserializable type in projection: {type(obj).__name__}")
