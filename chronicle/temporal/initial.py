"""
Initial Projection

The one authoritative starting snapshot that predates every event.

INVARIANTS:
- Structurally invalid input fails here, at set time, with
  InvalidProjectionError; it is never tolerated through later folds
- Relationship keys are re-normalised through pair_key
- The stored value is frozen; folds start from it and never modify it
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Mapping, Optional, Union
import logging

from ..contracts.base import Error, ErrorCode, InvalidProjectionError
from ..contracts.narrative import NarrativeDateTime
from ..contracts.projection import (
    ProjectedCharacter,
    ProjectedLocation,
    ProjectedRelationship,
    ProjectedState,
    RelationshipAttitude,
    RelationshipStatus,
)
from ..domain.serialization import projection_from_dict
from .snapshots import normalize_relationship_keys


logger = logging.getLogger(__name__)


def _invalid(message: str) -> InvalidProjectionError:
    return InvalidProjectionError(
        Error.create(ErrorCode.INVALID_INITIAL_PROJECTION, message)
    )


def _is_str_tuple(value: Any) -> bool:
    return isinstance(value, tuple) and all(isinstance(v, str) for v in value)


def _check_attitude(value: Any, where: str) -> None:
    if not isinstance(value, RelationshipAttitude):
        raise _invalid(f"{where}: missing attitude")
    for aspect in ("feelings", "secrets", "wants"):
        if not _is_str_tuple(getattr(value, aspect)):
            raise _invalid(f"{where}.{aspect}: expected a tuple of strings")


def check_projection(state: ProjectedState) -> None:
    """Raise InvalidProjectionError unless every required container is present."""
    if not isinstance(state, ProjectedState):
        raise _invalid(f"Expected ProjectedState, got {type(state).__name__}")
    if state.time is not None and not isinstance(state.time, NarrativeDateTime):
        raise _invalid("time: expected NarrativeDateTime or None")
    if state.location is not None:
        if not isinstance(state.location, ProjectedLocation):
            raise _invalid("location: expected ProjectedLocation or None")
        if not _is_str_tuple(state.location.props):
            raise _invalid("location.props: expected a tuple of strings")
    if not isinstance(state.characters, Mapping):
        raise _invalid("characters: expected a mapping")
    for name, char in state.characters.items():
        if not isinstance(char, ProjectedCharacter):
            raise _invalid(f"characters.{name}: expected ProjectedCharacter")
        if not _is_str_tuple(char.mood) or not _is_str_tuple(char.physical_state):
            raise _invalid(f"characters.{name}: mood and physical_state must be tuples")
        if not isinstance(char.outfit, Mapping):
            raise _invalid(f"characters.{name}.outfit: expected a mapping")
    if not isinstance(state.relationships, Mapping):
        raise _invalid("relationships: expected a mapping")
    for key, rel in state.relationships.items():
        if not isinstance(rel, ProjectedRelationship):
            raise _invalid(f"relationships.{key}: expected ProjectedRelationship")
        if len(rel.pair) != 2:
            raise _invalid(f"relationships.{key}.pair: expected two names")
        if not isinstance(rel.status, RelationshipStatus):
            raise _invalid(f"relationships.{key}.status: expected RelationshipStatus")
        _check_attitude(rel.a_to_b, f"relationships.{key}.a_to_b")
        _check_attitude(rel.b_to_a, f"relationships.{key}.b_to_a")


def validate_initial_projection(
    value: Union[ProjectedState, Mapping[str, Any]]
) -> ProjectedState:
    """
    Accept a ProjectedState or its serialized dict and return the
    normalised projection to store.
    """
    if isinstance(value, Mapping):
        try:
            state = projection_from_dict(value)
        except (ValueError, TypeError) as exc:
            raise _invalid(str(exc)) from exc
    else:
        state = value
    check_projection(state)
    return normalize_relationship_keys(
        replace(state, characters=dict(state.characters), relationships=dict(state.relationships))
    )


class InitialProjectionHolder:
    """Holds the validated starting snapshot for one narrative."""

    def __init__(self, projection: Optional[ProjectedState] = None):
        self._projection = None
        if projection is not None:
            self.set(projection)

    def get(self) -> Optional[ProjectedState]:
        return self._projection

    def is_set(self) -> bool:
        return self._projection is not None

    def set(self, value: Union[ProjectedState, Mapping[str, Any]]) -> ProjectedState:
        projection = validate_initial_projection(value)
        if self._projection is not None:
            logger.info("Replacing initial projection")
        self._projection = projection
        logger.info(
            "Initial projection set: %d characters, %d relationships",
            len(projection.characters), len(projection.relationships),
        )
        return projection
