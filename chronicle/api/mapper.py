"""
API Mapper
==========

Transforms store values into response DTOs.
Projections and events are exposed in their persisted shape, without
any smoothing or summarisation.
"""
from typing import Any, Dict, List, Sequence

from ..contracts.base import Error
from ..contracts.events import StateEvent
from ..contracts.narrative import NarrativeEvent
from ..contracts.projection import ProjectedState
from ..core.milestones import Milestone
from ..domain.serialization import (
    datetime_to_dict,
    narrative_event_to_dict,
    projection_to_dict,
    state_event_to_dict,
)


def map_projection_to_dto(
    projection: ProjectedState, message_id: int, swipe_id: int
) -> Dict[str, Any]:
    return {
        "message_id": message_id,
        "swipe_id": swipe_id,
        "state_hash": projection.state_hash(),
        "projection": projection_to_dict(projection),
    }


def map_state_events(events: Sequence[StateEvent]) -> List[Dict[str, Any]]:
    return [state_event_to_dict(e) for e in events]


def map_narrative_events(events: Sequence[NarrativeEvent]) -> List[Dict[str, Any]]:
    return [narrative_event_to_dict(e) for e in events]


def map_milestone(milestone: Milestone) -> Dict[str, Any]:
    return {
        "type": milestone.type,
        "event_id": milestone.event_id,
        "message_id": milestone.message_id,
        "pair": list(milestone.pair),
        "description": milestone.description,
        "narrative_timestamp": (
            datetime_to_dict(milestone.narrative_timestamp)
            if milestone.narrative_timestamp else None
        ),
    }


def map_error(error: Error) -> Dict[str, Any]:
    return {
        "code": error.code.name,
        "message": error.message,
        "context": dict(error.context),
    }
