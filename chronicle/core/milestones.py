"""
Milestone Recomputation
=======================

A milestone is a "first occurrence" flag for a character pair, stored
on the narrative event that currently deserves it (AffectedPair.first_for).

INVARIANT:
For every pair and every milestone reachable from the category-tag
vocabulary, the flag sits on the EARLIEST live event (by message_id,
then creation timestamp) whose event_types justify it, and on no other
event. Editing tags, deleting or inserting an earlier event therefore
moves the flag.

Flags that no category tag can produce (e.g. first_meeting) are set by
hand and left where they are.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging

from ..contracts.base import Error, ErrorCode
from ..contracts.narrative import (
    EVENT_TYPE_TO_MILESTONE,
    AffectedPair,
    NarrativeDateTime,
    NarrativeEvent,
)
from ..contracts.pairs import Pair, pair_key, sort_pair
from ..contracts.projection import RelationshipStatus
from ..temporal.event_log import fold_order


logger = logging.getLogger(__name__)

DERIVABLE_MILESTONES = frozenset(EVENT_TYPE_TO_MILESTONE.values())

INTIMATE_MILESTONES = (
    "first_penetrative", "first_oral", "first_climax",
    "marriage", "promised_exclusivity",
)
CLOSE_MILESTONES = (
    "first_heated", "first_kiss", "emotional_intimacy",
    "first_vulnerability", "confession", "first_i_love_you",
)
FRIENDLY_MILESTONES = (
    "first_laugh", "first_gift", "first_shared_meal", "first_shared_activity",
    "first_helped", "first_outing", "first_embrace", "first_touch",
)
BREACH_MILESTONES = ("betrayal", "promise_broken")
CONFLICT_MILESTONES = ("first_conflict", "major_argument")


@dataclass(frozen=True)
class Milestone:
    """One milestone flag, as read back from the event that carries it."""
    type: str
    event_id: str
    message_id: int
    pair: Pair
    description: Optional[str] = None
    narrative_timestamp: Optional[NarrativeDateTime] = None


@dataclass(frozen=True)
class DerivedRelationship:
    """Relationship summary computed from narrative events alone."""
    pair: Pair
    status: RelationshipStatus
    milestone_event_ids: Tuple[str, ...] = ()


# =============================================================================
# RECOMPUTATION
# =============================================================================

def _recompute_pair(
    affected: AffectedPair,
    event_types: Sequence[str],
    seen: Set[str],
) -> AffectedPair:
    """Reassign derivable flags on one pair entry given what was already seen."""
    kept = [m for m in affected.first_for if m not in DERIVABLE_MILESTONES]
    for event_type in event_types:
        milestone = EVENT_TYPE_TO_MILESTONE.get(event_type)
        if milestone and milestone not in seen:
            kept.append(milestone)
            seen.add(milestone)
    descriptions = tuple(
        (milestone, text)
        for milestone, text in affected.milestone_descriptions
        if milestone in kept and text
    )
    return replace(affected, first_for=tuple(kept), milestone_descriptions=descriptions)


def recompute_first_for(
    events: Iterable[NarrativeEvent],
    from_message_id: int = 0,
    affected_pairs: Optional[Iterable[str]] = None,
) -> List[NarrativeEvent]:
    """
    Move first_for flags to the earliest qualifying events.

    Args:
        events: Narrative events (deleted ones are passed through untouched)
        from_message_id: Events before this keep their flags and seed the
            "already seen" set; events from here on are recomputed
        affected_pairs: Pair keys to recompute; None means every pair

    Returns the events in input order, with recomputed values swapped in.
    """
    events = list(events)
    only: Optional[Set[str]] = None
    if affected_pairs is not None:
        only = {key.lower() for key in affected_pairs}

    seen: Dict[str, Set[str]] = {}
    updated: Dict[str, NarrativeEvent] = {}

    for event in fold_order(e for e in events if not e.deleted):
        if event.message_id < from_message_id:
            for ap in event.affected_pairs:
                if only is None or ap.key in only:
                    seen.setdefault(ap.key, set()).update(ap.first_for)
            continue

        new_pairs = []
        for ap in event.affected_pairs:
            if only is not None and ap.key not in only:
                new_pairs.append(ap)
                continue
            pair_seen = seen.setdefault(ap.key, set())
            pair_seen.update(m for m in ap.first_for if m not in DERIVABLE_MILESTONES)
            new_pairs.append(_recompute_pair(ap, event.event_types, pair_seen))

        new_pairs = tuple(new_pairs)
        if new_pairs != event.affected_pairs:
            updated[event.id] = replace(event, affected_pairs=new_pairs)
            logger.debug("Milestones moved on narrative event %s", event.id)

    return [updated.get(e.id, e) for e in events]


def stale_milestones(events: Sequence[NarrativeEvent]) -> List[Error]:
    """Events whose stored flags differ from a full recomputation."""
    errors = []
    for before, after in zip(events, recompute_first_for(events)):
        if before != after:
            errors.append(Error.create(
                ErrorCode.STALE_MILESTONE,
                f"Milestone flags on event {before.id} are not on the earliest qualifying event",
                event_id=before.id,
                message_id=before.message_id,
            ))
    return errors


# =============================================================================
# READ SIDE
# =============================================================================

def milestones_for_pair(
    events: Iterable[NarrativeEvent], first: str, second: str
) -> List[Milestone]:
    """Every milestone of a pair, in fold order."""
    key = pair_key(first, second)
    milestones = []
    for event in fold_order(e for e in events if not e.deleted):
        ap = event.pair_entry(key)
        if ap is None:
            continue
        for milestone in ap.first_for:
            milestones.append(Milestone(
                type=milestone,
                event_id=event.id,
                message_id=event.message_id,
                pair=ap.pair,
                description=ap.description_for(milestone),
                narrative_timestamp=event.narrative_timestamp,
            ))
    return milestones


def milestones_for_event(
    events: Iterable[NarrativeEvent], event_id: str
) -> List[Milestone]:
    """Milestones carried by one live event, across all of its pairs."""
    for event in events:
        if event.id != event_id or event.deleted:
            continue
        return [
            Milestone(
                type=milestone,
                event_id=event.id,
                message_id=event.message_id,
                pair=ap.pair,
                description=ap.description_for(milestone),
                narrative_timestamp=event.narrative_timestamp,
            )
            for ap in event.affected_pairs
            for milestone in ap.first_for
        ]
    return []


def status_from_milestones(milestones: Iterable[str]) -> RelationshipStatus:
    """
    Heuristic status from a pair's milestone types.

    Precedence: intimate > close > friendly > hostile/strained
    > acquaintances > strangers.
    """
    held = set(milestones)
    if held.intersection(INTIMATE_MILESTONES):
        return RelationshipStatus.INTIMATE
    if held.intersection(CLOSE_MILESTONES):
        return RelationshipStatus.CLOSE
    if held.intersection(FRIENDLY_MILESTONES):
        return RelationshipStatus.FRIENDLY
    if held.intersection(BREACH_MILESTONES):
        if "reconciliation" in held:
            return RelationshipStatus.STRAINED
        return RelationshipStatus.HOSTILE
    if held.intersection(CONFLICT_MILESTONES):
        return RelationshipStatus.STRAINED
    if "first_meeting" in held:
        return RelationshipStatus.ACQUAINTANCES
    return RelationshipStatus.STRANGERS


def derive_relationship(
    events: Iterable[NarrativeEvent], first: str, second: str
) -> DerivedRelationship:
    milestones = milestones_for_pair(events, first, second)
    event_ids: List[str] = []
    for milestone in milestones:
        if milestone.event_id not in event_ids:
            event_ids.append(milestone.event_id)
    return DerivedRelationship(
        pair=sort_pair(first, second),
        status=status_from_milestones(m.type for m in milestones),
        milestone_event_ids=tuple(event_ids),
    )
