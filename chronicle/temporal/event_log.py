"""
Narrative Event Log
===================

Soft-deletable storage for the two fact families: state events and
narrative events.

INVARIANTS:
- Nothing is ever physically removed; deletion sets `deleted`
- Every appended event gets a unique id and a creation timestamp
- Fold order is (message_id, timestamp) ascending, stable on append order
- Stored events are immutable values; edits swap in a replacement

This is the SOURCE OF TRUTH for all narrative state.
Projections are DERIVED from this log, never stored separately
(chapter snapshots are a disposable cache; see temporal.snapshots).
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
import logging

from ..contracts.base import Clock, generate_event_id
from ..contracts.events import (
    DirectionalRelationshipEvent,
    RelationshipEvent,
    StateEvent,
    StatusChangedEvent,
)
from ..contracts.narrative import NarrativeEvent
from ..contracts.pairs import Pair, pair_key, sort_pair
from .clock import wall_clock_ms


logger = logging.getLogger(__name__)

# Envelope fields that identify an event; corrective edits may not touch them.
IMMUTABLE_FIELDS = frozenset({"id", "message_id", "swipe_id"})

E = TypeVar("E", StateEvent, NarrativeEvent)


def fold_order(events: Iterable[E]) -> List[E]:
    """Sort by (message_id, timestamp); ties keep their input order."""
    return sorted(events, key=lambda e: (e.message_id, e.timestamp))


class _EventTable:
    """
    Append-ordered table of one event family with an id index.

    The index is derived, not authoritative.
    """

    def __init__(self):
        self._rows: List = []
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def rows(self) -> Tuple:
        return tuple(self._rows)

    def add(self, event) -> None:
        if event.id in self._index:
            raise ValueError(f"Duplicate event id: {event.id}")
        self._index[event.id] = len(self._rows)
        self._rows.append(event)

    def get(self, event_id: str):
        position = self._index.get(event_id)
        return None if position is None else self._rows[position]

    def swap(self, event) -> None:
        """Replace the stored row that has the same id."""
        self._rows[self._index[event.id]] = event


class EventLog:
    """
    Soft-deletable event log for one narrative.

    GUARANTEES:
    ===========
    1. NO hard deletes - soft delete is the universal undo path
    2. Deterministic - same rows in same order -> same fold input
    3. Queries never return deleted events unless asked for the raw rows

    Single writer, synchronous. Callers must not interleave a mutation
    with a fold that assumes a stable log.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        id_factory: Callable[[], str] = generate_event_id,
    ):
        self._clock = clock or wall_clock_ms
        self._id_factory = id_factory
        self._state = _EventTable()
        self._narrative = _EventTable()

    @classmethod
    def from_events(
        cls,
        state_events: Iterable[StateEvent],
        narrative_events: Iterable[NarrativeEvent],
        clock: Optional[Clock] = None,
    ) -> EventLog:
        """Hydrate from persisted events, keeping their ids and timestamps."""
        log = cls(clock=clock)
        for event in state_events:
            log._state.add(event)
        for narrative in narrative_events:
            log._narrative.add(narrative)
        return log

    # -------------------------------------------------------------------------
    # Raw access
    # -------------------------------------------------------------------------

    @property
    def state_events(self) -> Tuple[StateEvent, ...]:
        """Every state event ever appended, deleted ones included."""
        return self._state.rows()

    @property
    def narrative_events(self) -> Tuple[NarrativeEvent, ...]:
        """Every narrative event ever appended, deleted ones included."""
        return self._narrative.rows()

    def active_state_events(self) -> List[StateEvent]:
        return fold_order(e for e in self._state.rows() if not e.deleted)

    def active_narrative_events(self) -> List[NarrativeEvent]:
        return fold_order(e for e in self._narrative.rows() if not e.deleted)

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    def _stamp(self, candidate: E) -> E:
        return replace(
            candidate,
            id=self._id_factory(),
            timestamp=self._clock(),
            deleted=False,
        )

    def append_state_event(self, candidate: StateEvent) -> StateEvent:
        """Assign id and timestamp, then store. Returns the stored event."""
        event = self._stamp(candidate)
        self._state.add(event)
        logger.debug(
            "Appended %s/%s %s at message %d swipe %d",
            type(event).__name__, event.subkind_name, event.id,
            event.message_id, event.swipe_id,
        )
        return event

    def append_state_events(self, candidates: Iterable[StateEvent]) -> List[StateEvent]:
        return [self.append_state_event(c) for c in candidates]

    def append_narrative_event(self, candidate: NarrativeEvent) -> NarrativeEvent:
        event = self._stamp(candidate)
        self._narrative.add(event)
        logger.debug(
            "Appended narrative event %s at message %d swipe %d",
            event.id, event.message_id, event.swipe_id,
        )
        return event

    def append_narrative_events(
        self, candidates: Iterable[NarrativeEvent]
    ) -> List[NarrativeEvent]:
        return [self.append_narrative_event(c) for c in candidates]

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_state_event(
        self, event_id: str, include_deleted: bool = False
    ) -> Optional[StateEvent]:
        event = self._state.get(event_id)
        if event is None or (event.deleted and not include_deleted):
            return None
        return event

    def get_narrative_event(
        self, event_id: str, include_deleted: bool = False
    ) -> Optional[NarrativeEvent]:
        event = self._narrative.get(event_id)
        if event is None or (event.deleted and not include_deleted):
            return None
        return event

    # -------------------------------------------------------------------------
    # Corrective edits and soft deletes
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_editable(changes: Dict[str, object]) -> None:
        forbidden = IMMUTABLE_FIELDS.intersection(changes)
        if forbidden:
            raise ValueError(f"Fields are not editable: {sorted(forbidden)}")

    def update_state_event(self, event_id: str, **changes) -> Optional[StateEvent]:
        """
        Apply a corrective edit. Returns the new stored value, or None if
        no event has that id.
        """
        self._check_editable(changes)
        current = self._state.get(event_id)
        if current is None:
            return None
        updated = replace(current, **changes)
        self._state.swap(updated)
        logger.debug("Edited state event %s: %s", event_id, sorted(changes))
        return updated

    def update_narrative_event(self, event_id: str, **changes) -> Optional[NarrativeEvent]:
        self._check_editable(changes)
        current = self._narrative.get(event_id)
        if current is None:
            return None
        updated = replace(current, **changes)
        self._narrative.swap(updated)
        logger.debug("Edited narrative event %s: %s", event_id, sorted(changes))
        return updated

    def delete_state_event(self, event_id: str) -> Optional[StateEvent]:
        """Soft delete. Returns the deleted event, or None if unknown."""
        return self.update_state_event(event_id, deleted=True)

    def delete_narrative_event(self, event_id: str) -> Optional[NarrativeEvent]:
        return self.update_narrative_event(event_id, deleted=True)

    def store_narrative_events(self, events: Iterable[NarrativeEvent]) -> int:
        """
        Swap in new values for already-stored narrative events (matched by id).

        Used to write back milestone recomputation results. Returns the
        number of rows that actually changed.
        """
        changed = 0
        for event in events:
            current = self._narrative.get(event.id)
            if current is None:
                raise KeyError(event.id)
            if current != event:
                self._narrative.swap(event)
                changed += 1
        return changed

    def replace_state_events_for_message(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[StateEvent],
    ) -> List[StateEvent]:
        """Soft-delete the live events at (message, swipe), then append candidates."""
        for event in self.state_events_for_message(message_id, swipe_id):
            self._state.swap(replace(event, deleted=True))
        return self.append_state_events(candidates)

    def replace_narrative_events_for_message(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[NarrativeEvent],
    ) -> List[NarrativeEvent]:
        for event in self.narrative_events_for_message(message_id, swipe_id):
            self._narrative.swap(replace(event, deleted=True))
        return self.append_narrative_events(candidates)

    def clear_message(self, message_id: int) -> Tuple[List[StateEvent], List[NarrativeEvent]]:
        """
        Soft-delete every event of every swipe of a message.

        Returns the events that were deleted.
        """
        cleared_state = []
        for event in self._state.rows():
            if event.message_id == message_id and not event.deleted:
                self._state.swap(replace(event, deleted=True))
                cleared_state.append(event)
        cleared_narrative = []
        for narrative in self._narrative.rows():
            if narrative.message_id == message_id and not narrative.deleted:
                self._narrative.swap(replace(narrative, deleted=True))
                cleared_narrative.append(narrative)
        logger.info(
            "Cleared message %d: %d state events, %d narrative events",
            message_id, len(cleared_state), len(cleared_narrative),
        )
        return cleared_state, cleared_narrative

    def assign_to_chapter(self, event_ids: Iterable[str], chapter_index: int) -> int:
        """Attach live narrative events to a closed chapter. Returns count assigned."""
        assigned = 0
        for event_id in event_ids:
            event = self.get_narrative_event(event_id)
            if event is not None:
                self._narrative.swap(replace(event, chapter_index=chapter_index))
                assigned += 1
        return assigned

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def state_events_for_message(self, message_id: int, swipe_id: int) -> List[StateEvent]:
        return [
            e for e in self.active_state_events()
            if e.message_id == message_id and e.swipe_id == swipe_id
        ]

    def narrative_events_for_message(
        self, message_id: int, swipe_id: int
    ) -> List[NarrativeEvent]:
        return [
            e for e in self.active_narrative_events()
            if e.message_id == message_id and e.swipe_id == swipe_id
        ]

    def state_events_in_range(self, start: int, end: int) -> List[StateEvent]:
        """Live state events with start <= message_id <= end, all swipes."""
        return [e for e in self.active_state_events() if start <= e.message_id <= end]

    def narrative_events_in_range(self, start: int, end: int) -> List[NarrativeEvent]:
        return [e for e in self.active_narrative_events() if start <= e.message_id <= end]

    def narrative_events_for_chapter(self, chapter_index: int) -> List[NarrativeEvent]:
        return [e for e in self.active_narrative_events() if e.chapter_index == chapter_index]

    def current_chapter_events(self) -> List[NarrativeEvent]:
        """Live narrative events not yet assigned to any chapter."""
        return [e for e in self.active_narrative_events() if e.chapter_index is None]

    def narrative_events_for_pair(self, first: str, second: str) -> List[NarrativeEvent]:
        key = pair_key(first, second)
        return [e for e in self.active_narrative_events() if e.touches(key)]

    def relationship_events_for_pair(self, first: str, second: str) -> List[RelationshipEvent]:
        key = pair_key(first, second)
        selected = []
        for event in self.active_state_events():
            if not isinstance(event, (StatusChangedEvent, DirectionalRelationshipEvent)):
                continue
            pair = event.pair
            if pair is not None and pair_key(*pair) == key:
                selected.append(event)
        return selected

    def all_pairs(self) -> List[Pair]:
        """Distinct sorted pairs touched by live narrative events, first-seen order."""
        pairs: Dict[str, Pair] = {}
        for event in self.active_narrative_events():
            for affected in event.affected_pairs:
                pairs.setdefault(affected.key, sort_pair(*affected.pair))
        return list(pairs.values())

    def last_message_with_events(self, before: Optional[int] = None) -> int:
        """
        Greatest message id holding any live event, or -1.

        With `before`, only messages strictly before it are considered.
        """
        ids: Sequence[int] = [
            e.message_id
            for e in (*self.active_state_events(), *self.active_narrative_events())
            if before is None or e.message_id < before
        ]
        return max(ids, default=-1)
