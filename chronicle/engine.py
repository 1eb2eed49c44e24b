"""
Store Orchestration Module

The unified interface for one narrative's event-sourced state store.

CONTROL FLOW:
=============
1. Extractor (external) proposes candidate events for (message, swipe)
2. Deduplication drops candidates that are already true
3. Time leaps are capped (when configured) and survivors are appended
4. Snapshots and projections from that message onward are invalidated
5. Narrative appends, tag edits and deletes re-run milestone recomputation
6. Readers project state at any (message, swipe), optionally via snapshots

DESIGN PRINCIPLES:
==================
1. One explicit store object per narrative; no process-wide state
2. Single writer, synchronous; no internal locking
3. Every write that can change a past projection invalidates from the
   earliest message it touched
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Optional, Set, Union
import logging

from .contracts.base import Clock, Error, ErrorCode
from .contracts.events import StateEvent, TimeDeltaEvent, TimeInitialEvent
from .contracts.narrative import NarrativeEvent
from .contracts.pairs import Pair, pair_key
from .contracts.projection import ProjectedState
from .core.milestones import (
    DerivedRelationship,
    Milestone,
    derive_relationship,
    milestones_for_event,
    milestones_for_pair,
    recompute_first_for,
    stale_milestones,
)
from .domain.serialization import StoreDocument
from .normalization.dedup import dedupe
from .normalization.diff import events_from_diff
from .normalization.time_leaps import cap_time_leap, previous_raw_seconds
from .storage import LoadResult, SaveResult, StorageBackend, StorageConfig, create_backend
from .temporal.event_log import EventLog, fold_order
from .temporal.initial import InitialProjectionHolder
from .temporal.projection import empty_projection
from .temporal.replay import ReplayEngine
from .temporal.snapshots import ChapterSnapshot, SnapshotCache
from .temporal.swipes import Chat, canonical_swipe, select_timeline


logger = logging.getLogger(__name__)


@dataclass
class StoreConfig:
    """Unified configuration for a narrative store."""
    leap_threshold_minutes: Optional[int] = None
    use_snapshots: bool = True
    auto_recompute_milestones: bool = True
    storage: StorageConfig = None

    def __post_init__(self):
        self.storage = self.storage or StorageConfig()
        if self.leap_threshold_minutes is not None and self.leap_threshold_minutes <= 0:
            raise ValueError("leap_threshold_minutes must be positive")


class NarrativeStore:
    """
    Event-sourced state store for one narrative.

    LAYER FLOW:
    ===========
    normalization (dedup, leap capping) -> temporal (log, fold,
    snapshots) -> core (milestones) -> storage (document persistence)
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        clock: Optional[Clock] = None,
        backend: Optional[StorageBackend] = None,
    ):
        self._config = config or StoreConfig()
        self._clock = clock
        self._backend = backend or create_backend(self._config.storage)
        self._log = EventLog(clock=clock)
        self._initial = InitialProjectionHolder()
        self._cache = SnapshotCache()
        self._replay = self._make_replay()

    def _make_replay(self) -> ReplayEngine:
        return ReplayEngine(
            initial=self._initial.get,
            events=lambda: self._log.state_events,
            cache=self._cache,
        )

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def log(self) -> EventLog:
        return self._log

    @property
    def snapshots(self) -> SnapshotCache:
        return self._cache

    @property
    def replay(self) -> ReplayEngine:
        return self._replay

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    @classmethod
    def open(
        cls,
        path: str,
        config: Optional[StoreConfig] = None,
        clock: Optional[Clock] = None,
    ) -> NarrativeStore:
        """
        Open a file-backed store. Raises ValueError if the file exists
        but cannot be read as a store.
        """
        config = config or StoreConfig()
        config.storage = StorageConfig(backend_type="file", path=path)
        store = cls(config=config, clock=clock)
        result = store.load()
        if not result.success:
            raise ValueError(result.error.message)
        return store

    def to_document(self) -> StoreDocument:
        return StoreDocument(
            initial_projection=self._initial.get(),
            state_events=self._log.state_events,
            narrative_events=self._log.narrative_events,
            chapter_snapshots=tuple(self._cache.snapshots),
            projection_invalid_from=self._cache.projection_invalid_from,
        )

    def load_document(self, document: StoreDocument) -> None:
        """Replace in-memory contents with a document's."""
        self._log = EventLog.from_events(
            document.state_events, document.narrative_events, clock=self._clock
        )
        self._initial = InitialProjectionHolder(document.initial_projection)
        self._cache = SnapshotCache(
            document.chapter_snapshots, document.projection_invalid_from
        )
        self._replay = self._make_replay()

    def load(self) -> LoadResult:
        """Load from the backend. On failure the store keeps its contents."""
        result = self._backend.load()
        if result.success:
            self.load_document(result.document)
            logger.info(
                "Loaded store: %d state events, %d narrative events, %d snapshots",
                len(self._log.state_events), len(self._log.narrative_events), len(self._cache),
            )
        return result

    def save(self) -> SaveResult:
        return self._backend.save(self.to_document())

    # =========================================================================
    # INITIAL PROJECTION
    # =========================================================================

    @property
    def initial_projection(self) -> Optional[ProjectedState]:
        return self._initial.get()

    def set_initial_projection(
        self, projection: Union[ProjectedState, Mapping[str, Any]]
    ) -> ProjectedState:
        """Validate and store the starting snapshot; invalidates everything cached."""
        stored = self._initial.set(projection)
        self.invalidate_from(0)
        return stored

    # =========================================================================
    # PROJECTION
    # =========================================================================

    def project(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> ProjectedState:
        """State as of (message, swipe), via snapshots when enabled."""
        if self._config.use_snapshots:
            return self._replay.replay_optimized(message_id, swipe_id, chat)
        return self._replay.replay_full(message_id, swipe_id, chat)

    def project_full(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> ProjectedState:
        return self._replay.replay_full(message_id, swipe_id, chat)

    def project_current(self, chat: Chat) -> ProjectedState:
        """State at the last message of the chat, on its canonical swipe."""
        if not chat:
            return self._initial.get() or empty_projection()
        last = len(chat) - 1
        return self.project(last, canonical_swipe(last, chat), chat)

    # =========================================================================
    # STATE EVENTS
    # =========================================================================

    def _prepare(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[StateEvent],
        chat: Optional[Chat],
    ) -> List[StateEvent]:
        located = [replace(c, message_id=message_id, swipe_id=swipe_id) for c in candidates]
        accepted = dedupe(self.project_full(message_id, swipe_id, chat), located)
        if self._config.leap_threshold_minutes is None:
            return accepted

        timeline = fold_order(
            select_timeline(self._log.state_events, message_id, swipe_id, chat)
        )
        previous = previous_raw_seconds(timeline)
        capped = []
        for event in accepted:
            if isinstance(event, TimeInitialEvent):
                previous = 0
            elif isinstance(event, TimeDeltaEvent):
                event = cap_time_leap(event, previous, self._config.leap_threshold_minutes)
                if event.raw_delta is not None:
                    logger.info(
                        "Capped consecutive time leap at message %d to %d minutes",
                        message_id, self._config.leap_threshold_minutes,
                    )
                previous = event.uncapped.total_seconds
            capped.append(event)
        return capped

    def add_state_events(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[StateEvent],
        chat: Optional[Chat] = None,
    ) -> List[StateEvent]:
        """
        Deduplicate and append candidates at (message, swipe).

        Returns the events actually stored.
        """
        stored = self._log.append_state_events(
            self._prepare(message_id, swipe_id, candidates, chat)
        )
        if stored:
            self.invalidate_from(message_id)
        return stored

    def add_state_from_diff(
        self,
        message_id: int,
        swipe_id: int,
        current: ProjectedState,
        chat: Optional[Chat] = None,
    ) -> List[StateEvent]:
        """
        Append whatever turns the projection at (message, swipe) into
        `current`. The generated events go through the same dedupe and
        leap capping as add_state_events.
        """
        previous = self.project_full(message_id, swipe_id, chat)
        candidates = events_from_diff(message_id, swipe_id, previous, current)
        logger.debug(
            "Diff at message %d swipe %d produced %d candidate(s)",
            message_id, swipe_id, len(candidates),
        )
        return self.add_state_events(message_id, swipe_id, candidates, chat)

    def replace_state_events(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[StateEvent],
        chat: Optional[Chat] = None,
    ) -> List[StateEvent]:
        """Re-extraction: soft-delete what is at (message, swipe), then add."""
        self._log.replace_state_events_for_message(message_id, swipe_id, ())
        stored = self._log.append_state_events(
            self._prepare(message_id, swipe_id, candidates, chat)
        )
        self.invalidate_from(message_id)
        return stored

    def edit_state_event(self, event_id: str, **changes) -> Optional[StateEvent]:
        updated = self._log.update_state_event(event_id, **changes)
        if updated is not None:
            self.invalidate_from(updated.message_id)
        return updated

    def delete_state_event(self, event_id: str) -> Optional[StateEvent]:
        deleted = self._log.delete_state_event(event_id)
        if deleted is not None:
            self.invalidate_from(deleted.message_id)
        return deleted

    # =========================================================================
    # NARRATIVE EVENTS
    # =========================================================================

    def _after_narrative_change(self, message_id: int, pair_keys: Set[str]) -> None:
        if self._config.auto_recompute_milestones and pair_keys:
            self.recompute_milestones(message_id, pair_keys)
        self.invalidate_from(message_id)

    def add_narrative_events(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[NarrativeEvent],
    ) -> List[NarrativeEvent]:
        located = [replace(c, message_id=message_id, swipe_id=swipe_id) for c in candidates]
        stored = self._log.append_narrative_events(located)
        keys = {ap.key for event in stored for ap in event.affected_pairs}
        if stored:
            self._after_narrative_change(message_id, keys)
        return [self._log.get_narrative_event(e.id) for e in stored]

    def replace_narrative_events(
        self,
        message_id: int,
        swipe_id: int,
        candidates: Iterable[NarrativeEvent],
    ) -> List[NarrativeEvent]:
        previous = self._log.narrative_events_for_message(message_id, swipe_id)
        located = [replace(c, message_id=message_id, swipe_id=swipe_id) for c in candidates]
        stored = self._log.replace_narrative_events_for_message(message_id, swipe_id, located)
        keys = {ap.key for event in (*previous, *stored) for ap in event.affected_pairs}
        self._after_narrative_change(message_id, keys)
        return [self._log.get_narrative_event(e.id) for e in stored]

    def edit_narrative_event(self, event_id: str, **changes) -> Optional[NarrativeEvent]:
        """
        Corrective edit. Tag or pair edits move milestone flags for the
        pairs involved, from this event's message onward.
        """
        before = self._log.get_narrative_event(event_id, include_deleted=True)
        updated = self._log.update_narrative_event(event_id, **changes)
        if updated is None:
            return None
        keys: Set[str] = set()
        if "event_types" in changes or "affected_pairs" in changes or "deleted" in changes:
            keys = {ap.key for ap in (*before.affected_pairs, *updated.affected_pairs)}
        self._after_narrative_change(updated.message_id, keys)
        return self._log.get_narrative_event(event_id, include_deleted=True)

    def delete_narrative_event(self, event_id: str) -> Optional[NarrativeEvent]:
        deleted = self._log.delete_narrative_event(event_id)
        if deleted is not None:
            self._after_narrative_change(
                deleted.message_id, {ap.key for ap in deleted.affected_pairs}
            )
        return deleted

    def recompute_milestones(
        self,
        from_message_id: int = 0,
        affected_pairs: Optional[Iterable[str]] = None,
    ) -> int:
        """Relocate first_for flags; returns the number of events changed."""
        before = {e.id: e for e in self._log.narrative_events}
        recomputed = recompute_first_for(
            self._log.narrative_events, from_message_id, affected_pairs
        )
        changed = [e for e in recomputed if before[e.id] != e]
        if not changed:
            return 0
        self._log.store_narrative_events(changed)
        earliest = min(e.message_id for e in changed)
        self.invalidate_from(earliest)
        logger.info(
            "Recomputed milestones from message %d: %d event(s) changed",
            from_message_id, len(changed),
        )
        return len(changed)

    # =========================================================================
    # SWIPES AND CHAPTERS
    # =========================================================================

    def clear_message(self, message_id: int) -> None:
        """Soft-delete every event of a message (used on regeneration)."""
        _, narrative = self._log.clear_message(message_id)
        keys = {ap.key for event in narrative for ap in event.affected_pairs}
        self._after_narrative_change(message_id, keys)

    def on_swipe(self, message_id: int) -> None:
        """The canonical swipe of a message changed; drop stale caches."""
        self.invalidate_from(message_id)

    def save_chapter_snapshot(
        self,
        chapter_index: int,
        message_id: int,
        swipe_id: int,
        chat: Optional[Chat] = None,
        projection: Optional[ProjectedState] = None,
    ) -> ChapterSnapshot:
        if projection is None:
            projection = self.project_full(message_id, swipe_id, chat)
        return self._cache.save(chapter_index, message_id, swipe_id, projection, chat)

    def close_chapter(
        self,
        chapter_index: int,
        message_id: int,
        swipe_id: int,
        chat: Optional[Chat] = None,
    ) -> Optional[ChapterSnapshot]:
        """
        Assign open-chapter events up to message_id to the chapter and,
        with snapshots enabled, cache the projection at its boundary.
        """
        ids = [e.id for e in self._log.current_chapter_events() if e.message_id <= message_id]
        self._log.assign_to_chapter(ids, chapter_index)
        logger.info("Closed chapter %d with %d event(s)", chapter_index, len(ids))
        if not self._config.use_snapshots:
            return None
        return self.save_chapter_snapshot(chapter_index, message_id, swipe_id, chat)

    def invalidate_from(self, message_id: int) -> None:
        self._cache.invalidate_from(message_id)

    def is_invalidated(self, message_id: int) -> bool:
        return self._cache.is_invalidated(message_id)

    def clear_invalidation(self) -> None:
        self._cache.clear_invalidation()

    # =========================================================================
    # MILESTONE QUERIES
    # =========================================================================

    def milestones_for_pair(self, first: str, second: str) -> List[Milestone]:
        return milestones_for_pair(self._log.narrative_events, first, second)

    def milestones_for_event(self, event_id: str) -> List[Milestone]:
        return milestones_for_event(self._log.narrative_events, event_id)

    def derive_relationship(self, first: str, second: str) -> DerivedRelationship:
        return derive_relationship(self._log.narrative_events, first, second)

    def all_pairs(self) -> List[Pair]:
        return self._log.all_pairs()

    # =========================================================================
    # VERIFICATION
    # =========================================================================

    def verify(self, chat: Optional[Chat] = None) -> List[Error]:
        """
        Check store invariants. Returns one Error per violation.

        Covers snapshot drift, un-normalised relationship keys, stale
        milestone flags and replay determinism at the last message.
        """
        errors: List[Error] = []

        projections = []
        if self._initial.get() is not None:
            projections.append(("initial projection", self._initial.get()))
        projections.extend(
            (f"snapshot {s.chapter_index}", s.projection) for s in self._cache.snapshots
        )
        for where, projection in projections:
            for key, rel in projection.relationships.items():
                if key != pair_key(*rel.pair):
                    errors.append(Error.create(
                        ErrorCode.UNNORMALIZED_PAIR_KEY,
                        f"Relationship key {key!r} in {where} is not normalised",
                        key=key,
                        where=where,
                    ))

        errors.extend(self._replay.snapshot_drift(chat))
        errors.extend(stale_milestones(self._log.narrative_events))

        last = self._log.last_message_with_events()
        if last >= 0:
            ok, detail = self._replay.verify_determinism(last, canonical_swipe(last, chat), chat)
            if not ok:
                errors.append(Error.create(ErrorCode.NON_DETERMINISTIC_REPLAY, detail))
            ok, detail = self._replay.verify_snapshot_transparency(
                last, canonical_swipe(last, chat), chat
            )
            if not ok:
                errors.append(Error.create(ErrorCode.SNAPSHOT_DRIFT, detail))

        if errors:
            logger.warning("Store verification found %d violation(s)", len(errors))
        return errors
