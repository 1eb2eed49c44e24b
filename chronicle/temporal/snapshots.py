"""
Snapshot Cache
==============

Per-chapter cached projections that let a fold resume partway through
history.

INVARIANTS:
- At most one snapshot per chapter_index (saving again replaces it)
- project_optimized(...) == project(...) for every target; the cache is
  a performance path and must be invisible to observers
- projection_invalid_from only ever moves down until cleared
- A snapshot is reused only while the chat still resolves every message
  up to its own to the swipes it was taken on
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple
import logging

from ..contracts.events import StateEvent
from ..contracts.projection import ProjectedState
from .event_log import fold_order
from .projection import empty_projection, fold
from .swipes import Chat, canonical_swipe, select_timeline


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChapterSnapshot:
    """
    Projection cached at the (message, swipe) that closed a chapter.

    swipes records the swipe of every message 0..message_id the
    projection was folded over; the last entry is swipe_id. Empty for
    snapshots whose lineage is unknown, which are never reused.
    """
    chapter_index: int
    message_id: int
    swipe_id: int
    projection: ProjectedState
    swipes: Tuple[int, ...] = ()

    def matches(self, chat: Optional[Chat]) -> bool:
        """True if `chat` selects the same swipe as this snapshot at every message."""
        return bool(self.swipes) and self.swipes == timeline_swipes(self.message_id, chat)


def timeline_swipes(message_id: int, chat: Optional[Chat]) -> Tuple[int, ...]:
    """Canonical swipe of each message from 0 through message_id."""
    return tuple(canonical_swipe(m, chat) for m in range(message_id + 1))


def normalize_relationship_keys(projection: ProjectedState) -> ProjectedState:
    """Re-key relationships through each relationship's own pair key."""
    relationships = {rel.key: rel for rel in projection.relationships.values()}
    if relationships == projection.relationships:
        return projection
    return replace(projection, relationships=relationships)


class SnapshotCache:
    """
    Chapter snapshots plus the projection invalidation low-water mark.

    Snapshots are kept sorted by chapter_index.
    """

    def __init__(
        self,
        snapshots: Iterable[ChapterSnapshot] = (),
        projection_invalid_from: Optional[int] = None,
    ):
        self._snapshots: List[ChapterSnapshot] = sorted(
            snapshots, key=lambda s: s.chapter_index
        )
        self._invalid_from = projection_invalid_from

    @property
    def snapshots(self) -> List[ChapterSnapshot]:
        return list(self._snapshots)

    @property
    def projection_invalid_from(self) -> Optional[int]:
        return self._invalid_from

    def __len__(self) -> int:
        return len(self._snapshots)

    def save(
        self,
        chapter_index: int,
        message_id: int,
        swipe_id: int,
        projection: ProjectedState,
        chat: Optional[Chat] = None,
    ) -> ChapterSnapshot:
        """
        Store a snapshot, replacing any earlier one for the same chapter.

        `chat` is the chat the projection was folded under; it fixes the
        swipes of the earlier messages.
        """
        snapshot = ChapterSnapshot(
            chapter_index=chapter_index,
            message_id=message_id,
            swipe_id=swipe_id,
            projection=normalize_relationship_keys(projection),
            swipes=timeline_swipes(message_id - 1, chat) + (swipe_id,),
        )
        kept = [s for s in self._snapshots if s.chapter_index != chapter_index]
        kept.append(snapshot)
        self._snapshots = sorted(kept, key=lambda s: s.chapter_index)
        logger.info(
            "Saved snapshot for chapter %d at message %d swipe %d",
            chapter_index, message_id, swipe_id,
        )
        return snapshot

    def get(self, chapter_index: int) -> Optional[ChapterSnapshot]:
        for snapshot in self._snapshots:
            if snapshot.chapter_index == chapter_index:
                return snapshot
        return None

    def find_before(
        self,
        message_id: int,
        chat: Optional[Chat] = None,
        check_swipes: bool = False,
    ) -> Optional[ChapterSnapshot]:
        """
        Snapshot with the greatest message_id strictly below `message_id`.

        With check_swipes, snapshots whose swipe lineage differs from
        what `chat` now selects (at their own message or any earlier
        one) are skipped.
        """
        best: Optional[ChapterSnapshot] = None
        for snapshot in self._snapshots:
            if snapshot.message_id >= message_id:
                continue
            if check_swipes and not snapshot.matches(chat):
                logger.warning(
                    "Skipping snapshot for chapter %d at message %d: swipe lineage differs from chat",
                    snapshot.chapter_index, snapshot.message_id,
                )
                continue
            if best is None or snapshot.message_id > best.message_id:
                best = snapshot
        return best

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate_from(self, message_id: int) -> int:
        """
        Drop snapshots at or after message_id and lower the invalidation mark.

        Returns the number of snapshots discarded.
        """
        before = len(self._snapshots)
        self._snapshots = [s for s in self._snapshots if s.message_id < message_id]
        self.invalidate_projections_from(message_id)
        dropped = before - len(self._snapshots)
        if dropped:
            logger.info("Invalidated %d snapshot(s) from message %d", dropped, message_id)
        return dropped

    def invalidate_projections_from(self, message_id: int) -> None:
        """Lower (never raise) the point from which projections are stale."""
        if self._invalid_from is None or message_id < self._invalid_from:
            self._invalid_from = message_id

    def is_invalidated(self, message_id: int) -> bool:
        return self._invalid_from is not None and message_id >= self._invalid_from

    def clear_invalidation(self) -> None:
        self._invalid_from = None


def project_optimized(
    initial: Optional[ProjectedState],
    events: Iterable[StateEvent],
    target_message_id: int,
    target_swipe_id: int,
    chat: Optional[Chat],
    cache: SnapshotCache,
) -> ProjectedState:
    """
    Same result as projection.project, resuming from the nearest usable
    snapshot when one exists.
    """
    snapshot = cache.find_before(target_message_id, chat, check_swipes=True)
    if snapshot is None:
        start = initial or empty_projection()
        from_message_id = 0
    else:
        start = snapshot.projection
        from_message_id = snapshot.message_id + 1
        logger.debug(
            "Resuming fold from chapter %d snapshot at message %d",
            snapshot.chapter_index, snapshot.message_id,
        )

    selected = select_timeline(
        events, target_message_id, target_swipe_id, chat, from_message_id=from_message_id
    )
    return fold(start, fold_order(selected))
