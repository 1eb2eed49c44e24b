"""
Replay Engine
=============

Point-in-time projection and replay verification.

INVARIANT: Replay is deterministic.
Same initial projection + same live events + same target = same state.

VERIFICATION:
1. Determinism: two full replays hash identically
2. Snapshot transparency: the snapshot path equals full replay
3. Snapshot drift: every cached snapshot still equals a fresh replay
   at its own coordinate
"""

from __future__ import annotations
from typing import Callable, List, Optional, Sequence, Tuple

from ..contracts.base import Error, ErrorCode
from ..contracts.events import StateEvent
from ..contracts.projection import ProjectedState
from .snapshots import SnapshotCache, project_optimized
from .projection import project
from .swipes import Chat, chat_from_swipes


class ReplayEngine:
    """
    Projects and verifies over one store's current contents.

    GUARANTEES:
    ===========
    1. Every read goes through the live log; nothing is cached here
    2. Verification never mutates the log or the snapshot cache
    """

    def __init__(
        self,
        initial: Callable[[], Optional[ProjectedState]],
        events: Callable[[], Sequence[StateEvent]],
        cache: SnapshotCache,
    ):
        self._initial = initial
        self._events = events
        self._cache = cache

    def replay_full(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> ProjectedState:
        return project(self._initial(), self._events(), message_id, swipe_id, chat)

    def replay_optimized(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> ProjectedState:
        return project_optimized(
            self._initial(), self._events(), message_id, swipe_id, chat, self._cache
        )

    def verify_determinism(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Replay twice and compare.

        Returns (is_deterministic, difference_description).
        """
        first = self.replay_full(message_id, swipe_id, chat)
        second = self.replay_full(message_id, swipe_id, chat)
        if first != second:
            return (False, f"Hash mismatch: {first.state_hash()} != {second.state_hash()}")
        return (True, None)

    def verify_snapshot_transparency(
        self, message_id: int, swipe_id: int, chat: Optional[Chat] = None
    ) -> Tuple[bool, Optional[str]]:
        """Compare the snapshot-assisted fold with a full replay."""
        full = self.replay_full(message_id, swipe_id, chat)
        optimized = self.replay_optimized(message_id, swipe_id, chat)
        if full != optimized:
            return (
                False,
                f"Snapshot path diverged at message {message_id} swipe {swipe_id}: "
                f"{optimized.state_hash()} != {full.state_hash()}",
            )
        return (True, None)

    def snapshot_drift(self, chat: Optional[Chat] = None) -> List[Error]:
        """
        Every cached snapshot that no longer matches a fresh replay.

        Snapshots are replayed along their recorded swipe lineage;
        `chat` is used only for snapshots without one.
        """
        errors = []
        for snapshot in self._cache.snapshots:
            lineage = chat_from_swipes(snapshot.swipes) if snapshot.swipes else chat
            fresh = self.replay_full(snapshot.message_id, snapshot.swipe_id, lineage)
            if fresh != snapshot.projection:
                errors.append(Error.create(
                    ErrorCode.SNAPSHOT_DRIFT,
                    f"Snapshot for chapter {snapshot.chapter_index} differs from replay",
                    chapter_index=snapshot.chapter_index,
                    message_id=snapshot.message_id,
                    swipe_id=snapshot.swipe_id,
                ))
        return errors
