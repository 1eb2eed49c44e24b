"""
Narrative Contracts
===================

Narrative time, scene vocabulary and witnessed scene beats.

A NarrativeEvent is one beat of the story. For every character pair it
touches it may carry "first occurrence" milestone flags (first_for).
Those flags always sit on the EARLIEST live event whose category tags
justify them; see core.milestones for the relocation algorithm.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .pairs import Pair, pair_key, sort_pair


# =============================================================================
# NARRATIVE TIME
# =============================================================================

DAYS_OF_WEEK: Tuple[str, ...] = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)


@dataclass(frozen=True)
class NarrativeDateTime:
    """In-story calendar time. Distinct from event creation timestamps."""
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    def __post_init__(self) -> None:
        # Raises ValueError for dates the calendar does not have (month 13, Feb 30).
        self.to_datetime()

    @property
    def day_of_week(self) -> str:
        return DAYS_OF_WEEK[self.to_datetime().weekday()]

    def to_datetime(self) -> datetime:
        return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)

    @staticmethod
    def from_datetime(value: datetime) -> NarrativeDateTime:
        return NarrativeDateTime(
            year=value.year,
            month=value.month,
            day=value.day,
            hour=value.hour,
            minute=value.minute,
            second=value.second,
        )


@dataclass(frozen=True)
class TimeDelta:
    """Elapsed narrative time between two beats."""
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def total_seconds(self) -> int:
        return ((self.days * 24 + self.hours) * 60 + self.minutes) * 60 + self.seconds

    @staticmethod
    def from_seconds(total: int) -> TimeDelta:
        days, rest = divmod(total, 86400)
        hours, rest = divmod(rest, 3600)
        minutes, seconds = divmod(rest, 60)
        return TimeDelta(days=days, hours=hours, minutes=minutes, seconds=seconds)


# =============================================================================
# SCENE VOCABULARY
# =============================================================================

class TensionLevel(Enum):
    RELAXED = "relaxed"
    AWARE = "aware"
    GUARDED = "guarded"
    TENSE = "tense"
    CHARGED = "charged"
    VOLATILE = "volatile"
    EXPLOSIVE = "explosive"


class TensionType(Enum):
    CONFRONTATION = "confrontation"
    INTIMATE = "intimate"
    VULNERABLE = "vulnerable"
    CELEBRATORY = "celebratory"
    NEGOTIATION = "negotiation"
    SUSPENSE = "suspense"
    CONVERSATION = "conversation"


EVENT_TYPES: FrozenSet[str] = frozenset({
    "conversation", "confession", "argument", "negotiation",
    "discovery", "secret_shared", "secret_revealed",
    "emotional", "emotionally_intimate", "supportive", "rejection", "comfort",
    "apology", "forgiveness",
    "laugh", "gift", "compliment", "tease", "flirt", "date", "i_love_you",
    "sleepover", "shared_meal", "shared_activity",
    "intimate_touch", "intimate_kiss", "intimate_embrace", "intimate_heated",
    "intimate_foreplay", "intimate_oral", "intimate_manual",
    "intimate_penetrative", "intimate_climax",
    "action", "combat", "danger",
    "decision", "promise", "betrayal", "lied",
    "exclusivity", "marriage", "pregnancy", "childbirth",
    "social", "achievement", "helped", "common_interest", "outing",
    "defended", "crisis_together", "vulnerability", "shared_vulnerability",
    "entrusted",
})

# Category tag -> milestone it can establish. Several tags may share one milestone.
EVENT_TYPE_TO_MILESTONE: Dict[str, str] = {
    # Bonding
    "laugh": "first_laugh",
    "gift": "first_gift",
    "date": "first_date",
    "i_love_you": "first_i_love_you",
    "sleepover": "first_sleepover",
    "shared_meal": "first_shared_meal",
    "shared_activity": "first_shared_activity",
    "compliment": "first_compliment",
    "tease": "first_tease",
    "flirt": "first_flirt",
    "helped": "first_helped",
    "common_interest": "first_common_interest",
    "outing": "first_outing",
    # Physical intimacy
    "intimate_touch": "first_touch",
    "intimate_kiss": "first_kiss",
    "intimate_embrace": "first_embrace",
    "intimate_heated": "first_heated",
    "intimate_foreplay": "first_foreplay",
    "intimate_oral": "first_oral",
    "intimate_manual": "first_manual",
    "intimate_penetrative": "first_penetrative",
    "intimate_climax": "first_climax",
    # Emotional
    "emotionally_intimate": "emotional_intimacy",
    "confession": "confession",
    "secret_shared": "secret_shared",
    "secret_revealed": "secret_revealed",
    "supportive": "first_support",
    "comfort": "first_comfort",
    "forgiveness": "reconciliation",
    "defended": "defended",
    "crisis_together": "crisis_together",
    "shared_vulnerability": "first_vulnerability",
    "entrusted": "trusted_with_task",
    # Commitment
    "promise": "promise_made",
    "betrayal": "betrayal",
    # Life events
    "exclusivity": "promised_exclusivity",
    "marriage": "marriage",
    "pregnancy": "pregnancy",
    "childbirth": "had_child",
    # Conflict
    "argument": "first_conflict",
    "combat": "first_conflict",
}

MILESTONE_TYPES: FrozenSet[str] = frozenset(EVENT_TYPE_TO_MILESTONE.values()) | {
    "first_meeting",
    "major_argument",
    "promise_broken",
}


# =============================================================================
# NARRATIVE EVENTS
# =============================================================================

@dataclass(frozen=True)
class AffectedPair:
    """
    One character pair touched by a narrative event.

    The pair is always stored name-sorted. milestone_descriptions is a
    tuple of (milestone_type, text) entries.
    """
    pair: Pair
    first_for: Tuple[str, ...] = ()
    milestone_descriptions: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'pair', sort_pair(*self.pair))

    @property
    def key(self) -> str:
        return pair_key(*self.pair)

    def description_for(self, milestone_type: str) -> Optional[str]:
        for mt, text in self.milestone_descriptions:
            if mt == milestone_type:
                return text
        return None


@dataclass(frozen=True, kw_only=True)
class NarrativeEvent:
    """
    A witnessed scene beat.

    The id and timestamp are assigned by the event log on append.
    chapter_index is None while the beat belongs to the open chapter.
    """
    id: str = ""
    message_id: int
    swipe_id: int = 0
    timestamp: int = 0
    deleted: bool = False

    summary: str = ""
    event_types: Tuple[str, ...] = ()
    tension_level: Optional[TensionLevel] = None
    tension_type: Optional[TensionType] = None
    witnesses: Tuple[str, ...] = ()
    location: str = ""
    narrative_timestamp: Optional[NarrativeDateTime] = None
    affected_pairs: Tuple[AffectedPair, ...] = field(default_factory=tuple)
    chapter_index: Optional[int] = None

    def pair_entry(self, key: str) -> Optional[AffectedPair]:
        """The affected-pair entry for a normalized pair key, if any."""
        for ap in self.affected_pairs:
            if ap.key == key:
                return ap
        return None

    def touches(self, key: str) -> bool:
        return self.pair_entry(key) is not None

    def milestone_candidates(self) -> Tuple[str, ...]:
        """Milestone types this event's category tags can justify, in tag order."""
        seen = []
        for event_type in self.event_types:
            milestone = EVENT_TYPE_TO_MILESTONE.get(event_type)
            if milestone and milestone not in seen:
                seen.append(milestone)
        return tuple(seen)
