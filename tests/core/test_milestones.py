"""
Milestone Recomputation Tests
=============================

INVARIANTS TESTED:
1. A derivable milestone sits on the earliest live qualifying event
2. Deleted events never hold or block a milestone
3. Hand-set milestones are left in place
4. Descriptions survive only while their flag stays on the same event
"""

from dataclasses import replace

from chronicle.contracts.base import ErrorCode
from chronicle.contracts.projection import RelationshipStatus
from chronicle.core.milestones import (
    derive_relationship,
    milestones_for_event,
    milestones_for_pair,
    recompute_first_for,
    stale_milestones,
    status_from_milestones,
)

from tests.fixtures import beat, make_log


def first_for(event, pair=("Alice", "Bob")):
    entry = event.pair_entry("|".join(p.lower() for p in pair))
    return entry.first_for if entry else ()


class TestRelocation:

    def test_flag_moves_to_earlier_event(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["conversation"], message_id=1))
        e2 = log.append_narrative_event(beat(
            ["intimate_kiss"], message_id=2,
            first_for=("first_kiss",), descriptions=(("first_kiss", "Under the lanterns"),),
        ))
        edited = log.update_narrative_event(e1.id, event_types=("conversation", "intimate_kiss"))

        new1, new2 = recompute_first_for([edited, e2])

        assert first_for(new1) == ("first_kiss",)
        assert first_for(new2) == ()
        assert new1.pair_entry("alice|bob").description_for("first_kiss") is None
        assert new2.pair_entry("alice|bob").milestone_descriptions == ()

    def test_flag_moves_later_when_earlier_tag_removed(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], message_id=1, first_for=("first_laugh",)))
        e2 = log.append_narrative_event(beat(["laugh"], message_id=3))
        edited = replace(e1, event_types=())

        new1, new2 = recompute_first_for([edited, e2])
        assert first_for(new1) == ()
        assert first_for(new2) == ("first_laugh",)

    def test_order_is_by_message_not_creation(self):
        log = make_log()
        late = log.append_narrative_event(beat(["gift"], message_id=8, first_for=("first_gift",)))
        early = log.append_narrative_event(beat(["gift"], message_id=2))

        new_late, new_early = recompute_first_for([late, early])
        assert first_for(new_early) == ("first_gift",)
        assert first_for(new_late) == ()

    def test_deleted_events_are_ignored(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], message_id=1, first_for=("first_laugh",)))
        e2 = log.append_narrative_event(beat(["laugh"], message_id=2))
        gone = replace(e1, deleted=True)

        new1, new2 = recompute_first_for([gone, e2])
        assert new1 is gone
        assert first_for(new2) == ("first_laugh",)

    def test_pairs_are_independent(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], pairs=[("Alice", "Bob")], message_id=1))
        e2 = log.append_narrative_event(beat(["laugh"], pairs=[("Alice", "Bob"), ("Alice", "Carol")], message_id=2))

        new1, new2 = recompute_first_for([e1, e2])
        assert first_for(new1) == ("first_laugh",)
        assert first_for(new2) == ()
        assert first_for(new2, ("Alice", "Carol")) == ("first_laugh",)

    def test_hand_set_milestones_stay(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["conversation"], message_id=1, first_for=("first_meeting",)))
        (new1,) = recompute_first_for([e1])
        assert first_for(new1) == ("first_meeting",)

    def test_one_event_can_earn_several_milestones(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh", "gift", "argument", "combat"], message_id=1))
        (new1,) = recompute_first_for([e1])
        assert first_for(new1) == ("first_laugh", "first_gift", "first_conflict")


class TestScopedRecompute:

    def test_events_before_start_keep_and_seed_flags(self):
        log = make_log()
        # Stored flag is wrong on purpose; it is before the recompute window.
        e1 = log.append_narrative_event(beat(["laugh"], message_id=1))
        e2 = log.append_narrative_event(beat(["laugh"], message_id=2, first_for=("first_laugh",)))
        e3 = log.append_narrative_event(beat(["laugh"], message_id=5))

        new1, new2, new3 = recompute_first_for([e1, e2, e3], from_message_id=3)
        assert new1 is e1 and new2 is e2
        assert first_for(new3) == ()

    def test_only_requested_pairs_change(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], pairs=[("Alice", "Bob"), ("Carol", "Dan")], message_id=1))
        (new1,) = recompute_first_for([e1], affected_pairs=["ALICE|BOB"])
        assert first_for(new1) == ("first_laugh",)
        assert first_for(new1, ("Carol", "Dan")) == ()


class TestStaleDetection:

    def test_reports_misplaced_flags(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], message_id=1))
        e2 = log.append_narrative_event(beat(["laugh"], message_id=2, first_for=("first_laugh",)))
        errors = stale_milestones([e1, e2])
        assert {e.code for e in errors} == {ErrorCode.STALE_MILESTONE}
        assert len(errors) == 2

    def test_clean_log_has_no_errors(self):
        log = make_log()
        events = recompute_first_for([log.append_narrative_event(beat(["laugh"], message_id=1))])
        assert stale_milestones(events) == []


class TestReadSide:

    def test_milestones_for_pair_and_event(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(
            ["laugh"], pairs=[("Bob", "Alice")], message_id=1,
            first_for=("first_laugh",), descriptions=(("first_laugh", "The goat incident"),),
        ))
        milestones = milestones_for_pair(log.narrative_events, "bob", "alice")
        assert [(m.type, m.event_id, m.description) for m in milestones] == [
            ("first_laugh", e1.id, "The goat incident"),
        ]
        assert milestones_for_event(log.narrative_events, e1.id)[0].pair == ("Alice", "Bob")
        assert milestones_for_event(log.narrative_events, "missing") == []

    def test_status_precedence(self):
        assert status_from_milestones([]) is RelationshipStatus.STRANGERS
        assert status_from_milestones(["first_meeting"]) is RelationshipStatus.ACQUAINTANCES
        assert status_from_milestones(["first_conflict"]) is RelationshipStatus.STRAINED
        assert status_from_milestones(["betrayal"]) is RelationshipStatus.HOSTILE
        assert status_from_milestones(["betrayal", "reconciliation"]) is RelationshipStatus.STRAINED
        assert status_from_milestones(["first_laugh", "betrayal"]) is RelationshipStatus.FRIENDLY
        assert status_from_milestones(["first_kiss", "first_laugh"]) is RelationshipStatus.CLOSE
        assert status_from_milestones(["marriage", "first_kiss"]) is RelationshipStatus.INTIMATE

    def test_derive_relationship(self):
        log = make_log()
        e1 = log.append_narrative_event(beat(["laugh"], message_id=1, first_for=("first_laugh",)))
        log.append_narrative_event(beat(["intimate_kiss"], message_id=2, first_for=("first_kiss",)))
        derived = derive_relationship(log.narrative_events, "Bob", "Alice")
        assert derived.pair == ("Alice", "Bob")
        assert derived.status is RelationshipStatus.CLOSE
        assert derived.milestone_event_ids[0] == e1.id
        assert len(derived.milestone_event_ids) == 2
