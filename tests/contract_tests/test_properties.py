"""
Property Tests for Store Invariants
Verifies fold determinism, snapshot transparency, initial-projection
immutability and deduplication soundness over generated histories.
"""

from dataclasses import replace

from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from chronicle.contracts.projection import RelationshipStatus
from chronicle.normalization.dedup import dedupe
from chronicle.temporal.projection import apply_state_event, fold
from chronicle.temporal.swipes import canonical_swipe, chat_from_swipes

from tests.fixtures import (
    activity,
    appeared,
    departed,
    feeling,
    make_store,
    mood,
    moved,
    outfit,
    position,
    prop,
    status,
    tavern_projection,
    time_delta,
    time_initial,
)

NAMES = ("Alice", "Bob")
PROPS = ("chair", "lantern", "mug")
MOODS = ("curious", "calm", "tired")
PLACES = ("by the hearth", "at the bar", "upstairs")
FEELINGS = ("wary", "trust", "fond")
STATUSES = tuple(RelationshipStatus)

MAX_MESSAGE = 6

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

@composite
def dedupable_events(draw):
    """Candidates the deduplication filter has an opinion on, for known characters."""
    name = draw(st.sampled_from(NAMES))
    other = "Bob" if name == "Alice" else "Alice"
    choice = draw(st.integers(min_value=0, max_value=6))
    if choice == 0:
        return prop(draw(st.sampled_from(PROPS)), removed=draw(st.booleans()))
    if choice == 1:
        return mood(name, draw(st.sampled_from(MOODS)), removed=draw(st.booleans()))
    if choice == 2:
        return position(name, draw(st.sampled_from(PLACES)))
    if choice == 3:
        return activity(name, draw(st.sampled_from((None, "drinking", "singing"))))
    if choice == 4:
        return outfit(name, "torso", draw(st.sampled_from(("linen shirt", "coat"))))
    if choice == 5:
        return feeling(name, other, draw(st.sampled_from(FEELINGS)), removed=draw(st.booleans()))
    return status(name, other, draw(st.sampled_from(STATUSES)))


@composite
def any_events(draw):
    """Any state event, including ones that always pass the filter."""
    choice = draw(st.integers(min_value=0, max_value=4))
    if choice == 0:
        return time_delta(hours=draw(st.integers(0, 5)), minutes=draw(st.integers(0, 59)))
    if choice == 1:
        return moved("Harbor District", "The Salty Gull", draw(st.sampled_from(PLACES)))
    if choice == 2:
        return appeared(draw(st.sampled_from(NAMES + ("Carol",))))
    if choice == 3:
        return departed(draw(st.sampled_from(NAMES + ("Carol",))))
    return draw(dedupable_events())


@composite
def histories(draw):
    """Batches of candidates keyed by (message, swipe), plus a chat."""
    batches = draw(st.lists(
        st.tuples(
            st.integers(min_value=0, max_value=MAX_MESSAGE),
            st.integers(min_value=0, max_value=1),
            st.lists(any_events(), min_size=1, max_size=4),
        ),
        max_size=12,
    ))
    chat = chat_from_swipes(draw(st.lists(
        st.one_of(st.none(), st.integers(min_value=0, max_value=1)),
        min_size=MAX_MESSAGE + 1,
        max_size=MAX_MESSAGE + 1,
    )))
    return batches, chat


def without_ids(events):
    return [replace(e, id="") for e in events]


def build_store(batches, chat, **config):
    store = make_store(**config)
    store.set_initial_projection(tavern_projection())
    for message_id, swipe_id, candidates in batches:
        store.add_state_events(message_id, swipe_id, candidates, chat)
    return store


# =============================================================================
# PROPERTY TESTS
# =============================================================================

@settings(deadline=None)
@given(histories())
def test_replay_is_deterministic(history):
    """Same inputs, same log (up to ids) and same projection hashes."""
    batches, chat = history
    first = build_store(batches, chat)
    second = build_store(batches, chat)

    assert without_ids(first.log.state_events) == without_ids(second.log.state_events)
    for message_id in range(MAX_MESSAGE + 1):
        swipe_id = canonical_swipe(message_id, chat)
        a = first.project(message_id, swipe_id, chat)
        b = second.project(message_id, swipe_id, chat)
        assert a.state_hash() == b.state_hash()


@settings(deadline=None)
@given(histories(), st.lists(st.integers(min_value=0, max_value=MAX_MESSAGE), max_size=3, unique=True))
def test_snapshots_are_invisible(history, boundaries):
    """The snapshot-assisted fold equals a full replay at every point."""
    batches, chat = history
    store = build_store(batches, chat)
    for chapter_index, message_id in enumerate(sorted(boundaries)):
        store.save_chapter_snapshot(
            chapter_index, message_id, canonical_swipe(message_id, chat), chat
        )

    for message_id in range(MAX_MESSAGE + 2):
        for swipe_id in (0, 1):
            assert store.project(message_id, swipe_id, chat) == store.project_full(
                message_id, swipe_id, chat
            )
    assert store.verify(chat) == []


@settings(deadline=None)
@given(histories(), st.data())
def test_initial_projection_is_never_mutated(history, data):
    """Appends, deletes and time resets never touch the starting snapshot."""
    batches, chat = history
    store = build_store(batches, chat)
    store.add_state_events(MAX_MESSAGE, 0, [time_initial()])
    live = store.log.active_state_events()
    if live:
        doomed = data.draw(st.sampled_from(live))
        store.delete_state_event(doomed.id)

    assert store.initial_projection == tavern_projection()
    assert store.project(0, 0, []) == fold(
        tavern_projection(),
        [e for e in store.log.active_state_events() if (e.message_id, e.swipe_id) == (0, 0)],
    )


@given(st.lists(dedupable_events(), max_size=8))
def test_dedup_preserves_effect(candidates):
    """Dropping candidates never changes the folded state."""
    start = tavern_projection()
    assert fold(start, dedupe(start, candidates)) == fold(start, candidates)


@given(st.lists(dedupable_events(), max_size=5), dedupable_events())
def test_applied_candidate_is_a_duplicate(history, candidate):
    """Once a candidate's effect holds, proposing it again is a no-op."""
    state = apply_state_event(fold(tavern_projection(), history), candidate)
    assert dedupe(state, [candidate]) == []
