"""
Initial Projection and Clock Tests
==================================

The initial projection fails fast on bad structure and is never
modified by later folds.
"""

import pytest
from dataclasses import replace

from chronicle.contracts.base import ErrorCode, InvalidProjectionError
from chronicle.contracts.projection import ProjectedCharacter, ProjectedRelationship, ProjectedState
from chronicle.domain.serialization import projection_to_dict
from chronicle.temporal.clock import SequenceClock
from chronicle.temporal.initial import InitialProjectionHolder, validate_initial_projection

from tests.fixtures import tavern_projection


class TestValidation:

    def test_accepts_projection(self):
        stored = validate_initial_projection(tavern_projection())
        assert stored == tavern_projection()

    def test_accepts_serialized_dict(self):
        stored = validate_initial_projection(projection_to_dict(tavern_projection()))
        assert stored == tavern_projection()

    def test_does_not_share_caller_containers(self):
        outfit = {"torso": "linen shirt"}
        characters = {"Alice": ProjectedCharacter(name="Alice", outfit=outfit)}
        stored = validate_initial_projection(ProjectedState(characters=characters))
        characters["Mallory"] = ProjectedCharacter(name="Mallory")
        outfit["torso"] = "coat"
        assert "Mallory" not in stored.characters
        assert stored.characters["Alice"].outfit == {"torso": "linen shirt"}

    def test_stored_containers_are_read_only(self):
        stored = validate_initial_projection(tavern_projection())
        with pytest.raises(TypeError):
            stored.characters["Mallory"] = ProjectedCharacter(name="Mallory")
        with pytest.raises(TypeError):
            stored.characters["Alice"].outfit["torso"] = "coat"

    def test_impossible_date_is_rejected(self):
        raw = projection_to_dict(tavern_projection())
        raw["time"] = {"year": 2024, "month": 2, "day": 30}
        with pytest.raises(InvalidProjectionError) as info:
            validate_initial_projection(raw)
        assert "day is out of range" in info.value.error.message

    def test_renormalises_relationship_keys(self):
        source = ProjectedState(relationships={"B|A": ProjectedRelationship(pair=("B", "A"))})
        assert list(validate_initial_projection(source).relationships) == ["a|b"]

    @pytest.mark.parametrize("missing", ["characters", "relationships"])
    def test_missing_container_is_fatal(self, missing):
        raw = projection_to_dict(tavern_projection())
        del raw[missing]
        with pytest.raises(InvalidProjectionError) as info:
            validate_initial_projection(raw)
        assert info.value.error.code is ErrorCode.INVALID_INITIAL_PROJECTION

    def test_list_instead_of_tuple_is_rejected(self):
        bad = replace(tavern_projection(), characters={"Alice": ProjectedCharacter(name="Alice", mood=["x"])})
        with pytest.raises(InvalidProjectionError):
            validate_initial_projection(bad)

    def test_not_a_projection(self):
        with pytest.raises(InvalidProjectionError):
            validate_initial_projection("nonsense")


class TestHolder:

    def test_starts_empty(self):
        holder = InitialProjectionHolder()
        assert holder.get() is None
        assert not holder.is_set()

    def test_set_and_replace(self):
        holder = InitialProjectionHolder()
        holder.set(tavern_projection())
        assert holder.is_set()
        holder.set(ProjectedState())
        assert holder.get() == ProjectedState()

    def test_invalid_set_keeps_previous(self):
        holder = InitialProjectionHolder(tavern_projection())
        with pytest.raises(InvalidProjectionError):
            holder.set({"characters": {}})
        assert holder.get() == tavern_projection()


class TestClocks:

    def test_sequence_clock_is_strictly_increasing(self):
        clock = SequenceClock(start=10, step=5)
        assert [clock(), clock(), clock()] == [15, 20, 25]
        assert clock.last == 25
