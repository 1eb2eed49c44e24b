"""
Storage and Serialization Tests
===============================

INVARIANTS TESTED:
1. A saved store loads back value-equal
2. Unknown event kinds survive a save/load cycle
3. Unreadable stores return an Error instead of raising
4. File writes are atomic (no temp files left behind)
"""

import json
from dataclasses import replace

import pytest

from chronicle.contracts.base import ErrorCode
from chronicle.contracts.events import UnknownStateEvent
from chronicle.contracts.narrative import NarrativeDateTime, TensionLevel, TensionType
from chronicle.contracts.projection import RelationshipStatus
from chronicle.domain.serialization import (
    STORE_VERSION,
    StoreDocument,
    dumps,
    narrative_event_from_dict,
    narrative_event_to_dict,
    state_event_from_dict,
    state_event_to_dict,
)
from chronicle.storage import (
    FileStorageBackend,
    InMemoryStorageBackend,
    StorageConfig,
    create_backend,
)
from chronicle.temporal.snapshots import ChapterSnapshot

from tests.fixtures import (
    appeared,
    beat,
    feeling,
    make_log,
    moved,
    outfit,
    prop,
    status,
    tavern_projection,
    time_delta,
    time_initial,
)


def sample_document() -> StoreDocument:
    log = make_log()
    log.append_state_events([
        time_initial(message_id=0),
        time_delta(hours=1, message_id=1),
        moved("Docks", "Pier 4", "end of the pier", props=("rope",), message_id=1),
        prop("crate", message_id=2, swipe_id=1),
        appeared("Carol", "on a crate", "fishing", message_id=2),
        outfit("Carol", "head", None, previous="hat", message_id=3),
        feeling("Carol", "Alice", "suspicion", message_id=3),
        status("Carol", "Alice", RelationshipStatus.STRAINED, message_id=4),
    ])
    log.delete_state_event(log.state_events[3].id)
    narrative = beat(
        ["argument"], pairs=[("Carol", "Alice")], message_id=4,
        first_for=("first_conflict",), descriptions=(("first_conflict", "Over the crate"),),
    )
    log.append_narrative_event(replace(
        narrative,
        tension_level=TensionLevel.TENSE,
        tension_type=TensionType.CONFRONTATION,
        witnesses=("Bob",),
        narrative_timestamp=NarrativeDateTime(2024, 3, 16, 0, 30),
        chapter_index=0,
    ))
    return StoreDocument(
        initial_projection=tavern_projection(),
        state_events=log.state_events,
        narrative_events=log.narrative_events,
        chapter_snapshots=(ChapterSnapshot(0, 2, 0, tavern_projection(), swipes=(0, 1, 0)),),
        projection_invalid_from=3,
    )


class TestDocument:

    def test_document_round_trip(self):
        document = sample_document()
        raw = json.loads(json.dumps(document.to_dict()))
        assert raw["version"] == STORE_VERSION
        assert StoreDocument.from_dict(raw) == document

    def test_keys_are_snake_case(self):
        raw = sample_document().to_dict()
        event = raw["state_events"][0]
        assert set(event) >= {"id", "message_id", "swipe_id", "timestamp", "deleted", "kind"}

    def test_outfit_null_survives(self):
        raw = state_event_to_dict(outfit("Carol", "head", None, previous="hat"))
        assert raw["new_value"] is None
        assert state_event_from_dict(raw).previous_value == "hat"

    def test_unknown_kind_is_preserved(self):
        raw = {"id": "x1", "message_id": 3, "kind": "weather", "subkind": "rain", "intensity": 4}
        event = state_event_from_dict(raw)
        assert isinstance(event, UnknownStateEvent)
        assert event.payload == {"intensity": 4}
        assert state_event_to_dict(event) == {
            "id": "x1", "message_id": 3, "swipe_id": 0, "timestamp": 0, "deleted": False,
            "kind": "weather", "subkind": "rain", "intensity": 4,
        }

    def test_unknown_subkind_of_known_kind_is_preserved(self):
        event = state_event_from_dict({"message_id": 1, "kind": "character", "subkind": "teleported"})
        assert isinstance(event, UnknownStateEvent)
        assert event.raw_kind == "character"

    def test_narrative_event_round_trip(self):
        event = sample_document().narrative_events[0]
        assert narrative_event_from_dict(narrative_event_to_dict(event)) == event

    def test_version_mismatch_is_rejected(self):
        with pytest.raises(ValueError):
            StoreDocument.from_dict({"version": 99})

    def test_empty_document(self):
        assert StoreDocument.from_dict({}) == StoreDocument()

    def test_snapshot_without_lineage_loads(self):
        raw = sample_document().to_dict()
        del raw["chapter_snapshots"][0]["swipes"]
        assert StoreDocument.from_dict(raw).chapter_snapshots[0].swipes == ()

    def test_impossible_time_initial_is_rejected(self):
        raw = {"message_id": 0, "kind": "time_initial", "initial_time": {"year": 2024, "month": 2, "day": 30}}
        with pytest.raises(ValueError):
            state_event_from_dict(raw)

    def test_dumps_writes_plain_documents(self):
        document = sample_document()
        assert StoreDocument.from_dict(json.loads(dumps(document.to_dict()))) == document
        with pytest.raises(TypeError):
            dumps({"status": RelationshipStatus.FRIENDLY})
        with pytest.raises(ValueError):
            dumps({"hours": float("nan")})


class TestInMemoryBackend:

    def test_empty_store_loads_empty(self):
        result = InMemoryStorageBackend().load()
        assert result.success
        assert result.document == StoreDocument()

    def test_save_then_load(self):
        backend = InMemoryStorageBackend()
        document = sample_document()
        assert backend.save(document).success
        assert isinstance(backend.raw, dict)
        assert backend.load().document == document

    def test_corrupt_raw_returns_error(self):
        result = InMemoryStorageBackend({"state_events": [{"kind": "time"}]}).load()
        assert not result.success
        assert result.error.code is ErrorCode.STORE_CORRUPTION

    def test_impossible_date_in_log_is_corruption(self):
        raw = sample_document().to_dict()
        event = next(e for e in raw["state_events"] if e["kind"] == "time_initial")
        event["initial_time"] = {"year": 2024, "month": 13, "day": 40}
        result = InMemoryStorageBackend(raw).load()
        assert not result.success
        assert result.error.code is ErrorCode.STORE_CORRUPTION


class TestFileBackend:

    def test_missing_file_loads_empty(self, tmp_path):
        result = FileStorageBackend(str(tmp_path / "nested" / "store.json")).load()
        assert result.success
        assert result.document == StoreDocument()

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "store.json"
        backend = FileStorageBackend(str(path))
        document = sample_document()

        assert backend.save(document).success
        assert backend.exists()
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
        assert FileStorageBackend(str(path)).load().document == document

    def test_invalid_json_returns_error(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        result = FileStorageBackend(str(path)).load()
        assert not result.success
        assert result.error.code is ErrorCode.STORE_CORRUPTION

    def test_structurally_invalid_returns_error(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"initial_projection": {"characters": {}}}), encoding="utf-8")
        result = FileStorageBackend(str(path)).load()
        assert not result.success
        assert result.error.code is ErrorCode.STORE_CORRUPTION


class TestBackendFactory:

    def test_defaults_to_memory(self):
        assert isinstance(create_backend(), InMemoryStorageBackend)
        assert isinstance(create_backend(StorageConfig(backend_type="file")), InMemoryStorageBackend)

    def test_file_backend(self, tmp_path):
        backend = create_backend(StorageConfig(backend_type="file", path=str(tmp_path / "s.json")))
        assert isinstance(backend, FileStorageBackend)
