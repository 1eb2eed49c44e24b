"""
Forensic CLI Tests
"""

import json

import pytest

from chronicle.engine import NarrativeStore, StoreConfig
from chronicle.forensic import main

from tests.fixtures import appeared, beat, mood, tavern_projection


@pytest.fixture
def store_path(tmp_path):
    path = str(tmp_path / "store.json")
    store = NarrativeStore.open(path)
    store.set_initial_projection(tavern_projection())
    (calm,) = store.add_state_events(1, 0, [mood("Alice", "calm")])
    store.add_state_events(2, 0, [appeared("Carol")])
    store.add_state_events(2, 1, [appeared("Dan")])
    store.delete_state_event(calm.id)
    store.add_narrative_events(2, 0, [beat(["gift"])])
    store.add_narrative_events(1, 0, [beat(["conversation"])])
    assert store.save().success
    return path


@pytest.fixture
def stale_store_path(tmp_path):
    path = str(tmp_path / "stale.json")
    store = NarrativeStore.open(path, config=StoreConfig(auto_recompute_milestones=False))
    store.add_narrative_events(1, 0, [beat(["laugh"])])
    assert store.save().success
    return path


class TestVerify:

    def test_clean_store_passes(self, store_path, capsys):
        assert main([store_path, "verify"]) == 0
        assert "[PASS]" in capsys.readouterr().out

    def test_stale_store_fails(self, stale_store_path, capsys):
        assert main([stale_store_path, "verify"]) == 1
        out = capsys.readouterr().out
        assert "[FAIL] STALE_MILESTONE" in out

    def test_missing_store(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.json"), "verify"]) == 1
        assert "No store" in capsys.readouterr().out

    def test_corrupt_store(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        assert main([str(path), "verify"]) == 1
        assert "Cannot read store" in capsys.readouterr().out


class TestDumps:

    def test_log_hides_deleted_by_default(self, store_path, capsys):
        assert main([store_path, "log"]) == 0
        out = capsys.readouterr().out
        assert "[DELETED]" not in out
        assert "character" in out

    def test_log_all(self, store_path, capsys):
        assert main([store_path, "log", "--all"]) == 0
        assert "[DELETED]" in capsys.readouterr().out

    def test_state_at_last_message(self, store_path, capsys):
        assert main([store_path, "state"]) == 0
        header, body = capsys.readouterr().out.split("\n", 1)
        assert header.startswith("# message 2 swipe 0 hash ")
        assert set(json.loads(body)["characters"]) == {"Alice", "Bob", "Carol"}

    def test_state_follows_chat(self, store_path, capsys):
        assert main([store_path, "--chat", "0,0,1", "state", "--message", "2"]) == 0
        header, body = capsys.readouterr().out.split("\n", 1)
        assert header.startswith("# message 2 swipe 1 ")
        assert "Dan" in json.loads(body)["characters"]

    def test_milestones(self, store_path, capsys):
        assert main([store_path, "milestones", "--pair", "Bob", "Alice"]) == 0
        out = capsys.readouterr().out
        assert "status=friendly" in out
        assert "first_gift" in out


class TestArguments:

    def test_no_command(self, store_path, capsys):
        assert main([store_path]) == 2

    def test_invalid_chat(self, store_path, capsys):
        assert main([store_path, "--chat", "x", "verify"]) == 2
        assert "Invalid --chat" in capsys.readouterr().out

    def test_pair_is_required(self, store_path):
        with pytest.raises(SystemExit):
            main([store_path, "milestones"])
