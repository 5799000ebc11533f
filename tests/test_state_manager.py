"""
Tests for channel state persistence (file store and in-memory store)
"""
import json
import os
import stat
from datetime import timedelta
from unittest.mock import patch

import pytest

from stream_monitor.errors import PersistenceError
from stream_monitor.models import ChannelState, ChannelStatus, PollResult, Segment
from stream_monitor.state_machine import ChannelStateMachine
from stream_monitor.state_manager import MemoryStateManager, StateManager, create_state_manager


@pytest.fixture
def pending_state(t0, minute):
    return ChannelState(
        status=ChannelStatus.PENDING_OFFLINE,
        current_game_id="2",
        current_game_name="B",
        stream_started_at=t0,
        grace_deadline=t0 + 4 * minute,
        segments=[Segment("1", "A", t0, t0 + minute), Segment("2", "B", t0 + minute)],
    )


@pytest.fixture(params=["file", "memory"])
def store(request, tmp_path):
    if request.param == "file":
        return StateManager(str(tmp_path / "cache"))
    return MemoryStateManager()


class TestStoreInterface:
    def test_empty_store_loads_nothing(self, store):
        assert store.load() == {}

    def test_save_then_load_is_identical(self, store, pending_state):
        store.save("alpha", pending_state)
        assert store.load() == {"alpha": pending_state}

    def test_save_overwrites(self, store, pending_state):
        store.save("alpha", pending_state)
        store.save("alpha", ChannelState())
        assert store.load() == {"alpha": ChannelState()}

    def test_remove(self, store, pending_state):
        store.save("alpha", pending_state)
        store.save("bravo", ChannelState())
        store.remove("alpha")
        store.remove("missing")
        assert list(store.load()) == ["bravo"]

    def test_restart_gives_same_transition(self, store, pending_state, t0, minute):
        machine = ChannelStateMachine(timedelta(minutes=2))
        poll = PollResult("alpha", False)
        now = t0 + 5 * minute

        store.save("alpha", pending_state)
        restored = store.load()["alpha"]

        assert machine.advance(restored, poll, now) == machine.advance(pending_state, poll, now)


class TestFileStore:
    def test_snapshot_schema(self, tmp_path, pending_state):
        manager = StateManager(str(tmp_path))
        manager.save("alpha", pending_state)

        with open(tmp_path / "alpha.json", encoding="utf-8") as f:
            data = json.load(f)

        assert data["status"] == "pending_offline"
        assert data["currentGameId"] == "2"
        assert data["currentGameName"] == "B"
        assert data["streamStartedAt"] == "2024-05-01T18:00:00+00:00"
        assert data["segments"][0] == {
            "gameId": "1",
            "gameName": "A",
            "startedAt": "2024-05-01T18:00:00+00:00",
            "endedAt": "2024-05-01T18:01:00+00:00",
        }
        assert data["segments"][1]["endedAt"] is None

    def test_no_partial_file_left_behind(self, tmp_path, pending_state):
        manager = StateManager(str(tmp_path))
        manager.save("alpha", pending_state)
        assert sorted(os.listdir(tmp_path)) == ["alpha.json"]

    def test_directory_is_synced_after_rename(self, tmp_path, pending_state):
        manager = StateManager(str(tmp_path))
        synced = []
        real_fsync = os.fsync

        def fsync(fd):
            synced.append(stat.S_ISDIR(os.fstat(fd).st_mode))
            real_fsync(fd)

        with patch("stream_monitor.state_manager.os.fsync", side_effect=fsync):
            manager.save("alpha", pending_state)

        assert synced == [False, True]

    def test_directory_sync_failure_is_persistence_error(self, tmp_path, pending_state):
        manager = StateManager(str(tmp_path))
        with patch.object(StateManager, "_sync_directory", side_effect=OSError("EIO")):
            with pytest.raises(PersistenceError):
                manager.save("alpha", pending_state)

    def test_creates_directory(self, tmp_path):
        path = tmp_path / "nested" / "cache"
        StateManager(str(path))
        assert path.is_dir()

    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        '{"status": "streaming"}',
        '{"status": "offline", "segments": [{"gameId": "1", "gameName": "A", '
        '"startedAt": "2024-05-01T18:00:00+00:00", "endedAt": null}]}',
        '{"status": "live", "segments": []}',
        '{"status": "pending_offline", "segments": [{"gameId": "1", "gameName": "A", '
        '"startedAt": "2024-05-01T18:00:00+00:00"}]}',
        '{"status": "live", "segments": [{"gameId": "1", "startedAt": "yesterday"}]}',
    ])
    def test_corrupt_entry_degrades_to_offline(self, tmp_path, pending_state, content):
        manager = StateManager(str(tmp_path))
        manager.save("bravo", pending_state)
        (tmp_path / "alpha.json").write_text(content, encoding="utf-8")

        states = manager.load()

        assert states["alpha"] == ChannelState()
        assert states["bravo"] == pending_state

    def test_ignores_partial_and_foreign_files(self, tmp_path):
        (tmp_path / "alpha-part.json").write_text("{", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("hello", encoding="utf-8")
        assert StateManager(str(tmp_path)).load() == {}

    def test_missing_directory_is_cold_start(self, tmp_path):
        manager = StateManager(str(tmp_path / "cache"))
        os.rmdir(tmp_path / "cache")
        assert manager.load() == {}

    def test_write_failure_raises_persistence_error(self, tmp_path, pending_state):
        manager = StateManager(str(tmp_path / "cache"))
        os.rmdir(tmp_path / "cache")
        with pytest.raises(PersistenceError):
            manager.save("alpha", pending_state)


class TestFactory:
    def test_cache_enabled_uses_files(self, config):
        assert isinstance(create_state_manager(config), StateManager)

    def test_cache_disabled_uses_memory(self, config):
        config.cache_enabled = False
        assert isinstance(create_state_manager(config), MemoryStateManager)
