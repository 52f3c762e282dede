"""Tests for settings persistence and the Netcast session store."""

import json

from lgcast.config import SessionStore, Settings, make_json_serializable


class TestSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings(str(tmp_path / "settings.json")).load()
        assert settings.current_device is None
        assert settings.discovered_devices == []
        assert settings.sessions == {}

    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "nested" / "settings.json")
        settings = Settings(path)
        settings.current_device = {"ip": "10.0.0.5", "name": "Living room"}
        settings.sessions["10.0.0.5"] = "abc123"
        settings.save()

        loaded = Settings(path).load()
        assert loaded.current_device == {"ip": "10.0.0.5", "name": "Living room"}
        assert loaded.sessions == {"10.0.0.5": "abc123"}

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        settings = Settings(str(path)).load()
        assert settings.current_device is None

    def test_discovered_devices_merge_by_ip(self, tmp_path):
        settings = Settings(str(tmp_path / "settings.json"))
        settings.save_discovered_devices([{"ip": "10.0.0.5", "name": "Old"}, {"ip": "10.0.0.6"}])
        settings.save_discovered_devices([{"ip": "10.0.0.5", "name": "New"}])
        assert settings.discovered_devices == [{"ip": "10.0.0.5", "name": "New"}, {"ip": "10.0.0.6"}]
        assert settings.find_device("10.0.0.6") == {"ip": "10.0.0.6"}
        assert settings.find_device("10.0.0.7") is None

    def test_forget_device_drops_session(self, tmp_path):
        path = tmp_path / "settings.json"
        settings = Settings(str(path))
        settings.current_device = {"ip": "10.0.0.5"}
        settings.sessions = {"10.0.0.5": "abc123", "10.0.0.6": "zzz"}
        settings.forget_device()

        data = json.loads(path.read_text())
        assert data["device"] is None
        assert data["sessions"] == {"10.0.0.6": "zzz"}


class TestSessionStore:
    def test_acquire_and_invalidate(self, tmp_path):
        path = str(tmp_path / "settings.json")
        settings = Settings(path)
        store = SessionStore(settings, "10.0.0.5")
        assert store.get() is None

        store.on_session_key_acquired("abc123")
        assert Settings(path).load().sessions == {"10.0.0.5": "abc123"}
        assert store.get() == "abc123"

        store.on_session_invalid()
        assert store.invalidated
        assert store.get() is None
        assert Settings(path).load().sessions == {}


def test_make_json_serializable():
    class Thing:
        def __init__(self):
            self.name = "tv"
            self.raw = b"bytes"

    assert make_json_serializable({"a": (1, Thing())}) == {"a": [1, {"name": "tv", "raw": "bytes"}]}
