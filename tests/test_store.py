"""
Tests for the persistent store (chef/store.py).
"""

import json
from unittest.mock import patch

import pytest

from chef.errors import StoreCorrupt, StoreWriteFailed
from chef.store import (
    PROVIDERS_KEY,
    SETTINGS_KEY,
    ChefStore,
    ProviderRegistration,
    StoreEntry,
)


class TestStoreEntry:
    """Tests for StoreEntry dataclass."""

    def test_flat_entry(self):
        """Test entry without dir or extern is a flat install."""
        entry = StoreEntry(version="1.0.0")
        assert entry.kind == "exe"
        assert entry.to_dict() == {"version": "1.0.0"}

    def test_dir_entry(self):
        """Test directory install entry."""
        entry = StoreEntry(version="2.0", dir="tool-dir")
        assert entry.kind == "dir"
        assert entry.to_dict() == {"version": "2.0", "dir": "tool-dir"}

    def test_extern_entry(self):
        """Test external command entry."""
        entry = StoreEntry(version="3.1", extern="tool")
        assert entry.kind == "extern"
        assert entry.to_dict() == {"version": "3.1", "extern": "tool"}

    def test_dir_and_extern_rejected(self):
        """Test an entry cannot carry two install kinds."""
        with pytest.raises(ValueError, match="cannot be both"):
            StoreEntry(version="1.0", dir="d", extern="e")

    def test_from_legacy_string(self):
        """Test bare version string is read as a flat install."""
        entry = StoreEntry.from_value("0.9.1")
        assert entry == StoreEntry(version="0.9.1")

    def test_from_dict(self):
        """Test record parsing."""
        entry = StoreEntry.from_value({"version": "1.2", "dir": "x-dir"})
        assert entry.version == "1.2"
        assert entry.dir == "x-dir"
        assert entry.extern is None

    def test_from_invalid_value(self):
        """Test records without a version are rejected."""
        with pytest.raises(ValueError):
            StoreEntry.from_value({"dir": "x"})
        with pytest.raises(ValueError):
            StoreEntry.from_value(42)


class TestReadAll:
    """Tests for reading the store file."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test a store file that does not exist yet reads as empty."""
        store = ChefStore(tmp_path / "db.json")
        assert store.read_all() == {}

    def test_empty_file_is_empty(self, tmp_path):
        """Test a zero-length file reads as empty."""
        path = tmp_path / "db.json"
        path.write_text("")
        assert ChefStore(path).read_all() == {}

    def test_invalid_json_raises(self, tmp_path):
        """Test garbage is reported, not treated as empty."""
        path = tmp_path / "db.json"
        path.write_text("{not json")
        with pytest.raises(StoreCorrupt) as exc_info:
            ChefStore(path).read_all()
        assert str(path) in str(exc_info.value)

    def test_non_object_raises(self, tmp_path):
        """Test a JSON array is not a valid store."""
        path = tmp_path / "db.json"
        path.write_text("[1, 2]")
        with pytest.raises(StoreCorrupt):
            ChefStore(path).read_all()

    def test_invalid_record_raises(self, tmp_path):
        """Test a record without version is corruption."""
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"tool": {"dir": "x"}}))
        with pytest.raises(StoreCorrupt, match="tool"):
            ChefStore(path).read_all()

    def test_legacy_format(self, tmp_path):
        """Test mixed legacy and record values are normalized."""
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"a": "1.0", "b": {"version": "2.0", "extern": "b"}}))
        entries = ChefStore(path).read_all()
        assert entries == {
            "a": StoreEntry(version="1.0"),
            "b": StoreEntry(version="2.0", extern="b"),
        }

    def test_reserved_keys_hidden(self, tmp_path):
        """Test settings and providers are not returned as entries."""
        path = tmp_path / "db.json"
        path.write_text(json.dumps({
            "a": {"version": "1"},
            SETTINGS_KEY: {"editorCommand": "vim"},
            PROVIDERS_KEY: [{"name": "p", "command": "p"}],
        }))
        assert list(ChefStore(path).read_all()) == ["a"]

    def test_stale_entries_pruned(self, tmp_path):
        """Test entries for unregistered names are omitted without error."""
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"known": {"version": "1"}, "gone": {"version": "2"}}))
        store = ChefStore(path, known_names=lambda: ["known"])
        assert list(store.read_all()) == ["known"]
        # Still on disk until the next write
        assert "gone" in json.loads(path.read_text())


class TestWrites:
    """Tests for writing the store file."""

    def test_set_entry_creates_parents(self, tmp_path):
        """Test parent directories are created on first write."""
        path = tmp_path / "nested" / "dir" / "db.json"
        store = ChefStore(path)
        store.set_entry("hello", StoreEntry(version="1.0.0"))
        assert json.loads(path.read_text()) == {"hello": {"version": "1.0.0"}}

    def test_write_all_preserves_reserved_keys(self, tmp_path):
        """Test entry writes keep settings and providers."""
        path = tmp_path / "db.json"
        store = ChefStore(path)
        store.set_setting("editorCommand", "nano")
        store.add_provider(ProviderRegistration("p", "p-cmd"))
        store.set_entry("a", StoreEntry(version="1"))
        store.write_all({"b": StoreEntry(version="2")})

        data = json.loads(path.read_text())
        assert data[SETTINGS_KEY] == {"editorCommand": "nano"}
        assert data[PROVIDERS_KEY] == [{"name": "p", "command": "p-cmd"}]
        assert "a" not in data
        assert data["b"] == {"version": "2"}

    def test_write_drops_stale_entries(self, tmp_path):
        """Test stale entries disappear on the next write."""
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"gone": {"version": "1"}}))
        store = ChefStore(path, known_names=lambda: ["kept"])
        store.set_entry("kept", StoreEntry(version="2"))
        assert json.loads(path.read_text()) == {"kept": {"version": "2"}}

    def test_write_is_deterministic(self, tmp_path):
        """Test identical content produces identical bytes."""
        path = tmp_path / "db.json"
        store = ChefStore(path)
        store.write_all({"b": StoreEntry("1"), "a": StoreEntry("2", dir="a-dir")})
        first = path.read_bytes()
        store.write_all(store.read_all())
        assert path.read_bytes() == first

    def test_no_temp_file_left(self, tmp_path):
        """Test the temporary file is renamed into place."""
        path = tmp_path / "db.json"
        ChefStore(path).set_entry("a", StoreEntry("1"))
        assert not path.with_suffix(".tmp").exists()

    def test_write_failure_raises(self, tmp_path):
        """Test filesystem errors surface as StoreWriteFailed."""
        store = ChefStore(tmp_path / "db.json")
        with patch("builtins.open", side_effect=PermissionError("read-only")):
            with pytest.raises(StoreWriteFailed, match="read-only"):
                store._write_raw({})

    def test_write_on_corrupt_file_raises(self, tmp_path):
        """Test corrupt files are never overwritten."""
        path = tmp_path / "db.json"
        path.write_text("garbage")
        with pytest.raises(StoreCorrupt):
            ChefStore(path).set_entry("a", StoreEntry("1"))
        assert path.read_text() == "garbage"


class TestPointOperations:
    """Tests for get/set/remove on single entries."""

    def test_get_entry(self, tmp_path):
        store = ChefStore(tmp_path / "db.json")
        assert store.get_entry("a") is None
        store.set_entry("a", StoreEntry("1.0"))
        assert store.get_entry("a") == StoreEntry("1.0")
        assert store.is_installed("a")

    def test_set_entry_replaces_kind(self, tmp_path):
        """Test a new install kind replaces the old record entirely."""
        store = ChefStore(tmp_path / "db.json")
        store.set_entry("a", StoreEntry("1.0", dir="a-dir"))
        store.set_entry("a", StoreEntry("2.0", extern="a"))
        assert store.get_entry("a") == StoreEntry("2.0", extern="a")

    def test_remove_entry(self, tmp_path):
        path = tmp_path / "db.json"
        store = ChefStore(path)
        store.set_entry("a", StoreEntry("1.0"))
        store.remove_entry("a")
        assert json.loads(path.read_text()) == {}
        assert not store.is_installed("a")

    def test_remove_missing_entry_does_not_write(self, tmp_path):
        """Test removing an absent entry leaves the file alone."""
        store = ChefStore(tmp_path / "db.json")
        store.remove_entry("nothing")
        assert not (tmp_path / "db.json").exists()


class TestSettingsAndProviders:
    """Tests for reserved-key accessors."""

    def test_settings_roundtrip(self, tmp_path):
        store = ChefStore(tmp_path / "db.json")
        assert store.get_setting("editorCommand") is None
        store.set_setting("editorCommand", "vim")
        store.set_setting("terminalCommand", "kitty")
        assert store.get_settings() == {"editorCommand": "vim", "terminalCommand": "kitty"}

    def test_settings_survive_entry_writes(self, tmp_path):
        store = ChefStore(tmp_path / "db.json")
        store.set_setting("stayInBackground", "true")
        store.set_entry("a", StoreEntry("1"))
        store.remove_entry("a")
        assert store.get_setting("stayInBackground") == "true"

    def test_add_provider_keeps_order(self, tmp_path):
        store = ChefStore(tmp_path / "db.json")
        store.add_provider(ProviderRegistration("one", "cmd1"))
        store.add_provider(ProviderRegistration("two", "cmd2"))
        assert [p.name for p in store.get_providers()] == ["one", "two"]

    def test_add_provider_replaces_same_name(self, tmp_path):
        """Test re-adding a provider replaces it in place."""
        store = ChefStore(tmp_path / "db.json")
        store.add_provider(ProviderRegistration("one", "old"))
        store.add_provider(ProviderRegistration("two", "cmd2"))
        store.add_provider(ProviderRegistration("one", "new"))
        assert store.get_providers() == [
            ProviderRegistration("one", "new"),
            ProviderRegistration("two", "cmd2"),
        ]

    def test_remove_provider(self, tmp_path):
        store = ChefStore(tmp_path / "db.json")
        store.add_provider(ProviderRegistration("one", "cmd"))
        assert store.remove_provider("one") is True
        assert store.remove_provider("one") is False
        assert store.get_providers() == []
