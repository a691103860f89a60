"""Tests for keygate.keystore — shape detection, validation, YAML loading."""

from pathlib import Path

import pytest

from keygate.keystore import ConfigError, ListStore, MapStore, build_key_store, load_key_store


@pytest.fixture
def yaml_file(tmp_path: Path) -> Path:
    """Create a valid map-shaped key store file."""
    path = tmp_path / "keys.yaml"
    path.write_text(
        "knockknock:\n"
        "  name: Who Is There\n"
        "sk-abc123xyz:\n"
        "  name: team-alpha\n"
    )
    return path


class TestBuildKeyStore:
    def test_mapping_becomes_map_store(self) -> None:
        store = build_key_store({"knockknock": {"name": "Who Is There"}})
        assert isinstance(store, MapStore)
        assert store.shape == "map"
        assert store.get("knockknock") == {"name": "Who Is There"}

    def test_list_becomes_list_store(self) -> None:
        store = build_key_store([{"X-API-KEY4": "abc"}, {"X-API-KEY5": "dev"}])
        assert isinstance(store, ListStore)
        assert store.shape == "list"
        assert store.entries == (("X-API-KEY4", "abc"), ("X-API-KEY5", "dev"))

    def test_empty_list_is_empty_map(self) -> None:
        store = build_key_store([])
        assert isinstance(store, MapStore)
        assert store.get("anything") is None

    def test_none_is_empty_map(self) -> None:
        assert build_key_store(None) == MapStore({})

    def test_existing_store_passes_through(self) -> None:
        store = ListStore((("x-api-key", "abc"),))
        assert build_key_store(store) is store

    def test_keys_for_keeps_order(self) -> None:
        store = build_key_store([{"a": "1"}, {"b": "2"}, {"a": "3"}])
        assert store.keys_for("a") == ["1", "3"]
        assert store.keys_for("c") == []

    def test_unrecognized_shape(self) -> None:
        with pytest.raises(ConfigError, match="Unrecognized key store shape"):
            build_key_store("knockknock")

    def test_list_entry_with_two_fields(self) -> None:
        with pytest.raises(ConfigError, match="single-entry"):
            build_key_store([{"a": "1", "b": "2"}])

    def test_list_entry_not_a_mapping(self) -> None:
        with pytest.raises(ConfigError, match="entry 1"):
            build_key_store([{"a": "1"}, "b"])

    def test_list_entry_non_string_key(self) -> None:
        with pytest.raises(ConfigError, match="string key"):
            build_key_store([{"a": 1}])

    def test_map_non_string_key(self) -> None:
        with pytest.raises(ConfigError, match="must be strings"):
            build_key_store({1: {"name": "x"}})


class TestLoadKeyStore:
    def test_load_map_file(self, yaml_file: Path) -> None:
        store = load_key_store(yaml_file)
        assert isinstance(store, MapStore)
        assert store.get("sk-abc123xyz") == {"name": "team-alpha"}

    def test_load_list_file(self, tmp_path: Path) -> None:
        path = tmp_path / "keys.yaml"
        path.write_text("- X-API-KEY4: abc\n- X-API-KEY5: dev\n")
        store = load_key_store(path)
        assert isinstance(store, ListStore)
        assert store.keys_for("X-API-KEY5") == ["dev"]

    def test_empty_file_is_empty_map(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_key_store(path) == MapStore({})

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_key_store(tmp_path / "nonexistent.yaml")


class TestMapStoreValidation:
    def test_entry_without_credentials(self) -> None:
        with pytest.raises(ConfigError, match="without credentials.*knockknock"):
            build_key_store({"knockknock": None, "other": {"name": "x"}})

    def test_yaml_entry_without_credentials(self, tmp_path: Path) -> None:
        path = tmp_path / "keys.yaml"
        path.write_text("knockknock:\n")
        with pytest.raises(ConfigError, match="without credentials"):
            load_key_store(path)

    def test_falsy_credentials_are_kept(self) -> None:
        store = build_key_store({"knockknock": {}, "zero": 0})
        assert store.get("knockknock") == {}
        assert store.get("zero") == 0
