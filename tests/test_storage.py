import json

from sutra_reader.reading import (
    FileKeyValueStore,
    Identity,
    InMemoryKeyValueStore,
    KeyValueStore,
    LocalPersistence,
    StatePaths,
    annotations_key,
    progress_key,
)


class BrokenStore(KeyValueStore):
    def get_item(self, key):
        raise OSError("storage disabled")

    def set_item(self, key, raw):
        raise OSError("quota exceeded")


def test_keys_are_namespaced_per_identity():
    user = Identity(id="u-1", email="a@example.com")
    assert progress_key(user) == "progress_u-1"
    assert annotations_key(user) == "annotations_u-1"
    assert progress_key(None) == "progress_guest"
    assert annotations_key(None) == "annotations_guest"


def test_load_returns_fallback_without_store():
    persistence = LocalPersistence(None)
    assert not persistence.available
    assert persistence.load("progress_guest", {}) == {}
    persistence.save("progress_guest", {"s1:0": True})
    assert persistence.load("progress_guest", {}) == {}


def test_load_falls_back_on_missing_malformed_or_wrong_shape():
    kv = InMemoryKeyValueStore(
        {
            "broken": "{not json",
            "empty": "",
            "list_not_dict": "[1, 2]",
        }
    )
    persistence = LocalPersistence(kv)
    assert persistence.load("absent", {"x": 1}) == {"x": 1}
    assert persistence.load("broken", {}) == {}
    assert persistence.load("empty", []) == []
    assert persistence.load("list_not_dict", {}) == {}


def test_store_errors_are_absorbed():
    persistence = LocalPersistence(BrokenStore())
    persistence.save("progress_guest", {"s1:0": True})
    assert persistence.load("progress_guest", {}) == {}


def test_unserializable_values_are_dropped():
    kv = InMemoryKeyValueStore()
    persistence = LocalPersistence(kv)
    persistence.save("progress_guest", {"bad": object()})
    assert "progress_guest" not in kv.items


def test_file_store_roundtrip(tmp_path):
    paths = StatePaths(tmp_path)
    persistence = LocalPersistence(FileKeyValueStore(paths))
    persistence.save("annotations_u/1", [{"id": "a1", "content": "经文"}])

    stored = paths.key_path("annotations_u/1")
    assert stored.parent == tmp_path / "state"
    assert json.loads(stored.read_text(encoding="utf-8")) == [{"id": "a1", "content": "经文"}]
    assert persistence.load("annotations_u/1", []) == [{"id": "a1", "content": "经文"}]


def test_last_write_wins(tmp_path):
    persistence = LocalPersistence(FileKeyValueStore(StatePaths(tmp_path)))
    persistence.save("progress_guest", {"s1:0": True})
    persistence.save("progress_guest", {"s1:1": True})
    assert persistence.load("progress_guest", {}) == {"s1:1": True}
