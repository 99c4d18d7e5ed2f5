import json

from attendme.services.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore


def test_in_memory_store_copies_values():
    store = InMemoryKeyValueStore({"seed": 1})
    value = {"items": [1, 2]}
    store.set("k", value)
    value["items"].append(3)

    assert store.get("k") == {"items": [1, 2]}
    assert store.get("missing", []) == []
    assert store.keys() == ["k", "seed"]

    store.delete("k")
    store.delete("k")
    assert store.get("k") is None


def test_json_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "nested" / "store.json"
    first = JsonFileKeyValueStore(path)
    first.set("@attend_me/pending_actions", [{"id": "a"}])
    first.set("@attend_me/last_sync_time", "2024-01-01T00:00:00+00:00")

    second = JsonFileKeyValueStore(path)
    assert second.get("@attend_me/pending_actions") == [{"id": "a"}]
    assert second.keys() == ["@attend_me/last_sync_time", "@attend_me/pending_actions"]

    second.delete("@attend_me/last_sync_time")
    assert json.loads(path.read_text(encoding="utf-8")) == {"@attend_me/pending_actions": [{"id": "a"}]}
    assert [item.name for item in path.parent.iterdir()] == ["store.json"]


def test_json_file_store_tolerates_missing_and_corrupt_files(tmp_path):
    path = tmp_path / "store.json"
    store = JsonFileKeyValueStore(path)
    assert store.get("anything", "fallback") == "fallback"
    store.delete("anything")
    assert not path.exists()

    path.write_text("{not json", encoding="utf-8")
    assert store.keys() == []

    path.write_text("[1, 2]", encoding="utf-8")
    assert store.get("k") is None

    store.set("k", 1)
    assert store.get("k") == 1
