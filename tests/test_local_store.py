from local_store import JsonFileKeyValueStore, MemoryKeyValueStore


def test_memory_store():
    store = MemoryKeyValueStore({"a": "1"})
    store.set("b", 2)
    assert (store.get("a"), store.get("b")) == ("1", "2")
    store.clear("a")
    store.clear("missing")
    assert store.get("a") is None


def test_json_store_survives_reopen(tmp_path):
    path = tmp_path / "state" / "somi.json"
    JsonFileKeyValueStore(path).set("active_somi_chain_id", "42")
    reopened = JsonFileKeyValueStore(path)
    assert reopened.get("active_somi_chain_id") == "42"
    reopened.clear("active_somi_chain_id")
    assert JsonFileKeyValueStore(path).get("active_somi_chain_id") is None


def test_json_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "somi.json"
    path.write_text("{not json")
    store = JsonFileKeyValueStore(path)
    assert store.get("anything") is None
    store.set("k", "v")
    assert store.get("k") == "v"
