import os

import pytest

from errors import CorruptLocalState
from local_store import LocalStore, namespaced


def test_missing_file_reads_none(tmp_path):
    assert LocalStore(str(tmp_path / "nope.json")).get("k") is None


def test_set_get_remove(local_store):
    local_store.set("a", [1, 2])
    local_store.set("b", {"x": "ي"})
    assert local_store.get("a") == [1, 2]
    assert local_store.get("b") == {"x": "ي"}
    local_store.remove("a")
    assert local_store.get("a") is None
    assert local_store.get("b") == {"x": "ي"}


def test_creates_parent_directory(tmp_path):
    store = LocalStore(str(tmp_path / "nested" / "dir" / "storage.json"))
    store.set("k", 1)
    assert store.get("k") == 1


def test_no_temp_files_left_behind(local_store):
    local_store.set("k", 1)
    leftovers = [f for f in os.listdir(os.path.dirname(local_store.path)) if f.endswith(".tmp")]
    assert leftovers == []


def test_unparsable_file_raises(local_store):
    with open(local_store.path, "w") as fh:
        fh.write("[1,")
    with pytest.raises(CorruptLocalState):
        local_store.get("k")


def test_non_object_file_raises(local_store):
    with open(local_store.path, "w") as fh:
        fh.write("[1, 2]")
    with pytest.raises(CorruptLocalState):
        local_store.get("k")


def test_namespaced():
    assert namespaced("cart") == "elsahaba_cart"
