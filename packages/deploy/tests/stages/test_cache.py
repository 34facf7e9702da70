from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from content_deploy.core import CacheCorruptionError, CacheError
from content_deploy.stages.cache import FsCacheStore, pack_dir, unpack_into

KEY = "Linux-pip-" + "a" * 64


def test_store_then_lookup(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path / "cache")
    assert store.lookup(KEY) is None

    entry = store.store(KEY, b"payload")
    assert entry.key == KEY
    assert entry.bytes == 7

    found = store.lookup(KEY)
    assert found is not None
    assert found.read_payload() == b"payload"
    assert store.keys() == [KEY]


def test_store_is_idempotent_for_same_payload(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    first = store.store(KEY, b"same")
    second = store.store(KEY, b"same")
    assert first == second
    assert store.keys() == [KEY]


def test_conflicting_payload_invalidates_entry(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    store.store(KEY, b"one")
    with pytest.raises(CacheCorruptionError):
        store.store(KEY, b"two")
    assert store.lookup(KEY) is None


def test_tampered_payload_is_a_miss(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    entry = store.store(KEY, b"good bytes")
    entry.payload_path.write_bytes(b"evil bytes")

    with pytest.raises(CacheCorruptionError):
        entry.read_payload()
    assert store.lookup(KEY) is None
    assert store.keys() == []


def test_unreadable_entry_record_is_a_miss(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    store.store(KEY, b"x")
    (tmp_path / KEY / "entry.json").write_text("[]")
    assert store.lookup(KEY) is None


def test_invalid_key_is_rejected(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    with pytest.raises(ValueError):
        store.lookup("../escape")


def test_restore_prefix_prefers_newest_valid_entry(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    old = "Linux-pip-" + "1" * 64
    new = "Linux-pip-" + "2" * 64
    other = "Darwin-pip-" + "3" * 64

    store.store(old, b"old")
    time.sleep(0.01)
    store.store(new, b"new")
    store.store(other, b"other")

    hit = store.restore_prefix("Linux-pip-")
    assert hit is not None and hit.key == new

    (tmp_path / new / "payload.bin").write_bytes(b"tampered")
    hit = store.restore_prefix("Linux-pip-")
    assert hit is not None and hit.key == old

    assert store.restore_prefix("Windows-pip-") is None


def test_concurrent_identical_stores_leave_one_entry(tmp_path: Path) -> None:
    store = FsCacheStore(tmp_path)
    errors: list[BaseException] = []

    def worker() -> None:
        try:
            store.store(KEY, b"shared")
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert store.keys() == [KEY]
    assert not [p for p in tmp_path.iterdir() if p.name.startswith(".")]


def test_pack_and_unpack_dir(tmp_path: Path) -> None:
    src = tmp_path / "deps"
    (src / "pkg").mkdir(parents=True)
    (src / "pkg" / "__init__.py").write_text("x = 1\n")
    (src / "top.txt").write_text("top")

    payload = pack_dir(src)

    dest = tmp_path / "restored"
    assert unpack_into(payload, dest) == 3
    assert (dest / "pkg" / "__init__.py").read_text() == "x = 1\n"
    assert (dest / "top.txt").read_text() == "top"


def test_unpack_garbage_raises_cache_error(tmp_path: Path) -> None:
    with pytest.raises(CacheError):
        unpack_into(b"not a tarball", tmp_path / "out")
