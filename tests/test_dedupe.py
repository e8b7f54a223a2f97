# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tests for the persisted sent-keys record."""

import json
import threading

import pytest

from daemon import dedupe
from daemon.dedupe import AlertIdentity, DedupeStore, alert_identity
from daemon.schemas import DedupeStoreError


@pytest.fixture
def store(isolated_paths):
    return DedupeStore()


@pytest.fixture
def identity():
    return alert_identity("xQcOW", 112309, "nether", "IGT", 179)


class TestIdentity:

    def test_canonical_and_legacy(self, identity):
        assert identity.canonical == "nether|xQcOW|112309"
        assert identity.aliases == ("nether|IGT|xQcOW|112309|179",)
        assert identity.keys == ("nether|xQcOW|112309", "nether|IGT|xQcOW|112309|179")


class TestMarkIfNew:

    def test_new_once_then_seen(self, store, identity):
        assert store.mark_if_new(identity) is True
        assert store.mark_if_new(identity) is False

    def test_legacy_key_blocks_canonical(self, store, identity):
        assert store.mark_if_new("nether|IGT|xQcOW|112309|179") is True
        assert store.mark_if_new(identity) is False

    def test_new_alias_set_records_all_variants(self, store):
        assert store.mark_if_new(["a", "b"]) is True
        assert store.mark_if_new(["c", "d"]) is True
        assert store.seen("c") and store.seen("d")

    def test_any_seen_key_blocks(self, store):
        store.mark_if_new("old")
        assert store.mark_if_new(["new", "old"]) is False
        assert not store.seen("new")

    def test_different_run_is_new(self, store, identity):
        store.mark_if_new(identity)
        other = alert_identity("xQcOW", 112310, "nether", "IGT", 179)
        assert store.mark_if_new(other) is True

    def test_stats(self, store, identity):
        store.mark_if_new(identity)
        store.mark_if_new(identity)
        assert store.stats == {"tracked": 2, "dedup_hits": 1}
        assert len(store) == 2


class TestPersistence:

    def test_written_as_sorted_array(self, store, identity, isolated_paths):
        store.mark_if_new(identity)
        data = json.loads(isolated_paths.sent_keys_file.read_text())
        assert data == sorted(identity.keys)

    def test_survives_restart(self, store, identity):
        store.mark_if_new(identity)
        assert DedupeStore().mark_if_new(identity) is False

    def test_corrupt_file_starts_empty(self, isolated_paths):
        isolated_paths.sent_keys_file.write_text("{not json")
        store = DedupeStore()
        assert len(store) == 0
        assert store.mark_if_new("k") is True

    def test_non_array_file(self, isolated_paths):
        isolated_paths.sent_keys_file.write_text('{"k": 1}')
        assert len(DedupeStore()) == 0

    def test_write_failure_raises_but_remembers(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = DedupeStore(path=blocker / "sent_keys.json")
        with pytest.raises(DedupeStoreError):
            store.mark_if_new("k")
        assert store.seen("k")
        assert store.mark_if_new("k") is False


class TestConcurrency:

    def test_single_winner(self, store):
        results = []
        lock = threading.Lock()

        def worker():
            ok = store.mark_if_new(AlertIdentity("nether|x|1", ("nether|IGT|x|1|100",)))
            with lock:
                results.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_write_happens_under_lock(self, store, monkeypatch):
        held = []
        real_write = dedupe.atomic_write_json

        def recording_write(path, data):
            held.append(store._lock.locked())
            real_write(path, data)

        monkeypatch.setattr(dedupe, "atomic_write_json", recording_write)
        store.mark_if_new("a")
        store.mark_if_new("b")
        assert held == [True, True]

    def test_distinct_keys_all_reach_disk(self, store, isolated_paths):
        keys = [f"nether|s{i}|1" for i in range(16)]
        threads = [threading.Thread(target=store.mark_if_new, args=(k,)) for k in keys]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert json.loads(isolated_paths.sent_keys_file.read_text()) == sorted(keys)
