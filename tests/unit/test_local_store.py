"""
Unit tests for the serialized local store and key/value backends.
"""

import threading

import pytest

from gardensync.core.exceptions import QueueOverflowError, StorageError
from gardensync.core.models import StorageKeys
from gardensync.storage import MemoryKeyValueStore, SerializedLocalStore, SqliteKeyValueStore


class GatedKeyValueStore(MemoryKeyValueStore):
    """Memory store whose writes block until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()
        self.entered = threading.Event()

    def set(self, key, value):
        self.entered.set()
        self.gate.wait(timeout=10)
        super().set(key, value)


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Memory store whose first ``failures`` calls to set raise OSError."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def set(self, key, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError("disk busy")
        super().set(key, value)


class TestReadWrite:
    """Tests for sequence reads and writes."""

    def test_write_then_read(self, local_store):
        """Test that a written list is read back unchanged."""
        plants = [{"id": "p1", "name": "Tomato"}]

        assert local_store.write(StorageKeys.PLANTS, plants) is True
        assert local_store.read(StorageKeys.PLANTS) == plants

    def test_missing_key_reads_empty(self, local_store):
        assert local_store.read(StorageKeys.JOURNAL) == []

    def test_last_write_wins_in_submission_order(self, local_store):
        """Test that interleaved submissions apply in FIFO order."""
        futures = []
        for i in range(20):
            futures.append(local_store.submit_write(StorageKeys.TASKS, [{"id": f"t{i}"}]))
            futures.append(local_store.submit_read(StorageKeys.TASKS))

        for f in futures:
            f.result(timeout=5)

        assert local_store.read(StorageKeys.TASKS) == [{"id": "t19"}]
        # Each read observes the write submitted just before it
        reads = [f.result() for f in futures[1::2]]
        assert reads == [[{"id": f"t{i}"}] for i in range(20)]

    def test_non_list_write_refused(self, local_store, kv_backend):
        """Test that writing a non-list value is refused and nothing is stored."""
        assert local_store.write(StorageKeys.PLANTS, {"id": "p1"}) is False
        assert kv_backend.get(StorageKeys.PLANTS) is None

    def test_non_list_value_reads_empty(self, local_store, kv_backend):
        kv_backend.set(StorageKeys.PLANTS, '{"id": "p1"}')

        assert local_store.read(StorageKeys.PLANTS) == []


class TestCorruption:
    """Tests for undecodable cached data."""

    def test_corrupt_json_heals_to_empty(self, local_store, kv_backend):
        """Test that corrupt bytes read as [] and the key is cleared."""
        kv_backend.set(StorageKeys.PLANTS, "{not json")

        assert local_store.read(StorageKeys.PLANTS) == []
        assert kv_backend.get(StorageKeys.PLANTS) is None

    def test_corruption_is_not_retried(self, local_store, kv_backend, no_sleep):
        kv_backend.set(StorageKeys.JOURNAL, "[[[")

        local_store.read(StorageKeys.JOURNAL)

        assert no_sleep.delays == []


class TestRetry:
    """Tests for retrying failed persistence calls."""

    def test_write_retries_with_linear_delays(self, no_sleep):
        """Test that two failures are retried at 100ms then 200ms."""
        backend = FlakyKeyValueStore(failures=2)
        with SerializedLocalStore(backend, sleep=no_sleep) as store:
            assert store.write(StorageKeys.PLANTS, [{"id": "p1"}]) is True

        assert backend.calls == 3
        assert no_sleep.delays == pytest.approx([0.1, 0.2])

    def test_write_gives_up_after_max_retries(self, no_sleep):
        backend = FlakyKeyValueStore(failures=10)
        with SerializedLocalStore(backend, max_retries=2, sleep=no_sleep) as store:
            assert store.write(StorageKeys.PLANTS, [{"id": "p1"}]) is False

        assert backend.calls == 3


class TestQueueOverflow:
    """Tests for bounded queue backpressure."""

    @pytest.mark.concurrency
    def test_101_requests_with_capacity_100_overflow(self, no_sleep):
        """Test that the request beyond capacity is rejected immediately."""
        backend = GatedKeyValueStore()
        store = SerializedLocalStore(backend, capacity=100, sleep=no_sleep)
        accepted = []
        rejected = 0
        try:
            for i in range(101):
                try:
                    accepted.append(store.submit_write(StorageKeys.PLANTS, [{"id": f"p{i}"}]))
                except QueueOverflowError as e:
                    assert e.capacity == 100
                    rejected += 1

            assert rejected >= 1
            assert len(accepted) == 100
            assert store.pending == 100
        finally:
            backend.gate.set()
            for f in accepted:
                f.result(timeout=10)
            store.close(timeout=5)

        assert store.pending == 0

    def test_capacity_frees_up_after_completion(self, local_store):
        for _ in range(3):
            local_store.write(StorageKeys.TASKS, [])

        assert local_store.pending == 0
        assert local_store.write(StorageKeys.TASKS, [{"id": "t1"}]) is True


class TestSingleValuesAndClear:
    """Tests for string items, remove and clear_all."""

    def test_set_and_get_item(self, local_store):
        assert local_store.set_item(StorageKeys.LAST_SYNC, "2024-05-01T00:00:00.000Z") is True
        assert local_store.get_item(StorageKeys.LAST_SYNC) == "2024-05-01T00:00:00.000Z"

    def test_remove(self, local_store):
        local_store.write(StorageKeys.PLANTS, [{"id": "p1"}])

        assert local_store.remove(StorageKeys.PLANTS) is True
        assert local_store.read(StorageKeys.PLANTS) == []

    def test_clear_all_resets_every_key(self, local_store, kv_backend):
        """Test that clear_all leaves every known key holding an empty list."""
        local_store.write(StorageKeys.PLANTS, [{"id": "p1"}])
        local_store.write(StorageKeys.OFFLINE_QUEUE, [{"type": "create"}])

        assert local_store.clear_all() is True

        for key in StorageKeys.ALL:
            assert kv_backend.get(key) == "[]"

    def test_closed_store_rejects_work(self, kv_backend, no_sleep):
        store = SerializedLocalStore(kv_backend, sleep=no_sleep)
        store.close()

        with pytest.raises(StorageError):
            store.read(StorageKeys.PLANTS)


class TestSqliteKeyValueStore:
    """Tests for the SQLite persistence backend."""

    def test_round_trip_and_persistence(self, tmp_path):
        db_path = tmp_path / "garden.db"
        store = SqliteKeyValueStore(db_path)
        store.set("@garden_plants", "[]")
        store.set("@garden_plants", '[{"id": "p1"}]')
        store.close()

        reopened = SqliteKeyValueStore(db_path)
        try:
            assert reopened.get("@garden_plants") == '[{"id": "p1"}]'
            assert reopened.keys() == ["@garden_plants"]
            reopened.remove("@garden_plants")
            assert reopened.get("@garden_plants") is None
        finally:
            reopened.close()

    def test_serialized_store_over_sqlite(self, tmp_path, no_sleep):
        with SerializedLocalStore(SqliteKeyValueStore(tmp_path / "g.db"), sleep=no_sleep) as store:
            store.write(StorageKeys.JOURNAL, [{"id": "j1", "entry_type": "note"}])
            assert store.read(StorageKeys.JOURNAL) == [{"id": "j1", "entry_type": "note"}]
