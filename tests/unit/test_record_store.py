"""
Unit tests for the record store backends.

Tests cover:
- put/get/list/count on both SQLite and in-memory backends
- Key ordering and batched listing
- Prefix watches and broadcast to independent watchers
- Closed-store behavior
- SQLite durability across reopen
"""

import asyncio
import sqlite3
import tempfile

import pytest

from ledger.txnstream.config import StorageConfig, StoreBackend
from ledger.txnstream.errors import StorageError, StoreClosedError
from ledger.txnstream.store import (
    ChangeEvent,
    InMemoryRecordStore,
    SqliteRecordStore,
    create_record_store,
)


async def next_event(watcher, timeout: float = 1.0) -> ChangeEvent:
    return await asyncio.wait_for(watcher.__anext__(), timeout=timeout)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(params=["sqlite", "memory"])
def store(request, data_dir):
    """Create an unopened store for each backend."""
    if request.param == "sqlite":
        return SqliteRecordStore(data_dir, wal_mode=False, list_batch_size=2)
    return InMemoryRecordStore(list_batch_size=2)


class TestRecordStore:
    """Behavior shared by every backend."""

    @pytest.mark.asyncio
    async def test_open_close(self, store):
        """Open/close lifecycle."""
        assert not store.is_open

        await store.open()
        assert store.is_open

        await store.close()
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_put_requires_open(self, store):
        """Operations fail on a store that is not open."""
        with pytest.raises(StoreClosedError):
            await store.put("k1", b"v1")
        with pytest.raises(StoreClosedError):
            await store.get("k1")
        with pytest.raises(StoreClosedError):
            store.watch("")

    @pytest.mark.asyncio
    async def test_put_get(self, store):
        """Written value can be read back."""
        await store.open()

        await store.put("k1", b"value1")

        assert await store.get("k1") == b"value1"
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        """Second put at the same key replaces the value."""
        await store.open()

        await store.put("k1", b"old")
        await store.put("k1", b"new")

        assert await store.get("k1") == b"new"
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_list_empty(self, store):
        """Empty store lists nothing."""
        await store.open()

        assert [item async for item in store.list()] == []
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_list_in_key_order_across_batches(self, store):
        """List yields every entry in key order, spanning several batches."""
        await store.open()

        for key in ["d", "b", "e", "a", "c"]:
            await store.put(key, key.encode())

        items = [item async for item in store.list()]

        assert [key for key, _ in items] == ["a", "b", "c", "d", "e"]
        assert [value for _, value in items] == [b"a", b"b", b"c", b"d", b"e"]

    @pytest.mark.asyncio
    async def test_list_is_restartable(self, store):
        """Each list() call is a fresh scan that sees later writes."""
        await store.open()
        await store.put("a", b"1")

        first = [key async for key, _ in store.list()]
        await store.put("b", b"2")
        second = [key async for key, _ in store.list()]

        assert first == ["a"]
        assert second == ["a", "b"]

    @pytest.mark.asyncio
    async def test_watch_receives_put(self, store):
        """Watcher sees a write made after registration."""
        await store.open()

        with store.watch("") as watcher:
            await store.put("k1", b"v1")
            event = await next_event(watcher)

        assert event == ChangeEvent(key="k1", value=b"v1")

    @pytest.mark.asyncio
    async def test_watch_misses_earlier_writes(self, store):
        """Writes before registration are not replayed."""
        await store.open()
        await store.put("before", b"0")

        with store.watch("") as watcher:
            await store.put("after", b"1")
            event = await next_event(watcher)
            assert watcher.pending == 0

        assert event.key == "after"

    @pytest.mark.asyncio
    async def test_watch_preserves_write_order(self, store):
        """Events arrive in commit order."""
        await store.open()

        with store.watch("") as watcher:
            for i in range(5):
                await store.put(f"key_{4 - i}", str(i).encode())
            events = [await next_event(watcher) for _ in range(5)]

        assert [e.value for e in events] == [b"0", b"1", b"2", b"3", b"4"]

    @pytest.mark.asyncio
    async def test_cancelled_put_is_still_published(self, store):
        """A write whose caller is cancelled mid-flight still notifies watchers."""
        await store.open()

        with store.watch("") as watcher:
            writer = asyncio.create_task(store.put("k1", b"v1"))
            await asyncio.sleep(0)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

            event = await next_event(watcher)
            assert watcher.pending == 0

        assert event == ChangeEvent(key="k1", value=b"v1")
        assert await store.get("k1") == b"v1"

    @pytest.mark.asyncio
    async def test_watch_registered_during_put_sees_it(self, store):
        """Publication happens on commit, after a concurrent registration."""
        await store.open()

        writer = asyncio.create_task(store.put("k1", b"v1"))
        await asyncio.sleep(0)

        with store.watch("") as watcher:
            await writer
            assert watcher.pending == 1

    @pytest.mark.asyncio
    async def test_watch_prefix_filters_keys(self, store):
        """Watcher only sees keys under its prefix."""
        await store.open()

        with store.watch("txn:") as watcher:
            await store.put("other:1", b"x")
            await store.put("txn:1", b"y")
            event = await next_event(watcher)
            assert watcher.pending == 0

        assert event.key == "txn:1"

    @pytest.mark.asyncio
    async def test_watchers_are_independent(self, store):
        """Every watcher receives every event."""
        await store.open()

        with store.watch("") as first, store.watch("") as second:
            await store.put("k1", b"v1")
            assert (await next_event(first)).key == "k1"
            assert (await next_event(second)).key == "k1"

    @pytest.mark.asyncio
    async def test_closed_watcher_stops(self, store):
        """Closed watcher ends iteration and is released."""
        await store.open()

        watcher = store.watch("")
        assert store.watcher_count == 1

        watcher.close()
        await store.put("k1", b"v1")

        assert store.watcher_count == 0
        assert [event async for event in watcher] == []

    @pytest.mark.asyncio
    async def test_close_wakes_blocked_watcher(self, store):
        """Closing the store ends a watcher blocked waiting for events."""
        await store.open()
        watcher = store.watch("")

        async def consume():
            return [event async for event in watcher]

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await store.close()

        assert await asyncio.wait_for(consumer, timeout=1.0) == []


class TestSqliteRecordStore:
    """SQLite-specific behavior."""

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, data_dir):
        """Records persist across store instances."""
        store = SqliteRecordStore(data_dir, wal_mode=False)
        await store.open()
        await store.put("k1", b"v1")
        await store.close()

        reopened = SqliteRecordStore(data_dir, wal_mode=False)
        await reopened.open()

        assert await reopened.get("k1") == b"v1"
        assert await reopened.count() == 1

    @pytest.mark.asyncio
    async def test_creates_data_dir(self, data_dir):
        """open() creates a missing data directory."""
        store = SqliteRecordStore(f"{data_dir}/nested/db", wal_mode=True)
        await store.open()

        assert store.db_path.exists()

    @pytest.mark.asyncio
    async def test_rejects_newer_schema(self, data_dir):
        """A database from a newer schema version is refused."""
        store = SqliteRecordStore(data_dir, wal_mode=False)
        await store.open()
        await store.close()

        conn = sqlite3.connect(str(store.db_path))
        conn.execute("INSERT INTO schema_version (version, applied_at) VALUES (99, 0)")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError):
            await SqliteRecordStore(data_dir, wal_mode=False).open()

    @pytest.mark.asyncio
    async def test_write_failure_is_storage_error(self, data_dir):
        """Engine errors surface as StorageError and notify nobody."""
        store = SqliteRecordStore(data_dir, wal_mode=False)
        await store.open()
        watcher = store.watch("")

        conn = sqlite3.connect(str(store.db_path))
        conn.execute("DROP TABLE records")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError):
            await store.put("k1", b"v1")
        assert watcher.pending == 0


class TestInMemoryRecordStore:
    """In-memory testing helpers."""

    @pytest.mark.asyncio
    async def test_fail_next_write(self):
        """Injected failure affects exactly one write."""
        store = InMemoryRecordStore()
        await store.open()

        store.fail_next_write(OSError("disk full"))
        with pytest.raises(StorageError):
            await store.put("k1", b"v1")

        await store.put("k1", b"v1")
        assert store.get_all_records() == [("k1", b"v1")]


class TestCreateRecordStore:
    """Backend factory."""

    def test_sqlite_backend(self, data_dir):
        """SQLITE config builds a SqliteRecordStore."""
        store = create_record_store(StorageConfig(backend=StoreBackend.SQLITE, data_dir=data_dir))
        assert isinstance(store, SqliteRecordStore)

    def test_memory_backend(self):
        """MEMORY config builds an InMemoryRecordStore."""
        store = create_record_store(StorageConfig(backend=StoreBackend.MEMORY))
        assert isinstance(store, InMemoryRecordStore)
