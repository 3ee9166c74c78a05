"""
SQLite-backed record store for txnstream.

This module persists records in a single SQLite database file holding one
flat, ordered keyspace:

Table schema:
    records:
        - key TEXT PRIMARY KEY (canonical transaction id)
        - value BLOB (JSON-encoded transaction)

    schema_version:
        - version INTEGER PRIMARY KEY
        - applied_at INTEGER (Unix ms)

Invariants:
    - One SQLite file per data directory
    - Writes are serialized; watchers are notified in commit order
    - Every blocking SQLite call runs in the default executor
    - Connections are created per operation

How to change safely:
    - Schema migrations must be backward compatible
    - Bump SCHEMA_VERSION for any table change
    - Keep key ordering binary (no custom collation) so list() stays stable
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterator, List, Optional, Tuple

from ..errors import StorageError, StoreClosedError
from .base import ChangeEvent
from .watch import Watcher, WatchRegistry

logger = logging.getLogger(__name__)


class SqliteRecordStore:
    """Durable record store on top of SQLite.

    Thread safety:
        Each operation opens its own connection inside an executor thread.
        Writes are serialized with an asyncio lock so that the order in
        which watchers observe events matches commit order.

    Example:
        >>> store = SqliteRecordStore("./database")
        >>> await store.open()
        >>> await store.put("3f0c...", b'{"id": "3f0c...", ...}')
        >>> async for key, value in store.list():
        ...     print(key)
    """

    SCHEMA_VERSION = 1
    DB_FILENAME = "records.db"

    def __init__(
        self,
        data_dir: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        list_batch_size: int = 500,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory holding the database file
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout
            list_batch_size: Rows fetched per round trip while listing
        """
        self.data_dir = Path(data_dir)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.list_batch_size = list_batch_size
        self._write_lock = asyncio.Lock()
        self._watches = WatchRegistry()
        self._open = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.DB_FILENAME

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def watcher_count(self) -> int:
        return len(self._watches)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database file."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit; each statement is its own transaction
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking SQLite call off the event loop."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except sqlite3.Error as e:
            raise StorageError(f"SQLite operation failed: {e}") from e

    def _check_open(self) -> None:
        if not self._open:
            raise StoreClosedError()

    def _create_schema(self) -> None:
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                );
            """)

            row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
            current = row["version"]
            if current is None:
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (self.SCHEMA_VERSION, int(time.time() * 1000)),
                )
            elif current > self.SCHEMA_VERSION:
                raise StorageError(
                    f"Database schema version {current} is newer than supported "
                    f"version {self.SCHEMA_VERSION}"
                )

    async def open(self) -> None:
        """Create the data directory and schema, then accept operations."""
        if self._open:
            return

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {e}") from e

        await self._run(self._create_schema)
        self._open = True
        logger.info("Record store opened", extra={"path": str(self.db_path)})

    async def close(self) -> None:
        """Close the store and end all watchers."""
        if not self._open:
            return
        self._open = False
        self._watches.close_all()
        logger.info("Record store closed", extra={"path": str(self.db_path)})

    def _write(self, key: str, value: bytes) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO records (key, value) VALUES (?, ?)",
                (key, value),
            )

    async def _commit(self, key: str, value: bytes) -> int:
        async with self._write_lock:
            await self._run(self._write, key, value)
            return self._watches.publish(ChangeEvent(key=key, value=value))

    async def put(self, key: str, value: bytes) -> None:
        """Write value at key and notify matching watchers.

        The write and its notification run as one shielded unit: a caller
        cancelled mid-write still gets its committed row published.
        """
        self._check_open()

        delivered = await asyncio.shield(self._commit(key, value))

        logger.debug(
            "Record written",
            extra={"key": key, "size": len(value), "watchers": delivered},
        )

    def _read(self, key: str) -> Optional[bytes]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM records WHERE key = ?", (key,)).fetchone()
            return bytes(row["value"]) if row else None

    async def get(self, key: str) -> Optional[bytes]:
        self._check_open()
        return await self._run(self._read, key)

    def _read_batch(self, after: Optional[str], limit: int) -> List[Tuple[str, bytes]]:
        with self._get_connection() as conn:
            if after is None:
                cursor = conn.execute(
                    "SELECT key, value FROM records ORDER BY key LIMIT ?",
                    (limit,),
                )
            else:
                cursor = conn.execute(
                    "SELECT key, value FROM records WHERE key > ? ORDER BY key LIMIT ?",
                    (after, limit),
                )
            return [(row["key"], bytes(row["value"])) for row in cursor.fetchall()]

    async def list(self) -> AsyncIterator[Tuple[str, bytes]]:
        """Iterate all entries in key order, one batch at a time.

        Batches are fetched by key range so the scan holds no cursor
        between round trips.
        """
        self._check_open()

        after: Optional[str] = None
        while True:
            batch = await self._run(self._read_batch, after, self.list_batch_size)
            for key, value in batch:
                yield key, value
            if len(batch) < self.list_batch_size:
                return
            after = batch[-1][0]

    def _count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    async def count(self) -> int:
        self._check_open()
        return await self._run(self._count)

    def watch(self, prefix: str) -> Watcher:
        """Register a watcher for writes whose key starts with prefix.

        Events are published once the write commits, so a watcher
        registered while a put() is still in the executor receives that
        put's event too.
        """
        self._check_open()
        return self._watches.register(prefix)
