"""
In-memory record store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without a data directory

Invariants:
    - All data is lost on process exit
    - Provides the same ordering and watch guarantees as SqliteRecordStore

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with RecordStore protocol
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Tuple

from ..errors import StorageError, StoreClosedError
from .base import ChangeEvent
from .watch import Watcher, WatchRegistry

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore for testing.

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.open()
        >>> await store.put("a", b"1")
        >>> [k async for k, _ in store.list()]
        ['a']
    """

    def __init__(self, list_batch_size: int = 500) -> None:
        self.list_batch_size = list_batch_size
        self._data: Dict[str, bytes] = {}
        self._lock = asyncio.Lock()
        self._watches = WatchRegistry()
        self._open = False
        self._next_failure: Optional[Exception] = None

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def watcher_count(self) -> int:
        return len(self._watches)

    def _check_open(self) -> None:
        if not self._open:
            raise StoreClosedError()

    async def open(self) -> None:
        self._open = True
        logger.debug("InMemoryRecordStore opened")

    async def close(self) -> None:
        """Close the store and end all watchers. Data is kept."""
        self._open = False
        self._watches.close_all()
        logger.debug("InMemoryRecordStore closed")

    async def _commit(self, key: str, value: bytes) -> None:
        async with self._lock:
            if self._next_failure is not None:
                failure, self._next_failure = self._next_failure, None
                raise StorageError(f"Write failed: {failure}") from failure

            self._data[key] = value
            self._watches.publish(ChangeEvent(key=key, value=value))

    async def put(self, key: str, value: bytes) -> None:
        self._check_open()

        await asyncio.shield(self._commit(key, value))

        logger.debug("Record written to in-memory store", extra={"key": key})

    async def get(self, key: str) -> Optional[bytes]:
        self._check_open()
        return self._data.get(key)

    async def list(self) -> AsyncIterator[Tuple[str, bytes]]:
        self._check_open()

        after: Optional[str] = None
        while True:
            keys = sorted(k for k in self._data if after is None or k > after)
            batch = keys[: self.list_batch_size]
            for key in batch:
                yield key, self._data[key]
            if len(batch) < self.list_batch_size:
                return
            after = batch[-1]

    async def count(self) -> int:
        self._check_open()
        return len(self._data)

    def watch(self, prefix: str) -> Watcher:
        self._check_open()
        return self._watches.register(prefix)

    # Testing helpers

    def get_all_records(self) -> List[Tuple[str, bytes]]:
        """All entries in key order (testing helper)."""
        return [(key, self._data[key]) for key in sorted(self._data)]

    def clear(self) -> None:
        """Drop all entries without notifying watchers (testing helper)."""
        self._data.clear()

    def fail_next_write(self, exception: Exception) -> None:
        """Make the next put() raise StorageError (testing helper)."""
        self._next_failure = exception
