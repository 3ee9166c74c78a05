"""
Base protocol and types for the record store abstraction.

This module defines the RecordStore protocol that all backends must
implement, along with the change event type delivered to watchers.

Invariants:
    - Keys are text; values are opaque encoded record bytes
    - list() yields entries in ascending key order
    - Every put() produces exactly one ChangeEvent per matching watcher
    - Watchers receive events in the order the store committed the writes

How to change safely:
    - Protocol changes require updating all implementations
    - Keep watch() synchronous so callers can register before writing
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import StorageConfig
    from .watch import Watcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A single insertion observed by the store.

    Attributes:
        key: Key that was written
        value: Encoded record bytes that were written
    """
    key: str
    value: bytes

    def __str__(self) -> str:
        return f"ChangeEvent(key={self.key}, size={len(self.value)})"


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for embedded ordered key-value backends.

    Durability contract:
        - put() returns only after the write is committed
        - A failed put() leaves no partial entry behind

    Ordering contract:
        - list() iterates keys in ascending order
        - Watchers see writes in commit order

    Example:
        >>> store = SqliteRecordStore("./database")
        >>> await store.open()
        >>> with store.watch("") as watcher:
        ...     await store.put("k1", b"{}")
        ...     event = await watcher.__anext__()
    """

    @abstractmethod
    async def open(self) -> None:
        """Open the store, creating on-disk state if needed.

        Raises:
            StorageError: If the store cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and end every live watcher."""
        ...

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """Write or overwrite the value at key.

        Args:
            key: Record key
            value: Encoded record bytes

        A committed write is published even if the caller is cancelled
        while waiting for it.

        Raises:
            StoreClosedError: If the store is not open
            StorageError: If the write fails
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Read the value at key, or None if absent."""
        ...

    @abstractmethod
    def list(self) -> AsyncIterator[Tuple[str, bytes]]:
        """Iterate all entries in key order.

        Each call starts a fresh scan. The iteration is finite.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entries."""
        ...

    @abstractmethod
    def watch(self, prefix: str) -> "Watcher":
        """Register a watcher for writes under prefix.

        Registration happens before this returns, so any put() issued
        afterwards is guaranteed to reach the watcher. Events are published
        on commit, so a put() still in flight at registration time may be
        delivered as well.

        Args:
            prefix: Key prefix to observe ("" observes everything)

        Returns:
            Watcher handle yielding ChangeEvent objects
        """
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the store is open."""
        ...


def create_record_store(config: "StorageConfig") -> RecordStore:
    """Factory function to create a record store from configuration.

    Args:
        config: Storage configuration

    Returns:
        Appropriate RecordStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryRecordStore
    from .sqlite import SqliteRecordStore

    if config.backend == StoreBackend.SQLITE:
        return SqliteRecordStore(
            data_dir=config.data_dir,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
            list_batch_size=config.list_batch_size,
        )
    elif config.backend == StoreBackend.MEMORY:
        return InMemoryRecordStore(list_batch_size=config.list_batch_size)
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
