"""
Record store abstraction for txnstream.

This module provides a pluggable embedded key-value backend supporting:
- SQLite (durable, default)
- In-memory (for testing)

Both backends keep one flat, ordered keyspace and support prefix watches
that turn every committed write into a ChangeEvent.

Invariants:
    - put() returns only after the write is committed
    - Watchers are registered synchronously and never miss a later write
    - list() yields entries in ascending key order

How to change safely:
    - New backends must implement the RecordStore protocol
    - Reuse WatchRegistry so watch semantics stay identical across backends
"""

from .base import ChangeEvent, RecordStore, create_record_store
from .memory import InMemoryRecordStore
from .sqlite import SqliteRecordStore
from .watch import Watcher, WatchRegistry

__all__ = [
    # Protocol and types
    "RecordStore",
    "ChangeEvent",
    "Watcher",
    "WatchRegistry",
    # Factory
    "create_record_store",
    # Implementations
    "SqliteRecordStore",
    "InMemoryRecordStore",
]
