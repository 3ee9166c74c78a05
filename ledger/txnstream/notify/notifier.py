"""
Change notifier: record store watch events as decoded transactions.

The notifier owns one prefix watch on the record store and yields a
Transaction for every insertion under that prefix. It is independent of
the CRUD service and its callers; it only observes committed writes.
"""

from __future__ import annotations

import logging

from ..crud.models import Transaction
from ..store import RecordStore, Watcher

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Async iterator of newly written transactions.

    The watch is registered by open(), not lazily on first iteration, so
    writes made right after open() are never missed.

    Raises during iteration:
        IntegrityError: If a written value does not decode to a Transaction
    """

    def __init__(self, store: RecordStore, prefix: str = "") -> None:
        self.store = store
        self.prefix = prefix
        self._watcher: Watcher | None = None

    @property
    def is_open(self) -> bool:
        return self._watcher is not None and not self._watcher.closed

    def open(self) -> None:
        if self._watcher is None:
            self._watcher = self.store.watch(self.prefix)

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.close()

    def __aiter__(self) -> ChangeNotifier:
        return self

    async def __anext__(self) -> Transaction:
        if self._watcher is None:
            raise RuntimeError("ChangeNotifier.open() must be called before iterating")

        event = await self._watcher.__anext__()
        logger.debug("Change event received", extra={"key": event.key})
        return Transaction.decode(event.value, key=event.key)
