"""
Prefix watchers shared by all record store backends.

A Watcher is an independent, unbounded buffer of ChangeEvents for one
caller. The WatchRegistry owned by a store publishes each committed write
to every watcher whose prefix matches.

Invariants:
    - Every watcher sees every matching event (broadcast, not competing)
    - publish() never blocks, so a slow watcher cannot stall writers
    - Once closed, a watcher yields nothing further
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .base import ChangeEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class Watcher:
    """Live sequence of change events for keys under a prefix.

    Usable as an async iterator and as a (sync or async) context manager.

    Example:
        >>> async with store.watch("") as watcher:
        ...     async for event in watcher:
        ...         print(event.key)
    """

    def __init__(
        self,
        prefix: str,
        on_close: Optional[Callable[["Watcher"], None]] = None,
    ) -> None:
        self.prefix = prefix
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Events buffered but not yet consumed."""
        return self._queue.qsize()

    def matches(self, key: str) -> bool:
        return key.startswith(self.prefix)

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the watcher. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close(self)
        # Wake a consumer blocked in __anext__
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Watcher":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    async def __aenter__(self) -> "Watcher":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class WatchRegistry:
    """Set of live watchers for one store."""

    def __init__(self) -> None:
        self._watchers: List[Watcher] = []

    def __len__(self) -> int:
        return len(self._watchers)

    def register(self, prefix: str) -> Watcher:
        watcher = Watcher(prefix, on_close=self._discard)
        self._watchers.append(watcher)
        logger.debug("Watcher registered", extra={"prefix": prefix})
        return watcher

    def publish(self, event: ChangeEvent) -> int:
        """Deliver event to every matching watcher.

        Returns:
            Number of watchers the event was delivered to
        """
        delivered = 0
        for watcher in list(self._watchers):
            if watcher.matches(event.key):
                watcher.deliver(event)
                delivered += 1
        return delivered

    def close_all(self) -> None:
        for watcher in list(self._watchers):
            watcher.close()
        self._watchers.clear()

    def _discard(self, watcher: Watcher) -> None:
        if watcher in self._watchers:
            self._watchers.remove(watcher)
            logger.debug("Watcher released", extra={"prefix": watcher.prefix})
