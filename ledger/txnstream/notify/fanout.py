"""
Per-subscriber fan-out of change events.

Each Subscription owns one ChangeNotifier (and therefore one store watch)
and one producer task. The task moves decoded transactions onto a bounded
queue that the transport drains as an async iterator.

State machine:
    ACTIVE ──(close / disconnect / producer failure)──▶ CLOSED

Invariants:
    - The watch is registered before start() returns
    - Events are delivered in store commit order
    - A full queue suspends the producer; events are never dropped
    - After close() nothing more is delivered and the task is joined
    - A failing subscription never affects other subscriptions

How to change safely:
    - Keep one task per subscription; do not share watches between them
    - Any new failure mode must still end the consumer's iteration
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Callable

from ..crud.models import Transaction
from ..errors import SubscriptionClosedError
from ..store import RecordStore
from .notifier import ChangeNotifier

logger = logging.getLogger(__name__)

_END = object()


class SubscriptionState(Enum):
    """Lifecycle of a subscription."""

    ACTIVE = "active"
    CLOSED = "closed"


class Subscription:
    """Live, non-restartable stream of transactions created after start().

    Example:
        >>> async with Subscription(store).start() as subscription:
        ...     async for txn in subscription:
        ...         print(txn.description)
    """

    def __init__(
        self,
        store: RecordStore,
        queue_capacity: int = 10000,
        prefix: str = "",
        on_close: Callable[[Subscription], None] | None = None,
    ) -> None:
        if queue_capacity < 1:
            raise ValueError(f"queue_capacity must be at least 1, got {queue_capacity}")

        self.id = str(uuid.uuid4())
        self.queue_capacity = queue_capacity
        self.error: Exception | None = None
        self._notifier = ChangeNotifier(store, prefix)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_capacity)
        self._task: asyncio.Task | None = None
        self._on_close = on_close
        self._closed = False

    @property
    def state(self) -> SubscriptionState:
        return SubscriptionState.CLOSED if self._closed else SubscriptionState.ACTIVE

    @property
    def pending(self) -> int:
        """Events queued for the consumer."""
        return self._queue.qsize()

    def start(self) -> Subscription:
        """Register the watch and spawn the producer task.

        Must be called from a running event loop.

        Raises:
            SubscriptionClosedError: If the subscription was already closed
        """
        if self._closed:
            raise SubscriptionClosedError()
        if self._task is not None:
            return self

        self._notifier.open()
        self._task = asyncio.create_task(self._produce(), name=f"subscription-{self.id}")
        logger.info("Subscription started", extra={"subscription_id": self.id})
        return self

    async def _produce(self) -> None:
        try:
            async for txn in self._notifier:
                await self._queue.put(txn)
        except Exception as e:
            self.error = e
            logger.error(
                f"Subscription terminated: {e}",
                extra={"subscription_id": self.id},
                exc_info=True,
            )
        finally:
            self._notifier.close()

        await self._queue.put(_END)

    async def close(self) -> None:
        """Cancel the producer, release the watch and drop queued events.

        Idempotent. Release and untracking happen even if the caller is
        cancelled while the producer is being joined.
        """
        if self._closed:
            return
        self._closed = True

        dropped = 0
        try:
            if self._task is not None:
                self._task.cancel()
                await asyncio.gather(self._task, return_exceptions=True)
        finally:
            self._notifier.close()

            while not self._queue.empty():
                self._queue.get_nowait()
                dropped += 1
            # Wake a consumer blocked in __anext__
            self._queue.put_nowait(_END)

            if self._on_close is not None:
                self._on_close(self)

        logger.info(
            "Subscription closed",
            extra={"subscription_id": self.id, "dropped": dropped},
        )

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Transaction:
        if self._task is None and not self._closed:
            raise RuntimeError("Subscription.start() must be called before iterating")
        if self._closed:
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _END:
            await self.close()
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class SubscriptionManager:
    """Creates subscriptions and tracks the active ones.

    One manager is built at process start and shared by every request
    handler. shutdown() closes whatever is still active.
    """

    def __init__(self, store: RecordStore, queue_capacity: int = 10000) -> None:
        self.store = store
        self.queue_capacity = queue_capacity
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, prefix: str = "") -> Subscription:
        """Create, track and start a new subscription."""
        subscription = Subscription(
            self.store,
            queue_capacity=self.queue_capacity,
            prefix=prefix,
            on_close=self._untrack,
        )
        self._subscriptions[subscription.id] = subscription
        try:
            return subscription.start()
        except Exception:
            self._subscriptions.pop(subscription.id, None)
            raise

    async def shutdown(self) -> None:
        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            await subscription.close()
        if subscriptions:
            logger.info("Closed active subscriptions", extra={"count": len(subscriptions)})

    def _untrack(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)
