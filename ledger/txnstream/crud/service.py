"""
Transaction CRUD service.

The front door to the record store: assigns identifiers, owns the
encode/decode contract and checks required fields. Only create and read
operations exist; records are never updated or deleted.

Invariants:
    - Every created record gets a fresh uuid4 (no reuse check)
    - description and amount are stored verbatim
    - A listing either decodes every entry or fails as a whole
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from ..errors import IntegrityError, ValidationError
from ..store import RecordStore
from .models import Transaction

logger = logging.getLogger(__name__)


def _require_text(name: str, value: Any) -> str:
    if value is None:
        raise ValidationError(f"'{name}' is required", field_name=name)
    if not isinstance(value, str):
        raise ValidationError(f"'{name}' must be text", field_name=name)
    return value


def _decode_entry(key: str, value: bytes) -> Transaction:
    txn = Transaction.decode(value, key=key)
    if txn.key != key:
        raise IntegrityError(f"Record id {txn.id} does not match its key", key=key)
    return txn


class TransactionService:
    """List and create transactions over a RecordStore.

    Example:
        >>> service = TransactionService(store)
        >>> txn = await service.create_transaction("coffee", "3.50")
        >>> [t.description for t in await service.list_transactions()]
        ['coffee']
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def list_transactions(self) -> list[Transaction]:
        """Return every stored transaction in key order.

        The whole store is materialized for each call.

        Raises:
            IntegrityError: If any stored entry fails to decode
            StorageError: If the store read fails
        """
        transactions = []
        async for key, value in self.store.list():
            transactions.append(_decode_entry(key, value))
        return transactions

    async def create_transaction(self, description: Any, amount: Any) -> Transaction:
        """Create and persist a new transaction.

        Args:
            description: Free-form text
            amount: Decimal quantity as text

        Returns:
            The stored Transaction, including its assigned id

        Raises:
            ValidationError: If a field is missing or not text
            StorageError: If the write fails
        """
        txn = Transaction(
            id=uuid.uuid4(),
            description=_require_text("description", description),
            amount=_require_text("amount", amount),
        )

        await self.store.put(txn.key, txn.encode())

        logger.info("Transaction created", extra={"transaction_id": txn.key})
        return txn

    async def get_transaction(self, transaction_id: str | uuid.UUID) -> Transaction | None:
        """Look up one transaction by id.

        Raises:
            ValidationError: If transaction_id is not a UUID
            IntegrityError: If the stored entry fails to decode
        """
        try:
            key = str(uuid.UUID(str(transaction_id)))
        except ValueError as e:
            raise ValidationError(f"Invalid transaction id: {transaction_id}", field_name="id") from e

        value = await self.store.get(key)
        if value is None:
            return None
        return _decode_entry(key, value)

    async def count_transactions(self) -> int:
        return await self.store.count()
