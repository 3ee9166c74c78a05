"""
Transaction record and its storage encoding.

Stored values are JSON objects with exactly the fields ``id``,
``description`` and ``amount``. The key of a record is the canonical text
form of its id.

Invariants:
    - id is assigned once at creation and never changes
    - amount is kept as text and never parsed as a number
    - Any value that does not decode to this shape is an IntegrityError
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any

from ..errors import IntegrityError

FIELDS = ("id", "description", "amount")


@dataclass(frozen=True)
class Transaction:
    """A persisted financial transaction.

    Attributes:
        id: Globally unique identifier (UUID4)
        description: Free-form text supplied by the client
        amount: Decimal quantity kept as text to avoid precision loss
    """

    id: uuid.UUID
    description: str
    amount: str

    @property
    def key(self) -> str:
        """Storage key for this record."""
        return str(self.id)

    def to_dict(self) -> dict[str, str]:
        return {
            "id": str(self.id),
            "description": self.description,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: Any, key: str | None = None) -> Transaction:
        """Build a Transaction from its decoded JSON form.

        Raises:
            IntegrityError: If the data does not have the record shape
        """
        if not isinstance(data, dict):
            raise IntegrityError(f"Record is not an object: {type(data).__name__}", key=key)

        missing = [name for name in FIELDS if name not in data]
        if missing:
            raise IntegrityError(f"Record is missing fields: {', '.join(missing)}", key=key)

        for name in ("description", "amount"):
            if not isinstance(data[name], str):
                raise IntegrityError(f"Record field '{name}' is not text", key=key)

        try:
            txn_id = uuid.UUID(str(data["id"]))
        except ValueError as e:
            raise IntegrityError(f"Record id is not a UUID: {e}", key=key) from e

        return cls(id=txn_id, description=data["description"], amount=data["amount"])

    def encode(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, value: bytes, key: str | None = None) -> Transaction:
        """Decode stored bytes into a Transaction.

        Raises:
            IntegrityError: If value is not valid JSON of the record shape
        """
        try:
            data = json.loads(value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise IntegrityError(f"Failed to parse record as JSON: {e}", key=key) from e
        return cls.from_dict(data, key=key)
