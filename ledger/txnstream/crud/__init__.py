"""
CRUD layer for txnstream transactions.

This module handles:
- The Transaction record and its JSON storage encoding
- Identifier assignment and required-field checks on create
- Listing and point reads over the record store

Invariants:
    - Records are created exactly once and never mutated or deleted
    - The record key is the canonical text form of its id
"""

from .models import Transaction
from .service import TransactionService

__all__ = [
    "Transaction",
    "TransactionService",
]
