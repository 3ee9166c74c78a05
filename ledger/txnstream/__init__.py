"""
txnstream - Live transaction record store.

This package stores financial transactions (id, description, amount) in an
embedded ordered key-value store and pushes each newly created record to
every subscribed client.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP / WS  │────▶│ Transaction     │
    │             │     │     API     │     │ Service (CRUD)  │
    └─────────────┘     └──────▲──────┘     └────────┬────────┘
                               │                     │ put
                               │                     ▼
                        ┌──────┴──────┐     ┌─────────────────┐
                        │ Subscription│◀────│  Record Store   │
                        │  (fan-out)  │watch│ (SQLite / mem)  │
                        └─────────────┘     └─────────────────┘

Invariants:
    - Every stored key maps to exactly one decodable Transaction
    - Records are created once and never updated or deleted
    - Every active subscription sees every insertion made after it started

How to change safely:
    - Keep the stored JSON field names (id, description, amount) stable
    - New store backends must implement the RecordStore protocol
    - Never drop events in the fan-out path; apply backpressure instead
"""

from ._version import __version__

__all__ = ["__version__"]
