"""
Live notification for txnstream.

This module turns record store writes into per-subscriber streams:
- ChangeNotifier: one prefix watch, yielding decoded transactions
- Subscription: one producer task + bounded queue per subscriber
- SubscriptionManager: creates subscriptions and closes them at shutdown

Invariants:
    - Every active subscription sees every insertion (broadcast)
    - No backfill: a subscription only sees writes made after it started
"""

from .fanout import Subscription, SubscriptionManager, SubscriptionState
from .notifier import ChangeNotifier

__all__ = [
    "ChangeNotifier",
    "Subscription",
    "SubscriptionManager",
    "SubscriptionState",
]
