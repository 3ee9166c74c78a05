"""
API module for the txnstream server.

This module provides the external HTTP/WebSocket interface:
- transactions query and createTransaction mutation over HTTP
- transactions subscription over WebSocket

Invariants:
    - Handlers never hold global state; collaborators live in app.state
    - Failures are returned as {"error", "error_code"} JSON

How to change safely:
    - Add new routes, don't change the shape of existing responses
    - Keep stored field names and response field names identical
"""

from .app import create_app
from .routes import router

__all__ = [
    "create_app",
    "router",
]
