"""
FastAPI application factory for the txnstream server.

This module creates the FastAPI app with:
- Record store, transaction service and subscription manager lifecycle
- Transaction routes under /v1
- Structured JSON error responses

Usage:
    uvicorn --factory ledger.txnstream.api.app:create_app --port 8000
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import ServerConfig
from ..crud import TransactionService
from ..errors import TxnStreamError
from ..notify import SubscriptionManager
from ..store import RecordStore, create_record_store
from .routes import router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
}


async def handle_txnstream_error(request: Request, exc: TxnStreamError) -> JSONResponse:
    """Render a TxnStreamError as a structured error response."""
    status = ERROR_STATUS.get(exc.code, 500)
    if status >= 500:
        logger.error(f"HTTP handler error: {exc}", exc_info=exc)
    return JSONResponse(
        {"error": exc.message, "error_code": exc.code, "details": exc.details},
        status_code=status,
    )


def create_app(
    config: ServerConfig | None = None,
    store: RecordStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (loaded from env if not provided)
        store: Optional pre-built record store (built from config if not provided)

    Returns:
        FastAPI application
    """
    config = config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Open the store and wire the shared collaborators."""
        record_store = store or create_record_store(config.storage)
        await record_store.open()

        manager = SubscriptionManager(
            record_store,
            queue_capacity=config.subscriptions.queue_capacity,
        )
        app.state.record_store = record_store
        app.state.transaction_service = TransactionService(record_store)
        app.state.subscription_manager = manager

        try:
            yield
        finally:
            await manager.shutdown()
            await record_store.close()

    app = FastAPI(
        title="txnstream",
        description="Transaction record store with live subscriptions.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(TxnStreamError, handle_txnstream_error)
    app.include_router(router, prefix="/v1")

    @app.get("/")
    async def index():
        return {
            "service": "txnstream",
            "version": __version__,
            "endpoints": {
                "transactions": "GET /v1/transactions",
                "create_transaction": "POST /v1/transactions",
                "get_transaction": "GET /v1/transactions/{id}",
                "subscribe": "WS /v1/transactions/subscribe",
                "health": "GET /v1/health",
            },
        }

    return app
