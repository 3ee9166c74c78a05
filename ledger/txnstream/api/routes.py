"""
Transaction API routes.

Maps the three API operations onto the core:
- transactions query        -> GET  /transactions
- createTransaction         -> POST /transactions
- transactions subscription -> WS   /transactions/subscribe

Invariants:
    - Collaborators come from app.state via dependencies, never globals
    - The subscription watch is registered before the socket is accepted
    - A client disconnect closes its subscription promptly
"""

import asyncio
import logging
from typing import Any

import anyio
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketDisconnect

from ..crud import TransactionService
from ..errors import MissingContextError
from ..notify import Subscription, SubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Transactions"])


# =============================================================================
# Request/Response Models
# =============================================================================


class TransactionInput(BaseModel):
    """Create a transaction."""
    description: str = Field(..., description="Free-form description")
    amount: str = Field(..., description="Decimal amount as text, e.g. '3.50'")


class TransactionResponse(BaseModel):
    """A stored transaction."""
    id: str = Field(..., description="Transaction UUID")
    description: str
    amount: str


class HealthResponse(BaseModel):
    healthy: bool
    records: int
    subscriptions: int


# =============================================================================
# Dependencies
# =============================================================================


def _from_state(app: Any, name: str) -> Any:
    value = getattr(app.state, name, None)
    if value is None:
        raise MissingContextError(name)
    return value


def get_transaction_service(request: Request) -> TransactionService:
    """Get the transaction service from app state."""
    return _from_state(request.app, "transaction_service")


def get_subscription_manager(request: Request) -> SubscriptionManager:
    """Get the subscription manager from app state."""
    return _from_state(request.app, "subscription_manager")


# =============================================================================
# Routes
# =============================================================================


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    service: TransactionService = Depends(get_transaction_service),
):
    """
    List every stored transaction.

    Returns the whole store in key order. No filtering or pagination.
    """
    transactions = await service.list_transactions()
    return [txn.to_dict() for txn in transactions]


@router.post("/transactions", response_model=TransactionResponse)
async def create_transaction(
    body: TransactionInput,
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Create a transaction.

    A fresh id is assigned; description and amount are stored verbatim.
    Active subscribers receive the new record.
    """
    txn = await service.create_transaction(body.description, body.amount)
    return txn.to_dict()


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: str,
    service: TransactionService = Depends(get_transaction_service),
):
    """Get one transaction by id."""
    txn = await service.get_transaction(transaction_id)
    if txn is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    return txn.to_dict()


@router.get("/health", response_model=HealthResponse)
async def health(
    service: TransactionService = Depends(get_transaction_service),
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    return {
        "healthy": service.store.is_open,
        "records": await service.count_transactions(),
        "subscriptions": manager.active_count,
    }


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for txn in subscription:
        await websocket.send_json(txn.to_dict())


async def _wait_disconnect(websocket: WebSocket) -> None:
    # Client messages carry no meaning; only the disconnect matters
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/transactions/subscribe")
async def subscribe_transactions(websocket: WebSocket):
    """
    Stream every transaction created after the connection opens.

    One JSON message per record. No history is replayed; clients that need
    existing records should call GET /transactions first.
    """
    manager: SubscriptionManager = _from_state(websocket.app, "subscription_manager")
    subscription = manager.subscribe()

    tasks: list[asyncio.Task] = []
    try:
        await websocket.accept()
        forward = asyncio.create_task(_forward(websocket, subscription))
        disconnect = asyncio.create_task(_wait_disconnect(websocket))
        tasks = [forward, disconnect]

        done, _ = await asyncio.wait(
            {forward, disconnect},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if forward in done:
            error = forward.exception()
            if error is not None:
                if not isinstance(error, WebSocketDisconnect):
                    logger.warning(
                        f"Subscriber connection lost: {error}",
                        extra={"subscription_id": subscription.id},
                    )
            elif subscription.error is not None:
                await websocket.close(code=1011, reason=type(subscription.error).__name__)
            else:
                await websocket.close(code=1000)
    finally:
        # The server may already be cancelling this handler on disconnect
        with anyio.CancelScope(shield=True):
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await subscription.close()
