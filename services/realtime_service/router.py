"""
WebSocket sink for the event bus.

A connection is one Subscriber. It is subscribed to its own user topic on
connect; product stock and the admin feed are opt-in through client
messages. Events are only seen while connected, so a product subscription
is answered with a current stock snapshot.
"""
import asyncio
import contextlib

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from shared.config.database import AsyncSessionLocal
from shared.security import Identity, identity_from_token
from services.product_service.service import ProductService
from .bus import ADMIN_TOPIC, EventBus, Subscriber, product_topic, user_topic
from .dependencies import get_ws_event_bus

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Realtime"])


async def load_stock_snapshots(product_ids: list[int]) -> list[dict]:
    async with AsyncSessionLocal() as db:
        snapshots = await ProductService.stock_snapshots(db, product_ids)
    return [s.model_dump() for s in snapshots]


def _product_ids(message: dict) -> list[int] | None:
    ids = message.get("productIds")
    if not isinstance(ids, list):
        return None
    try:
        return [int(i) for i in ids]
    except (TypeError, ValueError):
        return None


async def handle_client_message(bus: EventBus, subscriber: Subscriber, identity: Identity, message: dict,
                                snapshot_loader=load_stock_snapshots) -> dict | None:
    """Apply one client request; returns the reply to send back, if any."""
    action = message.get("action")

    if action == "subscribe_product_stock":
        product_ids = _product_ids(message)
        if product_ids is None:
            return {"type": "error", "message": "Product IDs must be an array"}
        for product_id in product_ids:
            bus.subscribe(product_topic(product_id), subscriber)
        return {"type": "initial_stock_data", "products": await snapshot_loader(product_ids)}

    if action == "unsubscribe_product_stock":
        for product_id in _product_ids(message) or []:
            bus.unsubscribe(product_topic(product_id), subscriber)
        return None

    if action == "subscribe_admin_analytics":
        if not identity.is_admin:
            return {"type": "error", "message": "Unauthorized: Admin access required"}
        bus.subscribe(ADMIN_TOPIC, subscriber)
        return {"type": "subscribed", "topic": ADMIN_TOPIC}

    if action == "unsubscribe_admin_analytics":
        bus.unsubscribe(ADMIN_TOPIC, subscriber)
        return None

    return {"type": "error", "message": f"Unknown action: {action}"}


async def _pump(websocket: WebSocket, subscriber: Subscriber):
    while True:
        event = await subscriber.get()
        await websocket.send_json(event.to_message())


@router.websocket("/ws")
async def events_socket(websocket: WebSocket, token: str | None = Query(default=None)):
    identity = identity_from_token(token)
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    bus = get_ws_event_bus(websocket)
    await websocket.accept()
    subscriber = Subscriber(name=f"ws:{identity.actor}")
    bus.subscribe(user_topic(identity.user_id), subscriber)
    logger.info("socket_connected", user_id=identity.user_id, role=identity.role)

    pump = asyncio.create_task(_pump(websocket, subscriber))
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Messages must be valid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Messages must be JSON objects"})
                continue
            reply = await handle_client_message(bus, subscriber, identity, message)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await pump
        bus.unsubscribe_all(subscriber)
        logger.info("socket_disconnected", user_id=identity.user_id, dropped=subscriber.dropped)
