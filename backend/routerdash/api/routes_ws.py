from __future__ import annotations

import asyncio
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from routerdash.deps import get_telemetry_hub
from routerdash.logging_setup import get_service_logger
from routerdash.services.telemetry_hub import Subscriber, TelemetryHub

logger = get_service_logger("api.ws")

router = APIRouter()


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    while True:
        message = await subscriber.get()
        await websocket.send_json(message)


async def _drain(websocket: WebSocket) -> None:
    # Clients never send anything useful; reading is how a disconnect shows up.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/connection")
async def ws_connection(websocket: WebSocket, hub: TelemetryHub = Depends(get_telemetry_hub)):
    """
    Push channel: `system_status` and `connection_status` messages.
    The latest snapshot is sent first, then live updates as they are polled.
    """
    await websocket.accept()
    subscriber = hub.subscribe()

    sender = asyncio.create_task(_pump(websocket, subscriber))
    receiver = asyncio.create_task(_drain(websocket))
    send_failed = False
    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if sender in done:
            exc = sender.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                # Only this subscriber is torn down; the browser reconnects on its own.
                send_failed = True
                logger.warning(f"Subscriber {subscriber.id} connection failed: {exc}")
    finally:
        # Detach before any await: the handler itself may be cancelled from here on.
        hub.unsubscribe(subscriber)
        for task in (sender, receiver):
            task.cancel()
        await asyncio.wait({sender, receiver})
        for task in (sender, receiver):
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"Subscriber {subscriber.id} task ended with: {task.exception()!r}")

    if send_failed:
        try:
            await websocket.close()
        except RuntimeError as e:
            logger.debug(f"Close after failure: {e}")
