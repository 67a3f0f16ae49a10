import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from storefront.services.events import Subscription, get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.model_dump(mode="json"))


@router.websocket("/ws")
async def change_stream(websocket: WebSocket):
    """Push appointment and capacity changes to a connected view.

    Clients are expected to fold the stream idempotently; inbound messages
    are read only to notice the disconnect.
    """

    subscription = get_change_feed().subscribe()
    await websocket.accept()
    logger.info("Change stream subscriber connected")
    forwarder = asyncio.create_task(_forward(websocket, subscription))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Change stream subscriber disconnected")
    finally:
        forwarder.cancel()
        subscription.close()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Change stream forwarder failed")
