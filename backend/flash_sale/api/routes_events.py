import asyncio
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from flash_sale.utils.logs import get_logger

router = APIRouter()
log = get_logger("notifier")


async def _drain(websocket: WebSocket) -> None:
    # clients only listen; returns once the client goes away
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _push(websocket: WebSocket, sub) -> None:
    while True:
        event = await sub.get()
        await websocket.send_json(event.model_dump(mode="json"))


@router.websocket("/ws/events")
async def events(websocket: WebSocket, userId: Optional[str] = None):
    """
    Push committed stock and reservation changes. With ?userId=... only that
    user's reservation facts are sent; stock changes always are.
    """
    notifier = websocket.app.state.notifier
    # subscribe before accepting so nothing committed after the handshake is missed
    sub = notifier.subscribe(asyncio.get_running_loop(), actor_id=userId)
    tasks = []
    try:
        await websocket.accept()
        tasks = [
            asyncio.ensure_future(_drain(websocket)),
            asyncio.ensure_future(_push(websocket, sub)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except WebSocketDisconnect:
        pass
    finally:
        notifier.unsubscribe(sub)
        for task in tasks:
            task.cancel()
        log.debug("websocket closed actor=%s", userId)
