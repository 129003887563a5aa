from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mission_orders.api.deps import verify_ws_token
from mission_orders.services.scheduler import scheduler_snapshot
from mission_orders.utils.time import utc_now
from mission_orders.websocket.manager import manager

router = APIRouter()


@router.websocket("/events")
async def events(websocket: WebSocket) -> None:
    """Stream job status, progress and log events.

    Clients may send ``ping`` to check liveness; anything else is ignored.
    """
    if not await verify_ws_token(websocket):
        return
    await manager.connect(websocket)
    await websocket.send_json(
        {"type": "connected", "timestamp": utc_now(), "scheduler": scheduler_snapshot()}
    )
    try:
        while True:
            message = await websocket.receive_text()
            if message.strip() == "ping":
                await websocket.send_json({"type": "pong", "timestamp": utc_now()})
    except WebSocketDisconnect:
        manager.disconnect(websocket)
