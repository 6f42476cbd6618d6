from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from idengine.api.deps import require_backend_token
from idengine.services.jobs import status_snapshot
from idengine.utils.time import utc_now
from idengine.websocket.manager import manager

router = APIRouter()


async def _status_event() -> Dict[str, Any]:
    return {"type": "status", "timestamp": utc_now(), "data": await status_snapshot()}


@router.websocket("/events")
async def events(websocket: WebSocket, _: None = Depends(require_backend_token)) -> None:
    """Job and log events for the UI; send "status" to get a fresh worker snapshot."""
    await manager.connect(websocket)
    try:
        await websocket.send_json(await _status_event())
        while True:
            if (await websocket.receive_text()).strip() == "status":
                await websocket.send_json(await _status_event())
    except WebSocketDisconnect:
        manager.disconnect(websocket)
