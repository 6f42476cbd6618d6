from typing import Any, Dict, Optional

from fastapi import WebSocket

from idengine.core.logging import logger
from idengine.utils.time import utc_now

LOG_LEVELS = {
    "error": logger.error,
    "warn": logger.warning,
    "info": logger.info,
}


class WebSocketManager:
    """Fan-out of pipeline events (job lifecycle and log lines) to /events subscribers."""

    def __init__(self) -> None:
        self.connections: set[WebSocket] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self.connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.connections.discard(websocket)

    async def broadcast(self, payload: Dict[str, Any]) -> None:
        dead: list[WebSocket] = []
        for conn in list(self.connections):
            try:
                await conn.send_json(payload)
            except RuntimeError:
                dead.append(conn)
        for conn in dead:
            self.connections.discard(conn)

    async def job_event(self, event_type: str, job_id: str, **fields: Any) -> None:
        await self.broadcast({"type": event_type, "job_id": job_id, **fields})

    async def emit_log(
        self, level: str, message: str, meta: Optional[Dict[str, Any]] = None
    ) -> None:
        log_message = message.strip()
        if not log_message:
            return
        LOG_LEVELS.get(level, logger.info)(log_message)
        await self.broadcast(
            {
                "type": "log",
                "level": level,
                "message": log_message,
                "timestamp": utc_now(),
                "meta": meta,
            }
        )


manager = WebSocketManager()
