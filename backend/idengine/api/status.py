from typing import Any, Dict

from fastapi import APIRouter, Depends

from idengine.api.deps import require_backend_token
from idengine.services.jobs import status_snapshot
from idengine.websocket.manager import manager

router = APIRouter()


@router.get("/status")
async def status(_: None = Depends(require_backend_token)) -> Dict[str, Any]:
    snapshot = await status_snapshot()
    snapshot["subscribers"] = manager.subscriber_count
    return snapshot
