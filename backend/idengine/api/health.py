from typing import Any, Dict

from fastapi import APIRouter, Depends

from idengine.api.deps import require_backend_token
from idengine.utils.time import utc_now

router = APIRouter()


@router.get("/health")
async def health(_: None = Depends(require_backend_token)) -> Dict[str, Any]:
    return {"status": "ok", "time": utc_now()}
