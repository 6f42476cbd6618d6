from typing import Any, Dict, Optional

from idengine.core.errors import NotFoundError
from idengine.db import jobs_repo
from idengine.websocket.manager import manager


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def payload_value(payload: Dict[str, Any], key: str) -> Optional[Any]:
    """Read a payload key given in snake_case or camelCase."""
    value = payload.get(key)
    if value is None:
        value = payload.get(_camel(key))
    return value


class JobContext:
    """Handle passed to a job handler for the duration of one run."""

    def __init__(self, job: Dict[str, Any]) -> None:
        self.job_id: str = job["job_id"]
        self.kind: str = job["kind"]
        self.payload: Dict[str, Any] = job.get("payload") or {}
        self.current_progress = 0

    def get(self, key: str) -> Optional[Any]:
        return payload_value(self.payload, key)

    def require_id(self, key: str, entity: str) -> str:
        value = self.get(key)
        if not value:
            raise NotFoundError(entity)
        return str(value)

    async def progress(self, value: int, message: Optional[str] = None) -> int:
        # never move backwards within a run
        value = max(self.current_progress, min(100, max(0, int(value))))
        self.current_progress = value
        fields: Dict[str, Any] = {"progress": value}
        if message:
            fields["message"] = message
        await jobs_repo.update_job(self.job_id, **fields)
        await manager.job_event("job.progress", self.job_id, progress=value, message=message)
        return value

    async def log(self, level: str, message: str) -> None:
        await manager.emit_log(level, f"[{self.kind}] {message}", {"job_id": self.job_id})
