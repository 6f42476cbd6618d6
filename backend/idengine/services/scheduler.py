import asyncio
from typing import Optional

from idengine.core.config import AUTO_FETCH_INTERVAL_SEC
from idengine.db import jobs_repo
from idengine.schemas.jobs import JobKind
from idengine.services.ingestion import can_fetch_more_topics
from idengine.services.jobs import enqueue
from idengine.websocket.manager import manager

_scheduler_task: Optional[asyncio.Task] = None


async def _fetch_pending() -> bool:
    for job in await jobs_repo.fetch_queued_jobs():
        if job["kind"] == JobKind.fetch_topics.value:
            return True
    return False


async def queue_fetch_job() -> Optional[str]:
    """Queue a fetch_topics job unless the quota is spent or one is waiting."""
    quota = await can_fetch_more_topics()
    if not quota["allowed"]:
        await manager.emit_log("info", "auto-fetch skipped: topic quota reached")
        return None
    if await _fetch_pending():
        return None
    job = await enqueue(JobKind.fetch_topics.value, {"source": "scheduler"})
    return job["job_id"]


async def _scheduler_loop(interval_sec: float) -> None:
    await manager.emit_log("info", "auto-fetch scheduler started")
    while True:
        try:
            await queue_fetch_job()
        except Exception as exc:
            await manager.emit_log("error", f"auto-fetch scheduler error: {exc}")
        await asyncio.sleep(interval_sec)


async def start_scheduler(interval_sec: float = AUTO_FETCH_INTERVAL_SEC) -> None:
    global _scheduler_task
    if _scheduler_task and not _scheduler_task.done():
        return
    _scheduler_task = asyncio.create_task(_scheduler_loop(interval_sec))


async def stop_scheduler() -> None:
    global _scheduler_task
    if _scheduler_task and not _scheduler_task.done():
        _scheduler_task.cancel()
    _scheduler_task = None
