"""Single-lane job worker.

A fixed-interval tick picks the oldest queued job and runs it to completion
before the next one is considered, so at most one handler touches the store
at any time.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from idengine.core.config import STALE_JOB_SEC, STALE_SWEEP_SEC, WORKER_TICK_SEC
from idengine.db import jobs_repo, scripts_repo
from idengine.schemas.jobs import JobKind
from idengine.services.handlers import JOB_HANDLERS
from idengine.services.job_context import JobContext, payload_value
from idengine.utils.time import seconds_since
from idengine.websocket.manager import manager

STALE_JOB_MESSAGE = "Job timed out (stale)"


async def enqueue(kind: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    job_kind = JobKind(kind)
    job_id = await jobs_repo.create_job(job_kind.value, payload or {})
    await manager.emit_log("info", f"job queued {job_id} ({job_kind.value})")
    await manager.job_event("job.queued", job_id, kind=job_kind.value)
    job = await jobs_repo.fetch_job(job_id)
    if not job:  # pragma: no cover - safety guard
        raise RuntimeError("failed to fetch queued job")
    return job


async def _fail_job(job: Dict[str, Any], message: str) -> None:
    job_id = job["job_id"]
    await jobs_repo.update_job(job_id, status="error", error=message, message=message)
    await jobs_repo.record_event(job_id, "error", "job failed", {"error": message})
    script_id = payload_value(job.get("payload") or {}, "script_id")
    if script_id:
        await scripts_repo.update_script(str(script_id), status="error", error=message)
    await manager.emit_log("error", f"job {job_id} ({job['kind']}) failed: {message}")
    await manager.job_event("job.status", job_id, status="error", error=message)


async def process_job(job: Dict[str, Any]) -> None:
    job_id = job["job_id"]
    await jobs_repo.update_job(job_id, status="running", progress=0, message=None)
    await manager.job_event("job.status", job_id, status="running")

    try:
        handler = JOB_HANDLERS[JobKind(job["kind"])]
        result = await handler(JobContext(job))
    except Exception as exc:
        await _fail_job(job, str(exc) or exc.__class__.__name__)
        return

    await jobs_repo.update_job(job_id, status="done", progress=100, result=result)
    await jobs_repo.record_event(job_id, "info", "job completed")
    await manager.job_event("job.status", job_id, status="done")


async def sweep_stale_jobs(
    exclude_job_id: Optional[str] = None, max_age_sec: int = STALE_JOB_SEC
) -> int:
    """Fail running jobs whose last update is older than max_age_sec."""
    swept = 0
    for job in await jobs_repo.fetch_running_jobs():
        if job["job_id"] == exclude_job_id:
            continue
        if seconds_since(job["updated_at"]) <= max_age_sec:
            continue
        await _fail_job(job, STALE_JOB_MESSAGE)
        swept += 1
    return swept


@dataclass
class WorkerState:
    in_flight: bool = False
    current_job_id: Optional[str] = None


class JobWorker:
    def __init__(self, tick_sec: float = WORKER_TICK_SEC) -> None:
        self.tick_sec = tick_sec
        self.state = WorkerState()
        self.started_at = time.time()
        self.processed = 0
        self._task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None

    async def tick(self) -> Optional[str]:
        """Run the oldest queued job, if the lane is free. Returns its id."""
        if self.state.in_flight:
            return None
        self.state.in_flight = True
        try:
            queued = await jobs_repo.fetch_queued_jobs()
            if not queued:
                return None
            job = queued[0]
            self.state.current_job_id = job["job_id"]
            await process_job(job)
            self.processed += 1
            return job["job_id"]
        finally:
            self.state.in_flight = False
            self.state.current_job_id = None

    async def run_forever(self) -> None:
        await manager.emit_log("info", "job worker started")
        while True:
            try:
                await self.tick()
            except Exception as exc:
                await manager.emit_log("error", f"job worker error: {exc}")
            await asyncio.sleep(self.tick_sec)

    async def sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(STALE_SWEEP_SEC)
            try:
                await self.sweep()
            except Exception as exc:
                await manager.emit_log("error", f"stale job sweep error: {exc}")

    async def sweep(self) -> int:
        swept = await sweep_stale_jobs(exclude_job_id=self.state.current_job_id)
        if swept:
            await manager.emit_log("warn", f"marked {swept} stale jobs as failed")
        return swept

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done())

    async def start(self) -> None:
        if self.running:
            return
        await self.sweep()
        self._task = asyncio.create_task(self.run_forever())
        self._sweep_task = asyncio.create_task(self.sweep_forever())

    async def stop(self) -> None:
        tasks = [t for t in (self._task, self._sweep_task) if t and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._sweep_task = None

    async def status_snapshot(self) -> Dict[str, Any]:
        counts = await jobs_repo.count_jobs_by_status()
        return {
            "uptime_sec": int(time.time() - self.started_at),
            "queue_depth": counts.get("queued", 0),
            "jobs": counts,
            "worker": {
                "running": self.running,
                "in_flight": self.state.in_flight,
                "current_job_id": self.state.current_job_id,
                "processed": self.processed,
            },
        }


worker = JobWorker()


async def start_worker() -> None:
    await worker.start()


async def status_snapshot() -> Dict[str, Any]:
    return await worker.status_snapshot()
