from contextlib import asynccontextmanager

from fastapi import FastAPI

from idengine.api import events, health, jobs, sources, status, trends
from idengine.core.config import AUTO_FETCH_ENABLED, BACKEND_PORT, DB_PATH, ensure_dirs
from idengine.core.logging import attach_file_handler
from idengine.db.connection import close_db, connect_db
from idengine.services.jobs import start_worker, worker
from idengine.services.scheduler import start_scheduler, stop_scheduler
from idengine.websocket.manager import manager


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_dirs()
    attach_file_handler()
    await connect_db(DB_PATH)
    await start_worker()
    if AUTO_FETCH_ENABLED:
        await start_scheduler()
    await manager.emit_log("info", "backend started")
    yield
    await stop_scheduler()
    await worker.stop()
    await close_db()


app = FastAPI(title="Idengine Backend", version="0.1.0", lifespan=lifespan)

app.include_router(health.router)
app.include_router(status.router)
app.include_router(jobs.router)
app.include_router(trends.router)
app.include_router(sources.router)
app.include_router(events.router)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "idengine.main:app",
        host="127.0.0.1",
        port=BACKEND_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    run()
