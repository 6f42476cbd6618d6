import asyncio

import pytest
from conftest import run

from idengine.db import connection, jobs_repo, scripts_repo, topics_repo
from idengine.schemas.jobs import JobKind
from idengine.services import handlers
from idengine.services.job_context import JobContext, payload_value
from idengine.services.jobs import JobWorker, enqueue, sweep_stale_jobs


def test_every_kind_has_a_handler():
    assert set(handlers.JOB_HANDLERS) == set(JobKind)


def test_payload_value_accepts_camel_case():
    assert payload_value({"scriptId": "s1"}, "script_id") == "s1"
    assert payload_value({"script_id": "s2", "scriptId": "s1"}, "script_id") == "s2"
    assert payload_value({}, "script_id") is None


def test_enqueue_rejects_unknown_kind(db):
    with pytest.raises(ValueError):
        run(enqueue("make_coffee"))


def test_jobs_run_one_at_a_time_in_creation_order(db, monkeypatch):
    seen = []

    async def recorder(ctx):
        running = await jobs_repo.fetch_running_jobs()
        queued = await jobs_repo.fetch_queued_jobs()
        seen.append((ctx.job_id, [j["job_id"] for j in running], len(queued)))
        return {"ok": True}

    monkeypatch.setitem(handlers.JOB_HANDLERS, JobKind.health_check_all, recorder)

    async def scenario():
        ids = [(await enqueue("health_check_all"))["job_id"] for _ in range(3)]
        worker = JobWorker(tick_sec=0)
        while await worker.tick():
            pass
        return ids, [await jobs_repo.fetch_job(job_id) for job_id in ids]

    ids, jobs = run(scenario())
    assert [entry[0] for entry in seen] == ids
    assert [entry[1] for entry in seen] == [[job_id] for job_id in ids]
    assert [entry[2] for entry in seen] == [2, 1, 0]
    assert all(job["status"] == "done" and job["progress"] == 100 for job in jobs)
    assert jobs[0]["result"] == {"ok": True}


def test_overlapping_ticks_do_not_start_a_second_job(db, monkeypatch):
    async def slow(ctx):
        await asyncio.sleep(0.05)
        return None

    monkeypatch.setitem(handlers.JOB_HANDLERS, JobKind.health_check_all, slow)

    async def scenario():
        await enqueue("health_check_all")
        await enqueue("health_check_all")
        worker = JobWorker(tick_sec=0)
        return await asyncio.gather(worker.tick(), worker.tick())

    first, second = run(scenario())
    assert first is not None
    assert second is None


def test_handler_error_marks_job_and_linked_script(db, monkeypatch):
    async def boom(ctx):
        raise RuntimeError("provider exploded")

    monkeypatch.setitem(handlers.JOB_HANDLERS, JobKind.pick_music, boom)

    async def scenario():
        topic = await topics_repo.create_topic("src_test", "Some topic title here")
        script = await scripts_repo.create_script(topic["topic_id"])
        job = await enqueue("pick_music", {"scriptId": script["script_id"]})
        await JobWorker(tick_sec=0).tick()
        return (
            await jobs_repo.fetch_job(job["job_id"]),
            await scripts_repo.fetch_script(script["script_id"]),
            await jobs_repo.fetch_job_events(job["job_id"]),
        )

    job, script, events = run(scenario())
    assert job["status"] == "error"
    assert job["error"] == "provider exploded"
    assert script["status"] == "error"
    assert script["error"] == "provider exploded"
    assert events[-1]["level"] == "error"


def test_progress_never_moves_backwards(db):
    async def scenario():
        job = await enqueue("health_check_all")
        ctx = JobContext(job)
        await ctx.progress(40, "halfway")
        await ctx.progress(20)
        await ctx.progress(250)
        return ctx.current_progress, await jobs_repo.fetch_job(job["job_id"])

    current, job = run(scenario())
    assert current == 100
    assert job["progress"] == 100
    assert job["message"] == "halfway"


def test_stale_running_jobs_are_swept_except_in_flight(db):
    async def scenario():
        stale = await enqueue("health_check_all")
        in_flight = await enqueue("health_check_all")
        fresh = await enqueue("health_check_all")
        for job in (stale, in_flight, fresh):
            await jobs_repo.update_job(job["job_id"], status="running")
        for job in (stale, in_flight):
            await connection.execute(
                "update jobs set updated_at = ? where job_id = ?",
                ("2020-01-01T00:00:00Z", job["job_id"]),
            )
        swept = await sweep_stale_jobs(exclude_job_id=in_flight["job_id"], max_age_sec=60)
        return swept, [
            await jobs_repo.fetch_job(job["job_id"]) for job in (stale, in_flight, fresh)
        ]

    swept, (stale, in_flight, fresh) = run(scenario())
    assert swept == 1
    assert stale["status"] == "error"
    assert stale["error"] == "Job timed out (stale)"
    assert in_flight["status"] == "running"
    assert fresh["status"] == "running"
