import json
import uuid
from typing import Any, Dict, List, Optional

from idengine.db.connection import execute, fetchall, fetchone
from idengine.utils.time import utc_now


def _row_to_job(row: Any) -> Dict[str, Any]:
    return {
        "job_id": row["job_id"],
        "kind": row["kind"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "progress": row["progress"],
        "message": row["message"],
        "payload": json.loads(row["payload_json"]) if row["payload_json"] else {},
        "result": json.loads(row["result_json"]) if row["result_json"] else None,
        "error": row["error"],
    }


async def create_job(kind: str, payload: Dict[str, Any]) -> str:
    job_id = f"job_{uuid.uuid4().hex}"
    now = utc_now()
    await execute(
        """
        insert into jobs (
          job_id, kind, status, created_at, updated_at, progress, message,
          payload_json, result_json, error
        )
        values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            job_id,
            kind,
            "queued",
            now,
            now,
            0,
            None,
            json.dumps(payload),
            None,
            None,
        ),
    )
    return job_id


async def update_job(job_id: str, **fields: Any) -> None:
    if not fields:
        return
    fields["updated_at"] = utc_now()
    columns = []
    values: List[Any] = []
    for key, value in fields.items():
        if key in {"payload", "result"}:
            columns.append(f"{key}_json = ?")
            values.append(json.dumps(value) if value is not None else None)
        else:
            columns.append(f"{key} = ?")
            values.append(value)
    values.append(job_id)
    await execute(
        f"update jobs set {', '.join(columns)} where job_id = ?",
        tuple(values),
    )


async def fetch_job(job_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from jobs where job_id = ?", (job_id,))
    if row is None:
        return None
    return _row_to_job(row)


async def fetch_jobs(limit: int = 200) -> List[Dict[str, Any]]:
    rows = await fetchall(
        "select * from jobs order by created_at desc, rowid desc limit ?", (limit,)
    )
    return [_row_to_job(row) for row in rows]


async def fetch_queued_jobs() -> List[Dict[str, Any]]:
    # created_at has second resolution; rowid keeps insertion order on ties
    rows = await fetchall(
        "select * from jobs where status = 'queued' order by created_at asc, rowid asc"
    )
    return [_row_to_job(row) for row in rows]


async def fetch_running_jobs() -> List[Dict[str, Any]]:
    rows = await fetchall(
        "select * from jobs where status = 'running' order by created_at asc, rowid asc"
    )
    return [_row_to_job(row) for row in rows]


async def count_jobs_by_status() -> Dict[str, int]:
    rows = await fetchall("select status, count(*) as total from jobs group by status")
    return {row["status"]: row["total"] for row in rows}


async def record_event(
    job_id: str, level: str, message: str, meta: Optional[Dict[str, Any]] = None
) -> None:
    await execute(
        """
        insert into job_events (job_id, created_at, level, message, meta_json)
        values (?, ?, ?, ?, ?)
        """,
        (job_id, utc_now(), level, message, json.dumps(meta) if meta else None),
    )


async def fetch_job_events(job_id: str) -> List[Dict[str, Any]]:
    rows = await fetchall(
        "select * from job_events where job_id = ? order by event_id asc", (job_id,)
    )
    return [
        {
            "created_at": row["created_at"],
            "level": row["level"],
            "message": row["message"],
            "meta": json.loads(row["meta_json"]) if row["meta_json"] else None,
        }
        for row in rows
    ]
