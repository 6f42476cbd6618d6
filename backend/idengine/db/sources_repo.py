import json
import uuid
from typing import Any, Dict, List, Optional

from idengine.db.connection import execute, fetchall, fetchone
from idengine.utils.time import utc_now

DEFAULT_HEALTH: Dict[str, Any] = {"status": "pending", "failures_count": 0}


def _row_to_source(row: Any) -> Dict[str, Any]:
    health = json.loads(row["health_json"]) if row["health_json"] else {}
    return {
        "source_id": row["source_id"],
        "type": row["type"],
        "name": row["name"],
        "category_id": row["category_id"],
        "config": json.loads(row["config_json"]) if row["config_json"] else {},
        "is_enabled": bool(row["is_enabled"]),
        "priority": row["priority"],
        "health": {**DEFAULT_HEALTH, **health},
        "last_check_at": row["last_check_at"],
        "notes": row["notes"],
        "created_at": row["created_at"],
    }


async def create_source(
    source_type: str,
    name: str,
    category_id: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    is_enabled: bool = True,
    priority: int = 3,
    health: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    source_id = f"src_{uuid.uuid4().hex}"
    await execute(
        """
        insert into sources (
          source_id, type, name, category_id, config_json, is_enabled,
          priority, health_json, notes, created_at
        ) values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            source_id,
            source_type,
            name,
            category_id,
            json.dumps(config or {}),
            1 if is_enabled else 0,
            priority,
            json.dumps({**DEFAULT_HEALTH, **(health or {})}),
            notes,
            utc_now(),
        ),
    )
    source = await fetch_source(source_id)
    if not source:  # pragma: no cover - safety guard
        raise RuntimeError("failed to fetch created source")
    return source


async def fetch_source(source_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from sources where source_id = ?", (source_id,))
    if not row:
        return None
    return _row_to_source(row)


async def list_sources(enabled_only: bool = False) -> List[Dict[str, Any]]:
    if enabled_only:
        rows = await fetchall(
            "select * from sources where is_enabled = 1 order by created_at asc, rowid asc"
        )
    else:
        rows = await fetchall("select * from sources order by created_at asc, rowid asc")
    return [_row_to_source(row) for row in rows]


async def set_enabled(source_id: str, is_enabled: bool) -> None:
    await execute(
        "update sources set is_enabled = ? where source_id = ?",
        (1 if is_enabled else 0, source_id),
    )


async def update_source_health(
    source_id: str, health: Dict[str, Any]
) -> Optional[Dict[str, Any]]:
    await execute(
        "update sources set health_json = ?, last_check_at = ? where source_id = ?",
        (json.dumps(health), utc_now(), source_id),
    )
    return await fetch_source(source_id)
