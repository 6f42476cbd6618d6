import json
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from idengine.db.connection import execute, execute_batch, fetchall
from idengine.utils.time import utc_now

UPSERT_TREND_TOPIC = """
    insert into trend_topics (
      trend_topic_id, category_id, cluster_label, data_json, score, created_at, updated_at
    ) values (?, ?, ?, ?, ?, ?, ?)
    on conflict(trend_topic_id) do update set
      cluster_label = excluded.cluster_label,
      data_json = excluded.data_json,
      score = excluded.score,
      updated_at = excluded.updated_at
"""


def _upsert_params(trend: Dict[str, Any], now: str) -> Tuple[Any, ...]:
    return (
        trend["trend_topic_id"],
        trend.get("category_id"),
        trend.get("cluster_label"),
        json.dumps(trend),
        trend.get("score", 0),
        now,
        now,
    )


async def replace_trend_topics(
    category_ids: Iterable[str], trends: List[Dict[str, Any]]
) -> None:
    """Swap the stored clusters of each category for ``trends``.

    Rows whose cluster no longer exists are deleted; surviving ids keep
    their created_at. Categories with no clusters end up empty.
    """
    now = utc_now()
    statements: List[Tuple[str, Tuple[Any, ...]]] = []
    for category_id in category_ids:
        keep = [t["trend_topic_id"] for t in trends if t.get("category_id") == category_id]
        if keep:
            placeholders = ", ".join("?" for _ in keep)
            statements.append(
                (
                    "delete from trend_topics where category_id = ? "
                    f"and trend_topic_id not in ({placeholders})",
                    (category_id, *keep),
                )
            )
        else:
            statements.append(
                ("delete from trend_topics where category_id = ?", (category_id,))
            )
    statements.extend((UPSERT_TREND_TOPIC, _upsert_params(t, now)) for t in trends)
    await execute_batch(statements)


async def list_trend_topics(category_id: Optional[str] = None) -> List[Dict[str, Any]]:
    if category_id:
        rows = await fetchall(
            "select data_json, updated_at from trend_topics where category_id = ? order by score desc",
            (category_id,),
        )
    else:
        rows = await fetchall(
            "select data_json, updated_at from trend_topics order by score desc"
        )
    return [{**json.loads(row["data_json"]), "updated_at": row["updated_at"]} for row in rows]


async def create_trend_signal(signal: Dict[str, Any]) -> Dict[str, Any]:
    signal_id = f"sig_{uuid.uuid4().hex}"
    created_at = utc_now()
    stored = {**signal, "signal_id": signal_id, "created_at": created_at}
    await execute(
        """
        insert into trend_signals (signal_id, platform, category_id, data_json, score, created_at)
        values (?, ?, ?, ?, ?, ?)
        """,
        (
            signal_id,
            signal.get("platform", "general"),
            signal.get("category_id"),
            json.dumps(stored),
            signal.get("score", 0),
            created_at,
        ),
    )
    return stored


async def list_trend_signals() -> List[Dict[str, Any]]:
    rows = await fetchall(
        "select data_json from trend_signals order by score desc, rowid asc"
    )
    return [json.loads(row["data_json"]) for row in rows]
