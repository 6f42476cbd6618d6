import json
import uuid
from typing import Any, Dict, List, Optional

from idengine.db.connection import execute, fetchall, fetchone
from idengine.utils.time import utc_now

JSON_FIELDS = {"insights", "tags"}


def _row_to_topic(row: Any) -> Dict[str, Any]:
    return {
        "topic_id": row["topic_id"],
        "source_id": row["source_id"],
        "title": row["title"],
        "translated_title": row["translated_title"],
        "url": row["url"],
        "image_url": row["image_url"],
        "raw_text": row["raw_text"],
        "full_content": row["full_content"],
        "insights": json.loads(row["insights_json"]) if row["insights_json"] else None,
        "tags": json.loads(row["tags_json"]) if row["tags_json"] else [],
        "extraction_status": row["extraction_status"],
        "language": row["language"],
        "score": row["score"],
        "status": row["status"],
        "published_at": row["published_at"],
        "created_at": row["created_at"],
    }


async def create_topic(
    source_id: str,
    title: str,
    raw_text: Optional[str] = None,
    url: Optional[str] = None,
    image_url: Optional[str] = None,
    tags: Optional[List[str]] = None,
    score: int = 0,
    language: str = "en",
    status: str = "new",
    extraction_status: str = "pending",
    published_at: Optional[str] = None,
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    topic_id = f"topic_{uuid.uuid4().hex}"
    await execute(
        """
        insert into topics (
          topic_id, source_id, title, url, image_url, raw_text, tags_json,
          extraction_status, language, score, status, published_at, created_at
        ) values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            topic_id,
            source_id,
            title,
            url,
            image_url,
            raw_text,
            json.dumps(tags or []),
            extraction_status,
            language,
            score,
            status,
            published_at,
            created_at or utc_now(),
        ),
    )
    topic = await fetch_topic(topic_id)
    if not topic:  # pragma: no cover - safety guard
        raise RuntimeError("failed to fetch created topic")
    return topic


async def fetch_topic(topic_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from topics where topic_id = ?", (topic_id,))
    if not row:
        return None
    return _row_to_topic(row)


async def list_topics(created_after: Optional[str] = None) -> List[Dict[str, Any]]:
    if created_after:
        rows = await fetchall(
            "select * from topics where created_at > ? order by created_at asc, rowid asc",
            (created_after,),
        )
    else:
        rows = await fetchall("select * from topics order by created_at asc, rowid asc")
    return [_row_to_topic(row) for row in rows]


async def update_topic(topic_id: str, **fields: Any) -> None:
    if not fields:
        return
    columns = []
    values: List[Any] = []
    for key, value in fields.items():
        if key in JSON_FIELDS:
            columns.append(f"{key}_json = ?")
            values.append(json.dumps(value) if value is not None else None)
        else:
            columns.append(f"{key} = ?")
            values.append(value)
    values.append(topic_id)
    await execute(
        f"update topics set {', '.join(columns)} where topic_id = ?",
        tuple(values),
    )
