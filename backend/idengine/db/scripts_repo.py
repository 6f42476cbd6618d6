import json
import uuid
from typing import Any, Dict, List, Optional

from idengine.db.connection import execute, fetchall, fetchone
from idengine.utils.time import utc_now

JSON_FIELDS = {"keywords", "transcript", "storyboard", "music", "seo", "assets"}


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


def _row_to_script(row: Any) -> Dict[str, Any]:
    return {
        "script_id": row["script_id"],
        "topic_id": row["topic_id"],
        "language": row["language"],
        "duration_sec": row["duration_sec"],
        "style_preset": row["style_preset"],
        "voice_style_preset": row["voice_style_preset"],
        "platform": row["platform"],
        "keywords": _loads(row["keywords_json"]) or [],
        "hook": row["hook"],
        "voice_text": row["voice_text"],
        "on_screen_text": row["on_screen_text"],
        "transcript": _loads(row["transcript_json"]),
        "storyboard": _loads(row["storyboard_json"]),
        "music": _loads(row["music_json"]),
        "seo": _loads(row["seo_json"]),
        "assets": _loads(row["assets_json"]) or {},
        "status": row["status"],
        "error": row["error"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


async def create_script(
    topic_id: str,
    language: str = "en",
    duration_sec: str = "30",
    style_preset: str = "classic",
    voice_style_preset: str = "classic",
    platform: str = "youtube_shorts",
    keywords: Optional[List[str]] = None,
    **fields: Any,
) -> Dict[str, Any]:
    script_id = f"script_{uuid.uuid4().hex}"
    now = utc_now()
    await execute(
        """
        insert into scripts (
          script_id, topic_id, language, duration_sec, style_preset,
          voice_style_preset, platform, keywords_json, status, created_at, updated_at
        ) values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            script_id,
            topic_id,
            language,
            duration_sec,
            style_preset,
            voice_style_preset,
            platform,
            json.dumps(keywords or []),
            "draft",
            now,
            now,
        ),
    )
    if fields:
        await update_script(script_id, **fields)
    script = await fetch_script(script_id)
    if not script:  # pragma: no cover - safety guard
        raise RuntimeError("failed to fetch created script")
    return script


async def fetch_script(script_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from scripts where script_id = ?", (script_id,))
    if not row:
        return None
    return _row_to_script(row)


async def list_scripts() -> List[Dict[str, Any]]:
    rows = await fetchall("select * from scripts order by created_at asc, rowid asc")
    return [_row_to_script(row) for row in rows]


async def update_script(script_id: str, **fields: Any) -> None:
    if not fields:
        return
    fields["updated_at"] = utc_now()
    columns = []
    values: List[Any] = []
    for key, value in fields.items():
        if key in JSON_FIELDS:
            columns.append(f"{key}_json = ?")
            values.append(json.dumps(value) if value is not None else None)
        else:
            columns.append(f"{key} = ?")
            values.append(value)
    values.append(script_id)
    await execute(
        f"update scripts set {', '.join(columns)} where script_id = ?",
        tuple(values),
    )
