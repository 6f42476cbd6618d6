from typing import Optional

from idengine.db.connection import execute, fetchone
from idengine.utils.time import utc_now


async def get_setting(key: str) -> Optional[str]:
    row = await fetchone("select value from settings where key = ?", (key,))
    if not row:
        return None
    return row["value"]


async def set_setting(key: str, value: Optional[str]) -> None:
    await execute(
        """
        insert into settings (key, value, updated_at) values (?, ?, ?)
        on conflict(key) do update set
          value = excluded.value,
          updated_at = excluded.updated_at
        """,
        (key, value, utc_now()),
    )
