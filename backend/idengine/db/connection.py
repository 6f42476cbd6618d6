import asyncio
import sqlite3
from typing import Any, Optional

from idengine.core.config import DB_PATH

db_lock = asyncio.Lock()
db_conn: sqlite3.Connection | None = None


def init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        create table if not exists jobs (
          job_id text primary key,
          kind text not null,
          status text not null,
          created_at text not null,
          updated_at text not null,
          progress integer not null default 0,
          message text,
          payload_json text,
          result_json text,
          error text
        );
        """
    )
    conn.execute(
        """
        create index if not exists idx_jobs_status_created
        on jobs (status, created_at);
        """
    )
    conn.execute(
        """
        create table if not exists job_events (
          event_id integer primary key,
          job_id text not null,
          created_at text not null,
          level text not null,
          message text not null,
          meta_json text
        );
        """
    )
    conn.execute(
        """
        create table if not exists sources (
          source_id text primary key,
          type text not null,
          name text not null,
          category_id text,
          config_json text,
          is_enabled integer not null default 1,
          priority integer not null default 3,
          health_json text,
          last_check_at text,
          notes text,
          created_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists topics (
          topic_id text primary key,
          source_id text not null,
          title text not null,
          translated_title text,
          url text,
          image_url text,
          raw_text text,
          full_content text,
          insights_json text,
          tags_json text,
          extraction_status text not null default 'pending',
          language text not null default 'en',
          score integer not null default 0,
          status text not null default 'new',
          published_at text,
          created_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists scripts (
          script_id text primary key,
          topic_id text not null,
          language text not null default 'en',
          duration_sec text not null default '30',
          style_preset text not null default 'classic',
          voice_style_preset text not null default 'classic',
          platform text not null default 'youtube_shorts',
          keywords_json text,
          hook text,
          voice_text text,
          on_screen_text text,
          transcript_json text,
          storyboard_json text,
          music_json text,
          seo_json text,
          assets_json text,
          status text not null default 'draft',
          error text,
          created_at text not null,
          updated_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists trend_topics (
          trend_topic_id text primary key,
          category_id text,
          cluster_label text,
          data_json text not null,
          score integer not null default 0,
          created_at text not null,
          updated_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists trend_signals (
          signal_id text primary key,
          platform text not null,
          category_id text,
          data_json text not null,
          score integer not null default 0,
          created_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists settings (
          key text primary key,
          value text,
          updated_at text not null
        );
        """
    )
    conn.commit()


async def connect_db(path: str = DB_PATH) -> None:
    global db_conn, db_lock
    db_lock = asyncio.Lock()
    db_conn = sqlite3.connect(path, check_same_thread=False)
    db_conn.row_factory = sqlite3.Row
    init_db(db_conn)


async def close_db() -> None:
    global db_conn
    if db_conn:
        db_conn.close()
        db_conn = None


def _ensure_conn() -> sqlite3.Connection:
    if db_conn is None:
        raise RuntimeError("database not initialized")
    return db_conn


async def execute(query: str, params: tuple[Any, ...] = ()) -> None:
    async with db_lock:
        await asyncio.to_thread(_execute_sync, query, params)


def _execute_sync(query: str, params: tuple[Any, ...]) -> None:
    conn = _ensure_conn()
    conn.execute(query, params)
    conn.commit()


async def fetchone(
    query: str, params: tuple[Any, ...] = ()
) -> Optional[sqlite3.Row]:
    async with db_lock:
        return await asyncio.to_thread(_fetchone_sync, query, params)


def _fetchone_sync(
    query: str, params: tuple[Any, ...]
) -> Optional[sqlite3.Row]:
    conn = _ensure_conn()
    cur = conn.execute(query, params)
    return cur.fetchone()


async def fetchall(
    query: str, params: tuple[Any, ...] = ()
) -> list[sqlite3.Row]:
    async with db_lock:
        return await asyncio.to_thread(_fetchall_sync, query, params)


def _fetchall_sync(
    query: str, params: tuple[Any, ...]
) -> list[sqlite3.Row]:
    conn = _ensure_conn()
    cur = conn.execute(query, params)
    return cur.fetchall()


async def execute_batch(statements: list[tuple[str, tuple[Any, ...]]]) -> None:
    """Run several statements as one transaction under a single lock hold."""
    async with db_lock:
        await asyncio.to_thread(_execute_batch_sync, statements)


def _execute_batch_sync(statements: list[tuple[str, tuple[Any, ...]]]) -> None:
    conn = _ensure_conn()
    with conn:
        for query, params in statements:
            conn.execute(query, params)
