"""Topic ingestion for the fetch_topics job: quota, feed polling, dedup."""

import json
import random
from datetime import datetime, timezone
from itertools import zip_longest
from typing import Any, Dict, List, Optional, Tuple

import httpx

from idengine.core.config import (
    DAILY_TOPIC_LIMIT,
    FEED_FETCH_TIMEOUT_SEC,
    TOPICS_PER_FETCH,
    TOPICS_PER_HOUR,
)
from idengine.db import settings_repo, sources_repo, topics_repo
from idengine.services.feeds import extract_topic_tags, fetch_feed_items
from idengine.services.http_client import open_client
from idengine.services.job_context import JobContext
from idengine.services.similarity import check_topic_similarity
from idengine.services.text_utils import strip_html

STATS_KEY = "topic_ingestion_stats"
DEMO_SOURCE_ID = "demo"
MIN_TITLE_CHARS = 30
MIN_TITLE_WORDS = 4
MAX_DESCRIPTION_CHARS = 500

DEMO_TOPICS = (
    "AI video tools are changing how short-form creators edit their clips",
    "Scientists explain why deep sleep matters more than total sleep hours",
    "Five budget travel mistakes that quietly double the cost of a trip",
    "Why retro handheld consoles are selling out again this season",
    "The hidden history behind the most common kitchen spice in the world",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def get_ingestion_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    current = now or _now()
    date_str = current.strftime("%Y-%m-%d")
    fresh = {
        "date": date_str,
        "hour": current.hour,
        "daily_count": 0,
        "hourly_count": 0,
        "last_fetch_at": None,
    }
    raw = await settings_repo.get_setting(STATS_KEY)
    if not raw:
        return fresh
    stats = json.loads(raw)
    if stats.get("date") != date_str:
        return fresh
    if stats.get("hour") != current.hour:
        return {**stats, "hour": current.hour, "hourly_count": 0}
    return stats


async def update_ingestion_stats(added: int) -> None:
    stats = await get_ingestion_stats()
    stats["daily_count"] += added
    stats["hourly_count"] += added
    stats["last_fetch_at"] = _now().strftime("%Y-%m-%dT%H:%M:%SZ")
    await settings_repo.set_setting(STATS_KEY, json.dumps(stats))


async def can_fetch_more_topics() -> Dict[str, Any]:
    stats = await get_ingestion_stats()
    remaining_daily = max(0, DAILY_TOPIC_LIMIT - stats["daily_count"])
    remaining_hourly = max(0, TOPICS_PER_HOUR - stats["hourly_count"])
    return {
        "allowed": remaining_daily > 0 and remaining_hourly > 0,
        "remaining_daily": remaining_daily,
        "remaining_hourly": remaining_hourly,
    }


def source_language(config: Dict[str, Any]) -> str:
    if config.get("language"):
        return config["language"]
    return "ru" if "рус" in (config.get("description") or "").lower() else "en"


def is_title_too_short(title: str) -> bool:
    words = [w for w in title.split() if len(w) > 1]
    return len(title.strip()) < MIN_TITLE_CHARS and len(words) < MIN_TITLE_WORDS


def _interleave(batches: List[Tuple[Dict[str, Any], List[Dict[str, Any]]]]):
    """Round-robin across sources so one large feed does not fill the quota."""
    columns = [[(source, item) for item in items] for source, items in batches]
    for row in zip_longest(*columns):
        for entry in row:
            if entry is not None:
                yield entry


async def _seed_demo_topics(limit: int) -> int:
    added = 0
    for title in DEMO_TOPICS:
        if added >= limit:
            break
        if not (await check_topic_similarity(title)).passed:
            continue
        await topics_repo.create_topic(
            DEMO_SOURCE_ID,
            title,
            raw_text=title,
            tags=extract_topic_tags(title),
            score=random.randint(70, 99),
        )
        added += 1
    return added


async def _fetch_rss_batches(
    ctx: JobContext, sources: List[Dict[str, Any]], client: httpx.AsyncClient
) -> List[Tuple[Dict[str, Any], List[Dict[str, Any]]]]:
    batches = []
    for source in sources:
        url = source["config"]["url"]
        try:
            items = await fetch_feed_items(client, url)
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            # one broken feed must not stop the others
            await ctx.log("warn", f"feed {source['name']} skipped: {exc}")
            continue
        batches.append((source, items))
    return batches


async def fetch_topics(
    ctx: JobContext, client: Optional[httpx.AsyncClient] = None
) -> Dict[str, Any]:
    await ctx.progress(5, "checking ingestion quota")
    quota = await can_fetch_more_topics()
    if not quota["allowed"]:
        await ctx.log("info", "topic quota exhausted, nothing fetched")
        return {"added": 0, "duplicates": 0, "quota_exceeded": True}
    limit = min(quota["remaining_daily"], quota["remaining_hourly"], TOPICS_PER_FETCH)

    sources = await sources_repo.list_sources(enabled_only=True)
    if not sources:
        added = await _seed_demo_topics(limit)
        if added:
            await update_ingestion_stats(added)
        await ctx.log("info", f"no enabled sources, seeded {added} demo topics")
        return {"added": added, "duplicates": 0, "demo": True}

    rss_sources = [s for s in sources if s["type"] == "rss" and s["config"].get("url")]
    await ctx.progress(10, f"fetching {len(rss_sources)} feeds")
    if client is None:
        async with open_client(FEED_FETCH_TIMEOUT_SEC) as owned:
            batches = await _fetch_rss_batches(ctx, rss_sources, owned)
    else:
        batches = await _fetch_rss_batches(ctx, rss_sources, client)
    await ctx.progress(50, f"fetched {len(batches)}/{len(rss_sources)} feeds")

    added = 0
    duplicates = 0
    for source, item in _interleave(batches):
        if added >= limit:
            break
        title = strip_html(item["title"])
        description = strip_html(item["description"])[:MAX_DESCRIPTION_CHARS]
        if is_title_too_short(title):
            continue
        similarity = await check_topic_similarity(title)
        if not similarity.passed:
            duplicates += 1
            if item.get("image_url") and similarity.similar_topic_id:
                existing = await topics_repo.fetch_topic(similarity.similar_topic_id)
                if existing and not existing["image_url"]:
                    await topics_repo.update_topic(
                        similarity.similar_topic_id, image_url=item["image_url"]
                    )
            continue
        language = source_language(source["config"])
        await topics_repo.create_topic(
            source["source_id"],
            title,
            raw_text=description or None,
            url=item.get("link"),
            image_url=item.get("image_url"),
            tags=extract_topic_tags(title, language),
            score=random.randint(70, 99),
            language=language,
            published_at=item.get("published_at"),
        )
        added += 1
    await ctx.progress(90, f"added {added} feed topics")

    for source in sources:
        if added >= limit:
            break
        if source["type"] not in {"manual", "url"}:
            continue
        config = source["config"]
        if not (await check_topic_similarity(source["name"])).passed:
            duplicates += 1
            continue
        language = config.get("language") or "en"
        await topics_repo.create_topic(
            source["source_id"],
            source["name"],
            raw_text=config.get("description") or f"Content from {source['name']}",
            url=config.get("url"),
            tags=extract_topic_tags(source["name"], language),
            score=random.randint(70, 99),
            language=language,
        )
        added += 1

    if added:
        await update_ingestion_stats(added)
    await ctx.log("info", f"fetch complete: added {added}, duplicates skipped {duplicates}")
    return {
        "added": added,
        "duplicates": duplicates,
        "sources_fetched": len(batches),
        "sources_failed": len(rss_sources) - len(batches),
    }
