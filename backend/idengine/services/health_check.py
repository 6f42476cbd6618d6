"""Per-source health state machine driven by network probes.

States are pending, ok, warning and dead. Probe failures never raise; they
are folded into the source's health record instead.
"""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from idengine.core.config import HEALTH_CHECK_DELAY_SEC, HEALTH_CHECK_TIMEOUT_SEC
from idengine.db import sources_repo
from idengine.services.http_client import open_client
from idengine.utils.time import parse_feed_date

logger = logging.getLogger(__name__)

NETWORKABLE_TYPES = frozenset(
    {"rss", "api", "html", "url", "youtube_channel", "youtube_search", "youtube_trending"}
)
DEAD_AFTER_FAILURES = 6
WARNING_AFTER_FAILURES = 2
MAX_FAILURES_BEFORE_DISABLE = 12
STALE_FRESHNESS_HOURS = 72
SLOW_LATENCY_MS = 5000
MIN_SOURCES_PER_CATEGORY = 20

ITEM_TAG_PATTERNS = (
    ("rss", re.compile(r"<item[^>]*>", re.IGNORECASE)),
    ("atom", re.compile(r"<entry[^>]*>", re.IGNORECASE)),
)
FRESHNESS_TAG_PATTERNS = (
    re.compile(r"<pubDate[^>]*>([^<]+)</pubDate>", re.IGNORECASE),
    re.compile(r"<updated[^>]*>([^<]+)</updated>", re.IGNORECASE),
)


class ProbeResult(BaseModel):
    healthy: bool
    http_code: Optional[int] = None
    latency_ms: int = 0
    item_count: int = 0
    error: Optional[str] = None
    freshness_hours: Optional[float] = None


def count_feed_items(body: str) -> int:
    return max(len(pattern.findall(body)) for _, pattern in ITEM_TAG_PATTERNS)


def parse_freshness(body: str, now: Optional[datetime] = None) -> Optional[float]:
    """Hours since the first pubDate (or Atom updated) found in the body."""
    for pattern in FRESHNESS_TAG_PATTERNS:
        match = pattern.search(body)
        if match:
            break
    else:
        return None
    published = parse_feed_date(match.group(1))
    if published is None:
        return None
    current = now or datetime.now(timezone.utc)
    hours = (current - published).total_seconds() / 3600
    return round(hours, 1)


async def probe_source(
    source: Dict[str, Any], client: Optional[httpx.AsyncClient] = None
) -> Optional[ProbeResult]:
    """Fetch the source URL once; None for source types that have nothing to probe."""
    if source["type"] not in NETWORKABLE_TYPES:
        return None
    url = (source.get("config") or {}).get("url")
    if not url:
        return ProbeResult(healthy=False, error="No URL configured")

    if client is None:
        async with open_client(HEALTH_CHECK_TIMEOUT_SEC) as owned:
            return await _probe_url(owned, url)
    return await _probe_url(client, url)


async def _probe_url(client: httpx.AsyncClient, url: str) -> ProbeResult:
    started = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        response = await client.get(url, timeout=HEALTH_CHECK_TIMEOUT_SEC)
    except httpx.TimeoutException:
        return ProbeResult(healthy=False, latency_ms=elapsed_ms(), error="Timeout")
    except httpx.HTTPError as exc:
        return ProbeResult(
            healthy=False, latency_ms=elapsed_ms(), error=str(exc) or "Connection failed"
        )

    latency_ms = elapsed_ms()
    if not response.is_success:
        return ProbeResult(
            healthy=False,
            http_code=response.status_code,
            latency_ms=latency_ms,
            error=f"HTTP {response.status_code}",
        )

    body = response.text
    item_count = count_feed_items(body)
    if item_count == 0:
        return ProbeResult(
            healthy=False,
            http_code=response.status_code,
            latency_ms=latency_ms,
            error="No RSS items found",
        )
    return ProbeResult(
        healthy=True,
        http_code=response.status_code,
        latency_ms=latency_ms,
        item_count=item_count,
        freshness_hours=parse_freshness(body),
    )


def determine_health_status(result: ProbeResult, health: Dict[str, Any]) -> str:
    if not result.healthy:
        failures = (health.get("failures_count") or 0) + 1
        if failures >= DEAD_AFTER_FAILURES:
            return "dead"
        if failures >= WARNING_AFTER_FAILURES:
            return "warning"
        return "pending"
    if result.freshness_hours is not None and result.freshness_hours > STALE_FRESHNESS_HOURS:
        return "warning"
    if result.latency_ms > SLOW_LATENCY_MS:
        return "warning"
    return "ok"


def next_health(result: ProbeResult, health: Dict[str, Any], now: str) -> Dict[str, Any]:
    """Apply one probe outcome to a health record."""
    previous_latency = health.get("avg_latency_ms")
    if result.healthy:
        # two-sample blend, seeded with the first sample
        avg_latency = int(((previous_latency or result.latency_ms) + result.latency_ms) / 2 + 0.5)
    else:
        avg_latency = previous_latency
    freshness = result.freshness_hours
    return {
        "status": determine_health_status(result, health),
        "http_code": result.http_code,
        "avg_latency_ms": avg_latency,
        "last_success_at": now if result.healthy else health.get("last_success_at"),
        "failures_count": 0 if result.healthy else (health.get("failures_count") or 0) + 1,
        "freshness_hours": freshness if freshness is not None else health.get("freshness_hours"),
        "last_error": result.error,
        "item_count": result.item_count or health.get("item_count"),
    }


async def check_single_source(
    source_id: str, client: Optional[httpx.AsyncClient] = None
) -> Optional[Dict[str, Any]]:
    source = await sources_repo.fetch_source(source_id)
    if not source:
        return None

    result = await probe_source(source, client)
    if result is None:
        health = source["health"]
        if health.get("status") == "pending":
            source = await sources_repo.update_source_health(
                source_id, {**health, "status": "ok"}
            ) or source
        return {"source": source, "result": None, "skipped": True}

    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    health = next_health(result, source["health"], now)
    updated = await sources_repo.update_source_health(source_id, health)

    if health["failures_count"] >= MAX_FAILURES_BEFORE_DISABLE and source["is_enabled"]:
        await sources_repo.set_enabled(source_id, False)
        logger.warning(
            "auto-disabled source %s after %d failures",
            source["name"],
            MAX_FAILURES_BEFORE_DISABLE,
        )
        updated = await sources_repo.fetch_source(source_id)

    return {"source": updated or source, "result": result, "skipped": False}


async def check_all_sources(
    client: Optional[httpx.AsyncClient] = None,
    delay_sec: float = HEALTH_CHECK_DELAY_SEC,
) -> Dict[str, int]:
    """Probe every enabled source one after another."""
    counts = {"checked": 0, "skipped": 0, "healthy": 0, "warnings": 0, "dead": 0}
    status_keys = {"ok": "healthy", "warning": "warnings", "dead": "dead"}

    for source in await sources_repo.list_sources(enabled_only=True):
        outcome = await check_single_source(source["source_id"], client)
        if outcome:
            if outcome["skipped"]:
                counts["skipped"] += 1
            else:
                counts["checked"] += 1
                key = status_keys.get(outcome["source"]["health"]["status"])
                if key:
                    counts[key] += 1
        if delay_sec:
            await asyncio.sleep(delay_sec)

    logger.info(
        "checked %d sources: %d healthy, %d warnings, %d dead (%d skipped)",
        counts["checked"],
        counts["healthy"],
        counts["warnings"],
        counts["dead"],
        counts["skipped"],
    )
    return counts


async def get_sources_needing_attention() -> List[Dict[str, Any]]:
    return [
        source
        for source in await sources_repo.list_sources(enabled_only=True)
        if source["health"].get("status") in {"warning", "dead", "pending"}
    ]


async def get_category_health_stats() -> Dict[str, Dict[str, Any]]:
    stats: Dict[str, Dict[str, Any]] = {}
    for source in await sources_repo.list_sources():
        category_id = source["category_id"]
        if not category_id:
            continue
        entry = stats.setdefault(
            category_id, {"total": 0, "enabled": 0, "healthy": 0, "needs_more": False}
        )
        entry["total"] += 1
        if source["is_enabled"]:
            entry["enabled"] += 1
        if source["health"].get("status") == "ok":
            entry["healthy"] += 1
    for entry in stats.values():
        entry["needs_more"] = entry["enabled"] < MIN_SOURCES_PER_CATEGORY
    return stats
