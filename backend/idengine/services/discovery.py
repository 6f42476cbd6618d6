import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

import httpx

from idengine.db import sources_repo
from idengine.services.health_check import (
    MIN_SOURCES_PER_CATEGORY,
    count_feed_items,
    get_category_health_stats,
)
from idengine.services.http_client import open_client

logger = logging.getLogger(__name__)

MAX_SOURCES_PER_CATEGORY = 30
DISCOVERY_TIMEOUT_SEC = 8.0
DISCOVERY_DELAY_SEC = 0.2
EXTRA_CANDIDATES = 5

RSS_DISCOVERY_SOURCES: Mapping[str, Sequence[str]] = {
    "world_news": (
        "https://feeds.bbci.co.uk/news/world/rss.xml",
        "https://rss.nytimes.com/services/xml/rss/nyt/World.xml",
        "https://feeds.washingtonpost.com/rss/world",
        "https://www.theguardian.com/world/rss",
        "https://www.aljazeera.com/xml/rss/all.xml",
    ),
    "russia_news": (
        "https://lenta.ru/rss",
        "https://meduza.io/rss/all",
        "https://www.rbc.ru/rss/main",
        "https://ria.ru/export/rss2/index.xml",
        "https://tass.ru/rss/v2.xml",
    ),
    "gaming": (
        "https://www.ign.com/rss/articles",
        "https://kotaku.com/rss",
        "https://www.gamespot.com/feeds/mashup/",
        "https://www.polygon.com/rss/index.xml",
    ),
    "memes": (
        "https://www.reddit.com/r/memes/.rss",
        "https://www.reddit.com/r/dankmemes/.rss",
        "https://knowyourmeme.com/memes.rss",
    ),
    "trends": (
        "https://trends.google.com/trends/trendingsearches/daily/rss?geo=RU",
        "https://trends.google.com/trends/trendingsearches/daily/rss?geo=US",
    ),
    "fashion": (
        "https://www.vogue.com/feed/rss",
        "https://www.harpersbazaar.com/rss/all.xml/",
        "https://www.elle.com/rss/all.xml/",
    ),
    "music": (
        "https://pitchfork.com/rss/news/",
        "https://www.rollingstone.com/music/music-news/feed/",
        "https://www.billboard.com/feed/",
    ),
    "interesting": (
        "https://www.reddit.com/r/todayilearned/.rss",
        "https://www.reddit.com/r/interestingasfuck/.rss",
        "https://www.atlasobscura.com/feeds/latest",
    ),
    "facts_research": (
        "https://www.sciencedaily.com/rss/all.xml",
        "https://www.nature.com/nature.rss",
        "https://www.newscientist.com/feed/home",
    ),
    "movies": (
        "https://www.hollywoodreporter.com/feed/",
        "https://variety.com/feed/",
        "https://www.slashfilm.com/feed/",
    ),
    "series": (
        "https://tvline.com/feed/",
        "https://www.tvinsider.com/feed/",
        "https://deadline.com/feed/",
    ),
    "medicine": (
        "https://www.medicalnewstoday.com/rss",
        "https://www.webmd.com/rss/default.rss",
        "https://www.health.harvard.edu/blog/feed",
    ),
    "youtube_trends": (),
}


def source_name_from_url(url: str) -> str:
    hostname = urlparse(url).hostname or ""
    label = hostname.removeprefix("www.").split(".")[0]
    return label.capitalize() if label else "Unknown"


async def probe_feed(client: httpx.AsyncClient, url: str) -> int:
    """Item count of a candidate feed; 0 when it is unreachable or empty."""
    try:
        response = await client.get(url)
    except httpx.HTTPError:
        return 0
    if not response.is_success:
        return 0
    return count_feed_items(response.text)


async def discover_sources_for_category(
    category_id: str,
    client: Optional[httpx.AsyncClient] = None,
    delay_sec: float = DISCOVERY_DELAY_SEC,
) -> Dict[str, Any]:
    if client is None:
        async with open_client(DISCOVERY_TIMEOUT_SEC) as owned:
            return await discover_sources_for_category(category_id, owned, delay_sec)

    result: Dict[str, Any] = {
        "category_id": category_id,
        "discovered": 0,
        "added": 0,
        "skipped": 0,
        "errors": [],
    }
    category_sources = [
        s for s in await sources_repo.list_sources() if s["category_id"] == category_id
    ]
    existing_urls = {s["config"].get("url") for s in category_sources if s["config"].get("url")}
    enabled_count = sum(1 for s in category_sources if s["is_enabled"])

    if enabled_count >= MAX_SOURCES_PER_CATEGORY:
        logger.info("category %s already has %d sources", category_id, enabled_count)
        return result

    candidates = RSS_DISCOVERY_SOURCES.get(category_id, ())
    needed = min(MAX_SOURCES_PER_CATEGORY - enabled_count, len(candidates))

    for url in candidates[: needed + EXTRA_CANDIDATES]:
        if url in existing_urls:
            result["skipped"] += 1
            continue
        result["discovered"] += 1

        item_count = await probe_feed(client, url)
        if item_count == 0:
            result["errors"].append(f"{url}: Feed not healthy")
        else:
            name = source_name_from_url(url)
            await sources_repo.create_source(
                "rss",
                f"{name} (Auto)",
                category_id=category_id,
                config={"url": url},
                health={"status": "ok", "item_count": item_count, "failures_count": 0},
            )
            result["added"] += 1
            logger.info("discovered source %s for %s", name, category_id)
            if enabled_count + result["added"] >= MAX_SOURCES_PER_CATEGORY:
                break

        if delay_sec:
            await asyncio.sleep(delay_sec)

    logger.info(
        "%s: discovered=%d added=%d skipped=%d",
        category_id,
        result["discovered"],
        result["added"],
        result["skipped"],
    )
    return result


async def discover_all_categories(
    client: Optional[httpx.AsyncClient] = None,
    delay_sec: float = DISCOVERY_DELAY_SEC,
) -> List[Dict[str, Any]]:
    stats = await get_category_health_stats()
    results = []
    for category_id, candidates in RSS_DISCOVERY_SOURCES.items():
        enabled = stats.get(category_id, {}).get("enabled", 0)
        if candidates and enabled < MIN_SOURCES_PER_CATEGORY:
            results.append(
                await discover_sources_for_category(category_id, client, delay_sec)
            )
    return results
