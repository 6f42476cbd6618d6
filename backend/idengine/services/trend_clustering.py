"""Greedy seed clustering of fresh topics into trend snapshots.

Clusters are derived data: given the same topics and category, a rebuild
yields the same ids and members.
"""

import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from idengine.db import sources_repo, topics_repo, trends_repo
from idengine.schemas.trends import CategoryId
from idengine.services.text_utils import (
    compute_text_similarity,
    extract_keywords,
    normalize_text,
)

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.3
MIN_CLUSTER_SIZE = 2
MAX_CLUSTER_SIZE = 10
# Whole-text word overlap; 4-grams almost never repeat between two rewrites of a headline.
CLUSTER_NGRAM_SIZE = 1
FRESH_WINDOW_HOURS = 24
MAX_CONTEXT_SNIPPETS = 5
MAX_KEYWORDS = 10


def _patterns(*sources: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


ANGLE_PATTERNS: Sequence[Tuple[str, Tuple[Pattern[str], ...]]] = (
    ("scandal", _patterns(r"скандал|scandal|controversy|outrage")),
    ("benefit", _patterns(r"польза|benefit|helpful|useful|tips?")),
    ("comparison", _patterns(r"сравнени|vs\.?|versus|compare|better than")),
    ("mistake", _patterns(r"ошибк|mistake|fail|wrong|never do")),
    ("release", _patterns(r"релиз|release|launch|announce|new")),
    ("patch", _patterns(r"патч|patch|update|fix|hotfix")),
    ("rumor", _patterns(r"слух|rumor|leak|reportedly|allegedly")),
    ("explanation", _patterns(r"объяснени|explain|how to|why|what is")),
    ("list", _patterns(r"топ|top|best|worst|\d+ (things|ways|reasons)")),
    ("shocking", _patterns(r"шок|shock|unbelievable|incredible|insane")),
)

HOOK_PATTERNS: Sequence[Tuple[str, Pattern[str]]] = (
    ("question", re.compile(r"\?|^(why|what|how|when|who|где|как|почему|что|когда|кто)", re.IGNORECASE)),
    ("warning", re.compile(r"^(never|don't|не|никогда)", re.IGNORECASE)),
    ("demonstrative", re.compile(r"^(this|эт[оиа])", re.IGNORECASE)),
    ("number", re.compile(r"\d+")),
    ("contrast", re.compile(r"(but|однако|however|vs|versus)", re.IGNORECASE)),
    ("secret", re.compile(r"(secret|скрыт|hidden|unknown)", re.IGNORECASE)),
)


def detect_angles(topics: Sequence[Dict[str, Any]]) -> List[str]:
    found: List[str] = []
    for topic in topics:
        text = f"{topic['title']} {topic.get('raw_text') or ''}".lower()
        for label, patterns in ANGLE_PATTERNS:
            if label not in found and any(p.search(text) for p in patterns):
                found.append(label)
    return found


def detect_hook_patterns(topics: Sequence[Dict[str, Any]]) -> List[str]:
    found: List[str] = []
    for topic in topics:
        title = topic["title"].lower()
        for label, pattern in HOOK_PATTERNS:
            if label not in found and pattern.search(title):
                found.append(label)
    return found


def full_topic_text(topic: Dict[str, Any]) -> str:
    body = topic.get("raw_text") or topic.get("full_content") or ""
    return normalize_text(f"{topic['title']} {body}")


def pacing_hint(score: float) -> str:
    if score > 70:
        return "fast"
    if score > 40:
        return "medium"
    return "slow"


def stable_cluster_id(seed_titles: Sequence[str], category_id: str) -> str:
    digest = hashlib.sha1("|".join(sorted(seed_titles)).lower().encode("utf-8"))
    return f"tt_{category_id}_{digest.hexdigest()[:12]}"


def cluster_topics_by_similarity(
    topics: Sequence[Dict[str, Any]],
    threshold: float = SIMILARITY_THRESHOLD,
    min_size: int = MIN_CLUSTER_SIZE,
    max_size: int = MAX_CLUSTER_SIZE,
) -> List[Dict[str, Any]]:
    """Single pass over topics by descending score; each unassigned topic seeds a cluster.

    Equal scores keep input order, so the earlier topic wins as seed.
    """
    ordered = sorted(topics, key=lambda topic: -topic["score"])
    texts = {topic["topic_id"]: full_topic_text(topic) for topic in ordered}
    assigned: set[str] = set()
    clusters: List[Dict[str, Any]] = []

    for seed in ordered:
        if seed["topic_id"] in assigned:
            continue
        members = [seed]
        assigned.add(seed["topic_id"])
        seed_text = texts[seed["topic_id"]]
        for other in ordered:
            if len(members) >= max_size:
                break
            if other["topic_id"] in assigned:
                continue
            similarity = compute_text_similarity(
                seed_text, texts[other["topic_id"]], CLUSTER_NGRAM_SIZE
            )
            if similarity >= threshold:
                members.append(other)
                assigned.add(other["topic_id"])

        if len(members) < min_size:
            continue

        all_text = " ".join(f"{t['title']} {t.get('raw_text') or ''}" for t in members)
        snippets = [t.get("raw_text") or t.get("full_content") or "" for t in members]
        clusters.append(
            {
                "topics": members,
                "seed_titles": [t["title"] for t in members],
                "context_snippets": [s for s in snippets if s][:MAX_CONTEXT_SNIPPETS],
                "keywords": extract_keywords(all_text, MAX_KEYWORDS),
                "entities": [],
                "angles": detect_angles(members),
                "hook_patterns": detect_hook_patterns(members),
                "refs": [t["url"] for t in members if t.get("url")],
                "score": sum(t["score"] for t in members) / len(members),
            }
        )

    return sorted(clusters, key=lambda cluster: -cluster["score"])


def _to_trend_topic(cluster: Dict[str, Any], category_id: str) -> Dict[str, Any]:
    return {
        "trend_topic_id": stable_cluster_id(cluster["seed_titles"], category_id),
        "category_id": category_id,
        "cluster_label": " ".join(cluster["keywords"][:3]),
        "seed_titles": cluster["seed_titles"],
        "topic_ids": [t["topic_id"] for t in cluster["topics"]],
        "context_snippets": cluster["context_snippets"],
        "keywords": cluster["keywords"],
        "entities": cluster["entities"],
        "angles": cluster["angles"],
        "hook_patterns": cluster["hook_patterns"],
        "pacing_hint": pacing_hint(cluster["score"]),
        "refs": cluster["refs"],
        "score": int(cluster["score"] + 0.5),
    }


async def build_trend_topics_for_category(
    category_id: str, now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    current = now or datetime.now(timezone.utc)
    window_start = (current - timedelta(hours=FRESH_WINDOW_HOURS)).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )
    category_sources = {
        source["source_id"]
        for source in await sources_repo.list_sources()
        if source["category_id"] == category_id
    }
    fresh = [
        topic
        for topic in await topics_repo.list_topics(created_after=window_start)
        if topic["source_id"] in category_sources and topic["status"] == "new"
    ]
    clusters = cluster_topics_by_similarity(fresh)
    return [_to_trend_topic(cluster, category_id) for cluster in clusters]


async def build_all_trend_topics(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    trends: List[Dict[str, Any]] = []
    for category in CategoryId:
        trends.extend(await build_trend_topics_for_category(category.value, now=now))
    return trends


async def rebuild_trend_topics(category_id: Optional[str] = None) -> List[Dict[str, Any]]:
    if category_id:
        category_ids = [category_id]
        trends = await build_trend_topics_for_category(category_id)
    else:
        category_ids = [category.value for category in CategoryId]
        trends = await build_all_trend_topics()
    await trends_repo.replace_trend_topics(category_ids, trends)
    logger.info("rebuilt %d trend topics for %s", len(trends), category_id or "all categories")
    return trends
