import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from idengine.db import sources_repo, topics_repo, trends_repo
from idengine.services.text_utils import extract_keywords, normalize_text

logger = logging.getLogger(__name__)

HIGH_SCORE_THRESHOLD = 70
MAX_SIGNAL_TOPICS = 10
MAX_GENERATION_SIGNALS = 5
BASE_SIGNAL_SCORE = 50

# (phrase, hook type, weight)
VIRAL_HOOK_PATTERNS: Sequence[Tuple[str, str, float]] = (
    ("никто не знает", "mystery", 0.9),
    ("вы не поверите", "disbelief", 0.85),
    ("топ 5", "listicle", 0.8),
    ("почему", "curiosity", 0.75),
    ("как на самом деле", "revelation", 0.85),
    ("что будет если", "experiment", 0.8),
    ("срочно", "urgency", 0.7),
    ("шок", "shock", 0.65),
    ("это изменит", "transformation", 0.8),
    ("секрет", "secret", 0.75),
    ("nobody knows", "mystery", 0.9),
    ("you wont believe", "disbelief", 0.85),
    ("top 5", "listicle", 0.8),
    ("why", "curiosity", 0.75),
    ("the truth about", "revelation", 0.85),
    ("what happens when", "experiment", 0.8),
    ("breaking", "urgency", 0.7),
    ("shocking", "shock", 0.65),
    ("this will change", "transformation", 0.8),
    ("secret", "secret", 0.75),
)

VIRAL_ANGLES: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("controversy", ("vs", "против", "сравн")),
    ("insider_knowledge", ("секрет", "secret", "никто не")),
    ("before_after", ("до и после", "before", "after")),
    ("myth_vs_reality", ("миф", "myth", "правда")),
    ("life_hack", ("лайфхак", "hack", "совет")),
)


def detect_hook_types(title: str) -> List[str]:
    normalized = normalize_text(title)
    found: List[str] = []
    for phrase, hook_type, _ in VIRAL_HOOK_PATTERNS:
        if phrase in normalized and hook_type not in found:
            found.append(hook_type)
    return found or ["standard"]


def detect_viral_angles(title: str, description: str) -> List[str]:
    combined = normalize_text(f"{title} {description}")
    angles = [
        angle
        for angle, needles in VIRAL_ANGLES
        if any(needle in combined for needle in needles)
    ]
    return angles or ["standard"]


def detect_pacing(duration_sec: int) -> str:
    if duration_sec <= 30:
        return "fast"
    if duration_sec <= 60:
        return "medium"
    return "slow"


def _hook_weight(hook_type: str) -> float:
    for _, candidate, weight in VIRAL_HOOK_PATTERNS:
        if candidate == hook_type:
            return weight
    return 0.0


def build_trend_signal(
    title: str,
    description: str,
    category_id: Optional[str],
    platform: str = "youtube_shorts",
    duration_sec: int = 60,
) -> Dict[str, Any]:
    hook_patterns = detect_hook_types(title)
    score = BASE_SIGNAL_SCORE + sum(_hook_weight(h) * 20 for h in hook_patterns)
    return {
        "platform": platform,
        "category_id": category_id,
        "keywords": extract_keywords(f"{title} {description}", 8),
        "angles": detect_viral_angles(title, description),
        "hook_patterns": hook_patterns,
        "pacing_hint": detect_pacing(duration_sec),
        "duration_modes": [str(duration_sec)],
        "score": min(100, int(score + 0.5)),
    }


async def extract_trends_from_topics(category_id: Optional[str] = None) -> List[Dict[str, Any]]:
    topics = await topics_repo.list_topics()
    if category_id:
        category_sources = {
            source["source_id"]
            for source in await sources_repo.list_sources()
            if source["category_id"] == category_id
        }
        topics = [t for t in topics if t["source_id"] in category_sources]

    high_score = [t for t in topics if t["score"] >= HIGH_SCORE_THRESHOLD][:MAX_SIGNAL_TOPICS]
    signals = []
    for topic in high_score:
        signal = build_trend_signal(
            topic["title"], topic.get("raw_text") or "", category_id, platform="general"
        )
        signals.append(await trends_repo.create_trend_signal(signal))
    logger.info("extracted %d trend signals from topics", len(signals))
    return signals


async def get_trend_signals_for_generation(
    category_id: Optional[str] = None, platform: str = "youtube_shorts"
) -> List[Dict[str, Any]]:
    matching = [
        signal
        for signal in await trends_repo.list_trend_signals()
        if signal.get("platform") in {platform, "general"}
        and not (category_id and signal.get("category_id") and signal["category_id"] != category_id)
    ]
    return matching[:MAX_GENERATION_SIGNALS]
