import calendar
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
import httpx

from idengine.services.http_client import fetch_text

MAX_ITEMS_PER_SOURCE = 10

EXCLUDED_WORDS_EN = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "from", "as", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
        "do", "does", "did", "will", "would", "could", "should", "may", "might", "must", "can",
        "this", "that", "these", "those", "it", "its", "they", "them", "their", "he", "she",
        "his", "her", "we", "you", "your", "our", "who", "which", "what", "when", "where", "why",
        "how", "all", "each", "every", "both", "few", "more", "most", "other", "some", "such",
        "no", "not", "only", "same", "so", "than", "too", "very", "just", "also", "now", "here",
        "there", "about", "after", "before", "between", "new", "first", "last", "year", "years",
        "day", "days", "time", "today", "says", "said", "told", "reports", "announces", "users",
        "found", "discovered", "revealed", "shows", "according", "sources", "officials",
    }
)
EXCLUDED_WORDS_RU = frozenset(
    {
        "и", "в", "на", "с", "по", "для", "от", "из", "как", "что", "это", "не", "но", "к", "за",
        "о", "об", "при", "а", "или", "так", "уже", "все", "его", "её", "их", "мы", "вы", "они",
        "он", "она", "оно", "был", "была", "было", "были", "быть", "есть", "будет", "стал",
        "того", "этого", "которые", "который", "также", "более", "только", "можно", "нужно",
        "даже", "ещё", "когда", "если", "чтобы", "после", "перед", "между", "года", "году", "год",
        "лет", "время", "день", "сегодня", "вчера", "завтра", "теперь", "новый", "новая",
        "новое", "новые", "сообщил", "заявил", "стало", "известно", "против", "через", "почему",
        "где", "кто", "этот", "эта", "эти", "тот", "та", "те",
    }
)

_FULL_NAME_RE = re.compile(r"[A-ZА-ЯЁ][a-zа-яё]+(?:\s+[A-ZА-ЯЁ][a-zа-яё]+){1,3}")
_QUOTED_RE = re.compile(r"[\"«]([^\"»]+)[\"»]")
_QUOTED_PHRASE_RE = re.compile(r"[A-ZА-ЯЁ][a-zа-яё]+(?:\s+[a-zа-яёA-ZА-ЯЁ]+){1,2}")
_ABBREVIATION_RE = re.compile(r"\b[A-Z]{2,6}\s*\d*\b")
_BRAND_RE = re.compile(r"\b[A-Z][A-Za-z]*\s*\d+\b")
_PROPER_NOUN_RE = re.compile(r"[A-ZА-ЯЁ][a-zа-яё]{3,}")


class _TagCollector:
    def __init__(self, excluded: frozenset) -> None:
        self.excluded = excluded
        self.tags: List[str] = []
        self.seen: set[str] = set()
        self.used_words: set[str] = set()

    def overlaps(self, tag: str) -> bool:
        return any(word.lower() in self.used_words for word in tag.split())

    def add(self, tag: str, check_excluded: bool = True) -> None:
        tag = tag.strip()
        lower = tag.lower()
        if len(tag) < 2 or len(tag) > 30:
            return
        if check_excluded and lower in self.excluded:
            return
        if lower in self.seen or self.overlaps(tag):
            return
        self.seen.add(lower)
        self.tags.append(tag)
        self.used_words.update(word.lower() for word in tag.split())


def extract_topic_tags(title: str, language: str = "en") -> List[str]:
    """Pick up to four names, brands or abbreviations from a headline."""
    excluded = EXCLUDED_WORDS_RU if language == "ru" else EXCLUDED_WORDS_EN
    collector = _TagCollector(excluded)

    for name in sorted(_FULL_NAME_RE.findall(title), key=len, reverse=True):
        meaningful = [w for w in name.split() if w.lower() not in excluded]
        if len(meaningful) >= 2:
            collector.add(name)

    for inner in _QUOTED_RE.findall(title):
        for phrase in _QUOTED_PHRASE_RE.findall(inner.strip()):
            if 5 <= len(phrase) <= 25 and 2 <= len(phrase.split()) <= 3:
                collector.add(phrase, check_excluded=False)

    for match in _ABBREVIATION_RE.findall(title) + _BRAND_RE.findall(title):
        collector.add(match)

    if len(collector.tags) < 2:
        for word in _PROPER_NOUN_RE.findall(title):
            if len(collector.tags) >= 4:
                break
            collector.add(word)

    return collector.tags[:4]


def _entry_image(entry: Any) -> Optional[str]:
    if entry.get("media_content"):
        return entry.media_content[0].get("url")
    if entry.get("media_thumbnail"):
        return entry.media_thumbnail[0].get("url")
    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("type", "").startswith("image/"):
            return enclosure.get("href") or enclosure.get("url")
    return None


def _entry_published(entry: Any) -> Optional[str]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    published = datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return published.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_feed_items(body: str, limit: int = MAX_ITEMS_PER_SOURCE) -> List[Dict[str, Any]]:
    parsed = feedparser.parse(body)
    items = []
    for entry in parsed.entries[:limit]:
        items.append(
            {
                "title": entry.get("title", "").strip(),
                "link": entry.get("link", "").strip() or None,
                "description": entry.get("summary", "") or entry.get("description", ""),
                "image_url": _entry_image(entry),
                "published_at": _entry_published(entry),
            }
        )
    return items


async def fetch_feed_items(client: httpx.AsyncClient, url: str) -> List[Dict[str, Any]]:
    return parse_feed_items(await fetch_text(client, url))
