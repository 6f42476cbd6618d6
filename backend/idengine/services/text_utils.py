"""Text normalization and n-gram similarity primitives.

Everything here is pure: no store access, no I/O. The similarity and
clustering services build on these helpers.
"""

import re
from collections import Counter
from typing import Iterable, List, Optional, Set

# ASCII word characters plus the Cyrillic block; everything else is dropped.
_DISALLOWED_RE = re.compile(r"[^0-9A-Za-z_\s\u0400-\u04FF]")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_NGRAM_SIZE = 4

STOP_WORDS = frozenset(
    {
        "this", "that", "with", "from", "have", "were", "they", "been", "will",
        "more", "when", "which", "their", "what", "about", "into", "than", "only",
        "это", "этот", "который", "быть", "мочь", "свой", "весь", "наш", "очень",
        "такой", "также", "после", "через", "между", "перед",
    }
)


def normalize_text(text: str) -> str:
    lowered = (text or "").lower()
    stripped = _DISALLOWED_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def tokenize(text: str) -> List[str]:
    return [word for word in normalize_text(text).split(" ") if word]


def extract_ngrams(text: str, n: int = DEFAULT_NGRAM_SIZE) -> Set[str]:
    words = tokenize(text)
    return {" ".join(words[i : i + n]) for i in range(len(words) - n + 1)}


def jaccard_similarity(first: Iterable[str], second: Iterable[str]) -> float:
    a = set(first)
    b = set(second)
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def compute_text_similarity(
    first: str, second: str, ngram_size: int = DEFAULT_NGRAM_SIZE
) -> float:
    return jaccard_similarity(
        extract_ngrams(first, ngram_size), extract_ngrams(second, ngram_size)
    )


def extract_keywords(text: str, max_keywords: int = 10) -> List[str]:
    """Most frequent words longer than three characters, stop words excluded.

    Ties keep first-seen order.
    """
    counts = Counter(
        word for word in tokenize(text) if len(word) > 3 and word not in STOP_WORDS
    )
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [word for word, _ in ranked[:max_keywords]]


_TAG_RE = re.compile(r"<[^>]*>")
_URL_RE = re.compile(r"https?://\S+|www\.\S+", re.IGNORECASE)
_NUMERIC_ENTITY_RE = re.compile(r"&#(\d+);")
_NAMED_ENTITY_RE = re.compile(r"&[a-z]+;", re.IGNORECASE)
HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


def _decode_numeric_entity(match: re.Match) -> str:
    codepoint = int(match.group(1))
    return chr(codepoint) if codepoint < 0x110000 else ""


def strip_html(text: Optional[str]) -> str:
    """Drop tags, URLs and entities from feed markup, collapsing whitespace."""
    if not text:
        return ""
    cleaned = _URL_RE.sub("", _TAG_RE.sub("", text))
    for entity, replacement in HTML_ENTITIES:
        cleaned = re.sub(re.escape(entity), replacement, cleaned, flags=re.IGNORECASE)
    cleaned = _NUMERIC_ENTITY_RE.sub(_decode_numeric_entity, cleaned)
    cleaned = _NAMED_ENTITY_RE.sub("", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in re.split(r"(?<=[.!?])\s+", text or "") if part.strip()]
