import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from idengine.db import scripts_repo, topics_repo
from idengine.services.text_utils import (
    extract_ngrams,
    jaccard_similarity,
    normalize_text,
)

SCRIPT_SIMILARITY_THRESHOLD = 0.35
TOPIC_SIMILARITY_THRESHOLD = 0.5
NGRAM_SIZE = 4
MIN_CANDIDATE_NGRAMS = 3
MIN_CORPUS_TEXT_LEN = 50
MIN_TITLE_WORDS = 2
TOPIC_WINDOW_DAYS = 7


class SimilarityCheckResult(BaseModel):
    passed: bool
    highest_similarity: float = 0.0
    similar_script_id: Optional[str] = None
    similar_script_title: Optional[str] = None


class TopicSimilarityResult(BaseModel):
    passed: bool
    highest_similarity: float = 0.0
    similar_topic_id: Optional[str] = None


def script_corpus_text(script: Dict[str, Any]) -> str:
    if script.get("voice_text"):
        return script["voice_text"]
    transcript = script.get("transcript") or {}
    segments = transcript.get("segments") or []
    return " ".join(segment.get("text", "") for segment in segments)


def title_words(title: str) -> set[str]:
    return {word for word in normalize_text(title).split(" ") if len(word) > 2}


async def check_script_similarity(
    new_content: str,
    exclude_script_id: Optional[str] = None,
    threshold: float = SCRIPT_SIMILARITY_THRESHOLD,
) -> SimilarityCheckResult:
    """Compare a candidate script body against every stored script.

    Too-short candidates (fewer than three 4-grams) always pass.
    """
    candidate = extract_ngrams(new_content, NGRAM_SIZE)
    if len(candidate) < MIN_CANDIDATE_NGRAMS:
        return SimilarityCheckResult(passed=True)

    highest = 0.0
    best: Optional[Dict[str, Any]] = None
    for script in await scripts_repo.list_scripts():
        if exclude_script_id and script["script_id"] == exclude_script_id:
            continue
        existing_text = script_corpus_text(script)
        if len(existing_text) < MIN_CORPUS_TEXT_LEN:
            continue
        similarity = jaccard_similarity(candidate, extract_ngrams(existing_text, NGRAM_SIZE))
        if similarity > highest:
            highest = similarity
            best = script

    if highest < threshold or best is None:
        return SimilarityCheckResult(passed=True, highest_similarity=round(highest, 2))
    return SimilarityCheckResult(
        passed=False,
        highest_similarity=round(highest, 2),
        similar_script_id=best["script_id"],
        similar_script_title=best.get("hook") or best.get("topic_id") or "Untitled",
    )


async def check_topic_similarity(
    title: str,
    exclude_topic_id: Optional[str] = None,
    threshold: float = TOPIC_SIMILARITY_THRESHOLD,
) -> TopicSimilarityResult:
    """Title-word Jaccard against topics ingested in the last week."""
    candidate = title_words(title)
    if len(candidate) < MIN_TITLE_WORDS:
        return TopicSimilarityResult(passed=True)

    window_start = datetime.now(timezone.utc) - timedelta(days=TOPIC_WINDOW_DAYS)
    recent = await topics_repo.list_topics(
        created_after=window_start.strftime("%Y-%m-%dT%H:%M:%SZ")
    )

    highest = 0.0
    similar_topic_id: Optional[str] = None
    for topic in recent:
        if exclude_topic_id and topic["topic_id"] == exclude_topic_id:
            continue
        similarity = jaccard_similarity(candidate, title_words(topic["title"]))
        if similarity > highest:
            highest = similarity
            similar_topic_id = topic["topic_id"]

    passed = highest < threshold
    return TopicSimilarityResult(
        passed=passed,
        highest_similarity=round(highest, 2),
        similar_topic_id=None if passed else similar_topic_id,
    )


def compute_content_hash(text: str) -> str:
    return hashlib.sha1(normalize_text(text).encode("utf-8")).hexdigest()[:16]
