from conftest import run

from idengine.db import scripts_repo, topics_repo
from idengine.services.similarity import (
    check_script_similarity,
    check_topic_similarity,
    compute_content_hash,
)

BASE_SCRIPT = (
    "Engineers in Oslo built a battery that charges an electric bus in six minutes "
    "and keeps ninety percent of its capacity after ten thousand cycles"
)


async def _seed_script(voice_text):
    topic = await topics_repo.create_topic("src_test", "Battery breakthrough in Oslo")
    return await scripts_repo.create_script(
        topic["topic_id"], hook="Six minute charge", voice_text=voice_text
    )


def test_short_candidate_always_passes(db):
    async def scenario():
        await _seed_script(BASE_SCRIPT)
        return await check_script_similarity("Engineers in Oslo built")

    result = run(scenario())
    assert result.passed is True
    assert result.highest_similarity == 0.0


def test_near_duplicate_script_is_rejected(db):
    async def scenario():
        existing = await _seed_script(BASE_SCRIPT)
        candidate = BASE_SCRIPT.replace("ten thousand", "twelve thousand")
        return existing, await check_script_similarity(candidate)

    existing, result = run(scenario())
    assert result.passed is False
    assert result.highest_similarity >= 0.35
    assert result.similar_script_id == existing["script_id"]
    assert result.similar_script_title == "Six minute charge"


def test_excluded_and_short_corpus_scripts_are_ignored(db):
    async def scenario():
        existing = await _seed_script(BASE_SCRIPT)
        await _seed_script("too short to compare")
        return await check_script_similarity(BASE_SCRIPT, exclude_script_id=existing["script_id"])

    assert run(scenario()).passed is True


def test_transcript_segments_form_the_corpus_when_no_voice_text(db):
    async def scenario():
        topic = await topics_repo.create_topic("src_test", "Battery breakthrough in Oslo")
        await scripts_repo.create_script(
            topic["topic_id"],
            transcript={"segments": [{"text": BASE_SCRIPT[:80]}, {"text": BASE_SCRIPT[80:]}]},
        )
        return await check_script_similarity(BASE_SCRIPT)

    result = run(scenario())
    assert result.passed is False
    assert result.similar_script_title.startswith("topic_")


def test_topic_similarity_by_title_words(db):
    async def scenario():
        existing = await topics_repo.create_topic(
            "src_test", "Apple unveils new iPhone with titanium frame"
        )
        duplicate = await check_topic_similarity("Apple unveils new iPhone with titanium design")
        different = await check_topic_similarity("Heatwave closes schools across southern Spain")
        too_short = await check_topic_similarity("Apple")
        return existing, duplicate, different, too_short

    existing, duplicate, different, too_short = run(scenario())
    assert duplicate.passed is False
    assert duplicate.highest_similarity == 0.75
    assert duplicate.similar_topic_id == existing["topic_id"]
    assert different.passed is True
    assert too_short.passed is True


def test_content_hash_is_stable_under_normalization():
    assert compute_content_hash("Hello,  World!") == compute_content_hash("hello world")
    assert compute_content_hash("hello world") != compute_content_hash("hello there")
