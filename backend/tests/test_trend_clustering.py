from conftest import run

from idengine.db import sources_repo, topics_repo, trends_repo
from idengine.services.trend_clustering import (
    build_trend_topics_for_category,
    cluster_topics_by_similarity,
    pacing_hint,
    rebuild_trend_topics,
    stable_cluster_id,
)


def _topic(topic_id, title, score):
    return {"topic_id": topic_id, "title": title, "score": score, "raw_text": None, "url": None}


def test_two_related_headlines_cluster_and_outlier_is_dropped():
    topics = [
        _topic("t1", "AI video tools rising in 2025", 90),
        _topic("t2", "AI tools for video are rising in 2025", 85),
        _topic("t3", "Unrelated sports score recap", 40),
    ]
    clusters = cluster_topics_by_similarity(topics)

    assert len(clusters) == 1
    cluster = clusters[0]
    assert [t["topic_id"] for t in cluster["topics"]] == ["t1", "t2"]
    assert cluster["score"] == 87.5
    assert "number" in cluster["hook_patterns"]


def test_cluster_respects_max_size():
    topics = [_topic(f"t{i}", "Same headline about the new phone launch", 50) for i in range(5)]
    clusters = cluster_topics_by_similarity(topics, max_size=3)
    assert [len(c["topics"]) for c in clusters] == [3, 2]


def test_stable_cluster_id_ignores_title_order():
    first = stable_cluster_id(["B title", "A title"], "gaming")
    assert first == stable_cluster_id(["A title", "B title"], "gaming")
    assert first.startswith("tt_gaming_")
    assert first != stable_cluster_id(["A title", "B title"], "music")


def test_pacing_hint_thresholds():
    assert pacing_hint(71) == "fast"
    assert pacing_hint(70) == "medium"
    assert pacing_hint(41) == "medium"
    assert pacing_hint(40) == "slow"


async def _seed_category():
    source = await sources_repo.create_source("rss", "Games feed", category_id="gaming")
    other = await sources_repo.create_source("rss", "Music feed", category_id="music")
    for title, score in (
        ("New patch fixes the biggest bug in the racing game", 92),
        ("Racing game patch fixes the biggest bug finally", 80),
        ("Indie studio announces a cosy farming game", 60),
    ):
        await topics_repo.create_topic(source["source_id"], title, score=score)
    await topics_repo.create_topic(
        other["source_id"], "New patch fixes the biggest bug in the racing game", score=99
    )


def test_build_for_category_is_idempotent(db):
    async def scenario():
        await _seed_category()
        return (
            await build_trend_topics_for_category("gaming"),
            await build_trend_topics_for_category("gaming"),
        )

    first, second = run(scenario())
    assert len(first) == 1
    assert [t["trend_topic_id"] for t in first] == [t["trend_topic_id"] for t in second]
    assert first[0]["topic_ids"] == second[0]["topic_ids"]
    assert len(first[0]["topic_ids"]) == 2
    assert first[0]["score"] == 86
    assert first[0]["pacing_hint"] == "fast"
    assert "patch" in first[0]["angles"]


def test_rebuild_persists_once_per_cluster(db):
    async def scenario():
        await _seed_category()
        await rebuild_trend_topics("gaming")
        await rebuild_trend_topics("gaming")
        return await trends_repo.list_trend_topics("gaming")

    stored = run(scenario())
    assert len(stored) == 1
    assert stored[0]["category_id"] == "gaming"


def test_rebuild_drops_clusters_that_no_longer_exist(db):
    async def scenario():
        await _seed_category()
        first = await rebuild_trend_topics("gaming")
        member = first[0]["topic_ids"][0]
        await topics_repo.update_topic(member, status="ignored")
        rebuilt = await rebuild_trend_topics("gaming")
        return rebuilt, await trends_repo.list_trend_topics("gaming")

    rebuilt, stored = run(scenario())
    assert rebuilt == []
    assert stored == []


def test_full_rebuild_keeps_unchanged_clusters(db):
    async def scenario():
        await _seed_category()
        first = await rebuild_trend_topics()
        second = await rebuild_trend_topics()
        return first, second, await trends_repo.list_trend_topics()

    first, second, stored = run(scenario())
    assert [t["trend_topic_id"] for t in first] == [t["trend_topic_id"] for t in second]
    assert [t["trend_topic_id"] for t in stored] == [t["trend_topic_id"] for t in second]
