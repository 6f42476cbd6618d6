import json
from datetime import datetime, timezone

import httpx
from conftest import mock_transport, rss_body, run

from idengine.db import jobs_repo, settings_repo, sources_repo, topics_repo
from idengine.services import http_client
from idengine.services.ingestion import (
    DEMO_SOURCE_ID,
    STATS_KEY,
    can_fetch_more_topics,
    is_title_too_short,
)
from idengine.services.jobs import JobWorker, enqueue

GOOD_FEED = "https://feeds.example.com/good.xml"
BROKEN_FEED = "https://feeds.example.com/broken.xml"


async def _fetch():
    job = await enqueue("fetch_topics")
    await JobWorker(tick_sec=0).tick()
    return await jobs_repo.fetch_job(job["job_id"])


def test_title_length_filter():
    assert is_title_too_short("Short one") is True
    assert is_title_too_short("Four short words here") is False
    assert is_title_too_short("A single very long headline-ish string") is False


def test_demo_topics_seeded_without_sources(db):
    async def scenario():
        job = await _fetch()
        return job, await topics_repo.list_topics()

    job, topics = run(scenario())
    assert job["status"] == "done"
    assert job["result"]["demo"] is True
    assert job["result"]["added"] == len(topics) == 5
    assert {t["source_id"] for t in topics} == {DEMO_SOURCE_ID}


def test_broken_feed_is_skipped_and_others_still_ingested(db):
    http_client.set_transport(
        mock_transport(
            {
                GOOD_FEED: lambda request: httpx.Response(
                    200,
                    text=rss_body(
                        [
                            "Central bank holds interest rates steady for third month",
                            "Volcanic eruption forces evacuation of Icelandic fishing town",
                            "Tiny",
                        ]
                    ),
                ),
                BROKEN_FEED: lambda request: httpx.Response(500, text="down"),
            }
        )
    )

    async def scenario():
        good = await sources_repo.create_source("rss", "Good", config={"url": GOOD_FEED})
        await sources_repo.create_source("rss", "Broken", config={"url": BROKEN_FEED})
        job = await _fetch()
        stats = json.loads(await settings_repo.get_setting(STATS_KEY))
        return good, job, await topics_repo.list_topics(), stats

    good, job, topics, stats = run(scenario())
    assert job["status"] == "done"
    assert job["result"] == {
        "added": 2,
        "duplicates": 0,
        "sources_fetched": 1,
        "sources_failed": 1,
    }
    assert {t["source_id"] for t in topics} == {good["source_id"]}
    assert all(t["status"] == "new" and t["extraction_status"] == "pending" for t in topics)
    assert all(70 <= t["score"] <= 99 for t in topics)
    assert stats["daily_count"] == 2
    assert stats["hourly_count"] == 2


def test_refetch_counts_duplicates_and_backfills_images(db):
    title = "Central bank holds interest rates steady for third month"
    feed = rss_body([title]).replace(
        "</item>", '<enclosure url="https://img.example.com/bank.jpg" type="image/jpeg"/></item>'
    )
    http_client.set_transport(
        mock_transport({GOOD_FEED: lambda request: httpx.Response(200, text=feed)})
    )

    async def scenario():
        source = await sources_repo.create_source("rss", "Good", config={"url": GOOD_FEED})
        existing = await topics_repo.create_topic(source["source_id"], title)
        job = await _fetch()
        return job, await topics_repo.fetch_topic(existing["topic_id"])

    job, topic = run(scenario())
    assert job["result"]["added"] == 0
    assert job["result"]["duplicates"] == 1
    assert topic["image_url"] == "https://img.example.com/bank.jpg"


def test_manual_source_becomes_a_topic(db):
    async def scenario():
        await sources_repo.create_source(
            "manual",
            "Weekly roundup of strange science",
            config={"description": "Curated by the editor"},
        )
        job = await _fetch()
        return job, await topics_repo.list_topics()

    job, topics = run(scenario())
    assert job["result"]["added"] == 1
    assert topics[0]["title"] == "Weekly roundup of strange science"
    assert topics[0]["raw_text"] == "Curated by the editor"


def test_quota_blocks_fetch(db):
    async def scenario():
        now = datetime.now(timezone.utc)
        await settings_repo.set_setting(
            STATS_KEY,
            json.dumps(
                {
                    "date": now.strftime("%Y-%m-%d"),
                    "hour": now.hour,
                    "daily_count": 300,
                    "hourly_count": 0,
                }
            ),
        )
        return await can_fetch_more_topics(), await _fetch()

    quota, job = run(scenario())
    assert quota["allowed"] is False
    assert job["result"]["quota_exceeded"] is True
