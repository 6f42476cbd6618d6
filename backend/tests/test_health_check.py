from datetime import datetime, timezone

import httpx
import pytest
from conftest import rss_body, run

from idengine.db import sources_repo
from idengine.services.health_check import (
    ProbeResult,
    check_all_sources,
    check_single_source,
    count_feed_items,
    determine_health_status,
    get_category_health_stats,
    get_sources_needing_attention,
    next_health,
    parse_freshness,
)

FEED_URL = "https://feeds.example.com/rss.xml"


def _client(status_code=500, body="oops"):
    return httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code, text=body))
    )


def test_count_feed_items_takes_larger_of_rss_and_atom():
    assert count_feed_items("<item></item><item/>") == 2
    assert count_feed_items("<entry><entry><entry>") == 3
    assert count_feed_items("<html></html>") == 0


def test_parse_freshness_uses_first_date_in_body():
    now = datetime(2025, 1, 6, 13, 30, tzinfo=timezone.utc)
    body = "<pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate><pubDate>Sun, 05 Jan 2025 10:00:00 GMT</pubDate>"
    assert parse_freshness(body, now) == 3.5
    assert parse_freshness("<item/>", now) is None


@pytest.mark.parametrize(
    "failures_before,expected",
    [(0, "pending"), (1, "warning"), (4, "warning"), (5, "dead"), (20, "dead")],
)
def test_failure_escalation(failures_before, expected):
    result = ProbeResult(healthy=False, error="HTTP 500")
    assert determine_health_status(result, {"failures_count": failures_before}) == expected


def test_success_is_warning_when_stale_or_slow():
    fresh = ProbeResult(healthy=True, latency_ms=200, item_count=5, freshness_hours=2.0)
    stale = ProbeResult(healthy=True, latency_ms=200, item_count=5, freshness_hours=80.0)
    slow = ProbeResult(healthy=True, latency_ms=6000, item_count=5, freshness_hours=2.0)
    assert determine_health_status(fresh, {"failures_count": 4}) == "ok"
    assert determine_health_status(stale, {}) == "warning"
    assert determine_health_status(slow, {}) == "warning"


def test_next_health_blends_latency_and_resets_failures():
    now = "2025-01-06T10:00:00Z"
    first = next_health(ProbeResult(healthy=True, latency_ms=301, item_count=3), {}, now)
    assert first["avg_latency_ms"] == 301
    assert first["failures_count"] == 0
    assert first["last_success_at"] == now

    second = next_health(
        ProbeResult(healthy=True, latency_ms=100, item_count=3),
        {**first, "failures_count": 3},
        now,
    )
    assert second["avg_latency_ms"] == 201
    assert second["failures_count"] == 0


def test_source_escalates_to_dead_and_is_disabled_after_twelve_failures(db):
    async def scenario():
        source = await sources_repo.create_source("rss", "Flaky", config={"url": FEED_URL})
        statuses = []
        async with _client(500) as client:
            for _ in range(12):
                outcome = await check_single_source(source["source_id"], client)
                statuses.append(outcome["source"]["health"]["status"])
        return statuses, await sources_repo.fetch_source(source["source_id"])

    statuses, source = run(scenario())
    assert statuses[0] == "pending"
    assert statuses[1:5] == ["warning"] * 4
    assert statuses[5:] == ["dead"] * 7
    assert source["health"]["failures_count"] == 12
    assert source["health"]["last_error"] == "HTTP 500"
    assert source["is_enabled"] is False


def test_missing_url_and_empty_feed_are_failures(db):
    async def scenario():
        no_url = await sources_repo.create_source("rss", "No url")
        empty = await sources_repo.create_source("rss", "Empty", config={"url": FEED_URL})
        async with _client(200, "<rss><channel></channel></rss>") as client:
            first = await check_single_source(no_url["source_id"], client)
            second = await check_single_source(empty["source_id"], client)
        return first, second

    first, second = run(scenario())
    assert first["result"].error == "No URL configured"
    assert second["result"].error == "No RSS items found"
    assert second["source"]["health"]["failures_count"] == 1


def test_timeout_is_reported(db):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async def scenario():
        source = await sources_repo.create_source("rss", "Slow", config={"url": FEED_URL})
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await check_single_source(source["source_id"], client)

    outcome = run(scenario())
    assert outcome["result"].error == "Timeout"
    assert outcome["source"]["health"]["status"] == "pending"


def test_non_networkable_source_flips_pending_to_ok(db):
    async def scenario():
        source = await sources_repo.create_source("manual", "Editor picks")
        outcome = await check_single_source(source["source_id"])
        return outcome, await check_single_source("src_missing")

    outcome, missing = run(scenario())
    assert outcome["skipped"] is True
    assert outcome["source"]["health"]["status"] == "ok"
    assert missing is None


def test_check_all_sources_counts(db):
    async def scenario():
        await sources_repo.create_source("rss", "Good", category_id="gaming", config={"url": FEED_URL})
        await sources_repo.create_source(
            "rss", "Bad", category_id="gaming", config={"url": "https://feeds.example.com/gone"}
        )
        await sources_repo.create_source("manual", "Manual", category_id="gaming")
        await sources_repo.create_source("rss", "Off", is_enabled=False, config={"url": FEED_URL})

        recent = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")

        def handler(request):
            if str(request.url) == FEED_URL:
                return httpx.Response(200, text=rss_body(["one", "two"], recent))
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            counts = await check_all_sources(client, delay_sec=0)
        return counts, await get_sources_needing_attention(), await get_category_health_stats()

    counts, attention, stats = run(scenario())
    assert counts == {"checked": 2, "skipped": 1, "healthy": 1, "warnings": 0, "dead": 0}
    assert [s["name"] for s in attention] == ["Bad"]
    assert stats["gaming"]["total"] == 3
    assert stats["gaming"]["healthy"] == 2
    assert stats["gaming"]["needs_more"] is True
