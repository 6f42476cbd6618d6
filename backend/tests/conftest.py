import asyncio
from typing import Any, Callable, Dict, List

import httpx
import pytest

from idengine.db import connection
from idengine.services import http_client, providers


@pytest.fixture
def db(tmp_path):
    asyncio.run(connection.connect_db(str(tmp_path / "test.db")))
    yield
    asyncio.run(connection.close_db())


@pytest.fixture(autouse=True)
def reset_globals():
    yield
    providers.set_providers(providers.Providers())
    http_client.set_transport(None)


def rss_body(titles: List[str], pub_date: str = "Mon, 06 Jan 2025 10:00:00 GMT") -> str:
    items = "".join(
        f"<item><title>{title}</title><link>https://example.com/{index}</link>"
        f"<description>{title} in more words.</description><pubDate>{pub_date}</pubDate></item>"
        for index, title in enumerate(titles)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>{items}</channel></rss>'


def mock_transport(routes: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.MockTransport:
    """Answer by URL; anything unrouted is a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    return httpx.MockTransport(handler)


def run(coro: Any) -> Any:
    return asyncio.run(coro)
