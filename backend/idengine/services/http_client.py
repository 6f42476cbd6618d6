from typing import Dict, Optional

import httpx

FEED_HEADERS: Dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (compatible; IDEngine/1.0)",
    "Accept": "application/rss+xml, application/xml, text/xml, application/atom+xml, */*",
}

_transport: Optional[httpx.AsyncBaseTransport] = None


def set_transport(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    """Route every client opened by open_client through a fixed transport."""
    global _transport
    _transport = transport


def build_timeout(total_sec: float) -> httpx.Timeout:
    return httpx.Timeout(total_sec, connect=min(total_sec, 5.0))


def open_client(timeout_sec: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=build_timeout(timeout_sec),
        headers=FEED_HEADERS,
        follow_redirects=True,
        transport=_transport,
    )


async def fetch_text(client: httpx.AsyncClient, url: str) -> str:
    response = await client.get(url)
    if response.status_code >= 400:
        raise RuntimeError(f"HTTP {response.status_code} from {url}")
    return response.text
