import asyncio
import json
import os
import sys

import httpx
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from core.exceptions import ConfigurationError, FetchError
from ingestion.firecrawl import FirecrawlClient
from tests.conftest import make_settings


def make_client(handler):
    return FirecrawlClient(make_settings(), client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def json_response(status, body):
    return httpx.Response(status, content=json.dumps(body).encode(), headers={"Content-Type": "application/json"})


def run(coro_fn):
    async def go(client):
        try:
            return await coro_fn(client)
        finally:
            await client.close()
    return go


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        FirecrawlClient(make_settings(FIRECRAWL_API_KEY=None))


def test_scrape_returns_page():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return json_response(200, {
            "success": True,
            "data": {
                "markdown": "# Villa",
                "html": "<h1>Villa</h1>",
                "links": ["https://a/1", {"url": "https://a/2"}, {"nope": 1}],
                "metadata": {"title": "Villa | Site"},
            },
        })

    client = make_client(handler)
    page = asyncio.run(run(lambda c: c.scrape("https://a", formats=("markdown",), only_main_content=True))(client))

    assert page.markdown == "# Villa"
    assert page.links == ["https://a/1", "https://a/2"]
    assert page.metadata["title"] == "Villa | Site"
    assert seen["path"].endswith("/scrape")
    assert seen["auth"] == "Bearer fc-test"
    assert seen["body"] == {"url": "https://a", "formats": ["markdown"], "waitFor": 3000, "onlyMainContent": True}


def test_map_returns_links():
    def handler(request):
        return json_response(200, {"success": True, "links": ["https://a/1", "https://a/2"]})

    client = make_client(handler)
    links = asyncio.run(run(lambda c: c.map("https://a", search="/properties/"))(client))
    assert links == ["https://a/1", "https://a/2"]


def test_http_error_status_raises_fetch_error():
    client = make_client(lambda request: json_response(429, {"error": "rate limited"}))
    with pytest.raises(FetchError) as exc:
        asyncio.run(run(lambda c: c.scrape("https://a"))(client))
    assert exc.value.status_code == 429
    assert exc.value.url == "https://a"


def test_unsuccessful_envelope_raises_fetch_error():
    client = make_client(lambda request: json_response(200, {"success": False, "error": "blocked"}))
    with pytest.raises(FetchError):
        asyncio.run(run(lambda c: c.map("https://a"))(client))


def test_transport_error_raises_fetch_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(FetchError):
        asyncio.run(run(lambda c: c.scrape("https://a"))(client))
