import json
import os
import sys
import uuid

import httpx
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from config.settings import Settings
from core.exceptions import FetchError, StorageError
from core.models import ScrapedPage


def make_settings(tmp_path=None, **overrides) -> Settings:
    values = {
        "DATABASE_URL": "postgresql://unused/test",
        "FIRECRAWL_API_KEY": "fc-test",
        "IDX_API_KEY": "idx-test",
        "IDX_BASE_URL": "https://idx.test",
        "REQUEST_RETRIES": 1,
    }
    if tmp_path is not None:
        values["LOG_DIR"] = tmp_path
    values.update(overrides)
    return Settings(**values)


def make_page(url: str, markdown: str = "", html: str = "", links=None, metadata=None) -> ScrapedPage:
    return ScrapedPage(url=url, markdown=markdown, html=html, links=links or [], metadata=metadata or {})


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeWeb:
    """In-memory stand-in for the web-scraping API client."""

    def __init__(self, pages=None, maps=None):
        self.pages = dict(pages or {})
        self.maps = dict(maps or {})
        self.scraped = []
        self.mapped = []
        self.closed = False

    async def scrape(self, url, formats=("markdown", "html"), wait_for=3000, only_main_content=False):
        self.scraped.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError(url, "scrape returned 404", 404)
        if isinstance(page, Exception):
            raise page
        return page

    async def map(self, url, search="", limit=100):
        self.mapped.append(url)
        if url not in self.maps:
            raise FetchError(url, "map returned 500", 500)
        return list(self.maps[url])

    async def close(self):
        self.closed = True


def make_listing(listing_id, price, status="Active", **extra):
    listing = {
        "listingID": listing_id,
        "listingPrice": price,
        "propStatus": status,
        "streetNumber": "100",
        "streetName": f"Peachtree Rd {listing_id}",
        "cityName": "Atlanta",
        "state": "GA",
        "zipcode": "30305",
        "bedrooms": "5",
        "totalBaths": "4.5",
        "sqFt": "6,200",
        "propType": "Single Family Residential",
        "remarksConcat": "Estate home. Contact agent@broker.com for showings.",
    }
    listing.update(extra)
    return listing


class FakeIdxApi:
    """httpx.MockTransport handler keyed by request path."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        self.calls.append(path)
        status, body = self.routes.get(path, (404, {"error": "not found"}))
        return httpx.Response(status, content=json.dumps(body).encode(), headers={"Content-Type": "application/json"})


class FakeStore:
    """In-memory store implementing the PostgresStore interface."""

    def __init__(self):
        self.properties = {}
        self.items = {}
        self.cache = {}
        self.cache_batches = []
        self.fail_titles = set()

    def setup_schema(self):
        pass

    def _check(self, row):
        if row.get("title") in self.fail_titles:
            raise StorageError(f"write rejected for {row.get('title')}")

    # properties
    def find_property(self, title, city):
        for pid, row in self.properties.items():
            if row["title"] == title and row["city"] == city:
                return {"id": pid, **row}
        return None

    def insert_property(self, row):
        self._check(row)
        self.properties[str(uuid.uuid4())] = dict(row)

    def update_property(self, property_id, row):
        self._check(row)
        self.properties[property_id].update(row)

    def query_properties(self, filters):
        rows = [r for r in self.properties.values() if r["status"] == filters.status]
        if filters.city:
            rows = [r for r in rows if filters.city.lower() in r["city"].lower()]
        if filters.min_price is not None:
            rows = [r for r in rows if r["price"] >= filters.min_price]
        rows.sort(key=lambda r: r["price"], reverse=True)
        return rows[filters.offset: filters.offset + filters.limit]

    # luxury items
    def find_item(self, title):
        for iid, row in self.items.items():
            if row["title"] == title:
                return {"id": iid, **row}
        return None

    def insert_item(self, row):
        self._check(row)
        self.items[str(uuid.uuid4())] = dict(row)

    def update_item(self, item_id, row):
        self._check(row)
        self.items[item_id].update(row)

    def query_items(self, filters):
        rows = list(self.items.values())
        if filters.category:
            rows = [r for r in rows if r["category"] == filters.category]
        return rows[filters.offset: filters.offset + filters.limit]

    # idx cache
    def fetch_cache_entry(self, entry_id):
        row = self.cache.get(entry_id)
        return dict(row) if row else None

    def upsert_cache_entries(self, rows):
        rows = list(rows)
        self.cache_batches.append(len(rows))
        for r in rows:
            self.cache[r["id"]] = dict(r)

    def delete_expired_cache(self, now):
        expired = [k for k, v in self.cache.items() if v["expires_at"] < now]
        for k in expired:
            del self.cache[k]
        return len(expired)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sleep():
    return RecordingSleep()
