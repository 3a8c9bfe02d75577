import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.main import app, get_pipeline, get_store
from core.exceptions import StorageError
from core.pipeline import IngestionPipeline
from ingestion.adapters.sothebys import SITE_URL
from tests.conftest import FakeWeb, RecordingSleep, make_page, make_settings

DETAIL_URL = "https://sothebysrealty.ae/properties/buy/villa-for-sale-dubai-palm-jumeirah-1"


@pytest.fixture
def client(store):
    web = FakeWeb(
        pages={DETAIL_URL: make_page(DETAIL_URL, markdown="Palm Jumeirah, Dubai\nAED 20,000,000\n5 Beds\n")},
        maps={SITE_URL: [DETAIL_URL]},
    )
    pipeline = IngestionPipeline(make_settings(IDX_API_KEY=None), store, web=web, sleep=RecordingSleep())
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_ingest_then_read_properties(client):
    r = client.post("/ingest/sothebys_dubai", json={"action": "sync"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert (body["scraped"], body["inserted"], body["updated"]) == (1, 1, 0)
    assert "error" not in body

    props = client.get("/properties", params={"city": "dubai"}).json()
    assert [p["title"] for p in props] == ["Villa in Palm Jumeirah"]
    assert props[0]["price"] == 5_400_000


def test_ingest_map_action(client):
    body = client.post("/ingest/sothebys_dubai", json={"action": "map"}).json()
    assert body["urls"] == [DETAIL_URL]


def test_ingest_unknown_source_is_500(client):
    r = client.post("/ingest/zillow")
    assert r.status_code == 500
    assert r.json() == {"success": False, "source": "zillow", "action": "sync", "scraped": 0,
                        "inserted": 0, "updated": 0, "error": "Unknown source: zillow"}


def test_ingest_rejects_negative_limit(client):
    assert client.post("/ingest/sothebys_dubai", json={"limit": -1}).status_code == 422


def test_ingest_rejects_unknown_action(client, store):
    r = client.post("/ingest/sothebys_dubai", json={"action": "crawl"})
    assert r.status_code == 422
    assert store.properties == {}


def test_storage_failure_is_503(client, store):
    def broken(filters):
        raise StorageError("connection refused")

    store.query_properties = broken
    assert client.get("/properties").status_code == 503


def test_luxury_items_filter(client, store):
    store.items["1"] = {"title": "Watch", "category": "Watches"}
    store.items["2"] = {"title": "Ring", "category": "Jewelry"}
    items = client.get("/luxury-items", params={"category": "Jewelry"}).json()
    assert [i["title"] for i in items] == ["Ring"]


def test_idx_without_credentials_reports_error(client):
    body = client.get("/idx/properties").json()
    assert body == {"properties": [], "total": 0, "error": "IDX credentials not configured"}

    assert client.get("/idx/saved-links").json()["error"] == "IDX credentials not configured"
    assert client.get("/idx/properties/123").status_code == 503
