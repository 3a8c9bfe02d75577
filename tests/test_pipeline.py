import asyncio
import os
import sys

import httpx

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from core.pipeline import SOURCES, IngestionPipeline
from ingestion.adapters.sothebys import SITE_URL
from ingestion.adapters.sothebys_items import CATEGORIES
from tests.conftest import FakeIdxApi, FakeWeb, RecordingSleep, make_listing, make_page, make_settings

DETAIL_URL = "https://sothebysrealty.ae/properties/buy/villa-for-sale-dubai-area-{n}-{n}"


def make_detail(n, priced=True):
    lines = [f"Area {n}, Dubai"]
    if priced:
        lines.append(f"AED {10 + n},000,000")
    lines += ["5 Beds", "6 Baths"]
    return make_page(DETAIL_URL.format(n=n), markdown="\n".join(lines))


def make_sothebys_web(count=3, unpriced=()):
    urls = [DETAIL_URL.format(n=n) for n in range(count)]
    pages = {url: make_detail(n, priced=n not in unpriced) for n, url in enumerate(urls)}
    return FakeWeb(pages=pages, maps={SITE_URL: urls})


def make_pipeline(store, web=None, **settings_overrides):
    return IngestionPipeline(make_settings(**settings_overrides), store, web=web, sleep=RecordingSleep())


def invoke(pipeline, source, **options):
    async def go():
        try:
            return await pipeline.invoke(source, **options)
        finally:
            await pipeline.close()
    return asyncio.run(go())


def test_source_registry():
    assert SOURCES == ["bayut_dubai", "christies_dubai", "idx", "sothebys_dubai", "sothebys_items"]


def test_first_run_inserts_everything(store):
    response = invoke(make_pipeline(store, make_sothebys_web(3)), "sothebys_dubai")

    assert response.success is True
    assert (response.scraped, response.inserted, response.updated) == (3, 3, 0)
    assert response.urls_found == 3
    assert response.details_fetched is None


def test_rerun_updates_instead_of_inserting(store):
    web = make_sothebys_web(3)
    invoke(make_pipeline(store, web), "sothebys_dubai")
    response = invoke(make_pipeline(store, web), "sothebys_dubai")

    assert (response.inserted, response.updated) == (0, 3)
    assert len(store.properties) == 3


def test_unpriced_candidates_are_rejected(store):
    web = make_sothebys_web(10, unpriced={2, 5, 8})
    response = invoke(make_pipeline(store, web), "sothebys_dubai")

    assert response.success is True
    assert response.urls_found == 10
    assert (response.scraped, response.inserted) == (7, 7)
    assert len(store.properties) == 7
    assert all(row["price"] > 0 for row in store.properties.values())


def test_map_action_lists_urls_without_writing(store):
    response = invoke(make_pipeline(store, make_sothebys_web(2)), "sothebys_dubai", action="map")

    assert response.success is True
    assert response.urls_found == 2
    assert response.urls == [DETAIL_URL.format(n=0), DETAIL_URL.format(n=1)]
    assert store.properties == {}


def test_missing_scraping_credential_fails_before_network(store):
    response = invoke(make_pipeline(store, FIRECRAWL_API_KEY=None), "sothebys_dubai")

    assert response.success is False
    assert "FIRECRAWL_API_KEY" in response.error
    assert store.properties == {}


def test_missing_idx_credential(store):
    response = invoke(make_pipeline(store, FakeWeb(), IDX_API_KEY=None), "idx")
    assert response.success is False
    assert response.error == "IDX credentials not configured"


def test_unknown_source_and_action(store):
    pipeline = make_pipeline(store, FakeWeb())
    assert invoke(pipeline, "zillow").error == "Unknown source: zillow"
    assert invoke(pipeline, "bayut_dubai", action="crawl").error == "Invalid action: crawl"


def test_discovery_failure_becomes_failed_response(store):
    response = invoke(make_pipeline(store, FakeWeb()), "sothebys_dubai")

    assert response.success is False
    assert "Failed to map URLs" in response.error


def test_idx_run_syncs_feed_listings(store):
    api = FakeIdxApi({"clients/featured": (200, [
        make_listing("1", "$2,400,000"),
        make_listing("2", 7_000_000),
        make_listing("3", 3_100_000, status="Sold"),
        make_listing("4", 0),
    ])})
    pipeline = IngestionPipeline(
        make_settings(), store, web=FakeWeb(),
        idx_client=httpx.AsyncClient(transport=httpx.MockTransport(api)),
        sleep=RecordingSleep(),
    )

    response = invoke(pipeline, "idx")

    assert response.success is True
    assert response.urls_found == 3
    assert (response.scraped, response.inserted, response.updated) == (2, 2, 0)
    rows = sorted(store.properties.values(), key=lambda r: r["price"])
    assert [(r["title"], r["price"]) for r in rows] == [
        ("100 Peachtree Rd 1", 2_400_000),
        ("100 Peachtree Rd 2", 7_000_000),
    ]
    assert all(r["source"] == "idx" for r in rows)
    # the background cache write ran before close returned
    assert set(store.cache) == {"1", "2", "4"}
    assert api.calls == ["clients/featured"]


def test_items_run_reports_details_fetched(store):
    jewelry = next(c for c in CATEGORIES if c.category == "Jewelry")
    markdown = (
        "![](https://dam.sothebys.com/dam/image/Item/abc/primary/medium)\n"
        "\n"
        "**Cartier**\n"
        "\n"
        "Panthere Bracelet\n"
        "\n"
        "62,500 USD\n"
        "\n"
        "[Buy Now](https://www.sothebys.com/en/buy/pdp/cartier-panthere-bracelet)\n"
    )
    detail_url = "https://www.sothebys.com/en/buy/pdp/cartier-panthere-bracelet"
    web = FakeWeb(pages={
        jewelry.url: make_page(jewelry.url, markdown=markdown),
        detail_url: make_page(detail_url, markdown="Condition: Excellent\n"),
    })

    response = invoke(make_pipeline(store, web), "sothebys_items", fetch_details=True)

    assert response.success is True
    assert (response.scraped, response.inserted, response.details_fetched) == (1, 1, 1)
    row = next(iter(store.items.values()))
    assert row["details"]["condition"] == "Like New"

    # stored details now exist, so the next run skips the detail page
    web.scraped.clear()
    response = invoke(make_pipeline(store, web), "sothebys_items", fetch_details=True)
    assert response.details_fetched == 0
    assert detail_url not in web.scraped
    assert next(iter(store.items.values()))["details"]["condition"] == "Like New"


def test_run_all_runs_sources_in_order(store):
    pipeline = make_pipeline(store, make_sothebys_web(2))

    async def go():
        try:
            return await pipeline.run_all(["christies_dubai", "sothebys_dubai"])
        finally:
            await pipeline.close()

    responses = asyncio.run(go())
    assert [r.source for r in responses] == ["christies_dubai", "sothebys_dubai"]
    assert responses[1].inserted == 2
