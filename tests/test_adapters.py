import asyncio
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from core.models import ScrapeConfig
from ingestion.adapters.bayut import BayutDubaiAdapter, resize_image
from ingestion.adapters.christies import ChristiesDubaiAdapter
from ingestion.adapters.christies import extract_price as christies_price
from ingestion.adapters.sothebys import SITE_URL, SothebysDubaiAdapter, is_property_url
from ingestion.adapters.sothebys import extract_price as sothebys_price
from ingestion.adapters.sothebys_items import (
    CATEGORIES,
    SothebysItemsAdapter,
    parse_item_details,
    parse_items,
    title_from_slug,
)
from tests.conftest import FakeWeb, RecordingSleep, make_page, make_settings

SOTHEBYS_URL = "https://sothebysrealty.ae/properties/buy/villa-for-sale-dubai-palm-jumeirah-xxii-carat-49522"

SOTHEBYS_MARKDOWN = (
    "Palm Jumeirah, Dubai\n"
    "AED 3,700,000\n"
    "4 Beds\n"
    "5 Baths\n"
    "6,200 SQ. FT.\n"
    "\n"
    "Description\n"
    "A beautiful beachfront villa with private pool and direct access to the sand.\n"
)


def sothebys_adapter(pages, maps=None, sleep=None):
    web = FakeWeb(pages=pages, maps=maps or {SITE_URL: [url for url in pages]})
    return SothebysDubaiAdapter(web, make_settings(), sleep=sleep or RecordingSleep()), web


# -----------------------
# Sotheby's Realty
# -----------------------

def test_sothebys_detail_page_to_record():
    adapter, _ = sothebys_adapter({SOTHEBYS_URL: make_page(SOTHEBYS_URL, markdown=SOTHEBYS_MARKDOWN)})
    result = asyncio.run(adapter.scrape(ScrapeConfig()))

    assert result.scraped == 1
    record = result.records[0]
    assert record.price == 999_000
    assert record.bedrooms == 4
    assert record.bathrooms == 5
    assert record.sqft == 6200
    assert record.title == "Villa in Palm Jumeirah"
    assert record.city == "Dubai"
    assert record.country == "UAE"
    assert record.property_type == "villa"
    assert record.source == "sothebys_dubai"
    assert record.source_url == SOTHEBYS_URL
    assert "Pool" in record.lifestyle_tags
    assert "Waterfront" in record.lifestyle_tags


def test_sothebys_page_without_price_produces_no_record():
    markdown = "Palm Jumeirah, Dubai\nPrice on application\n4 Beds\n"
    adapter, _ = sothebys_adapter({SOTHEBYS_URL: make_page(SOTHEBYS_URL, markdown=markdown)})
    result = asyncio.run(adapter.scrape(ScrapeConfig()))
    assert result.records == []
    assert result.urls_found == 1


def test_sothebys_skips_london_listings():
    url = "https://sothebysrealty.ae/properties/buy/apartment-for-sale-london-mayfair-123"
    adapter, _ = sothebys_adapter({url: make_page(url, markdown="Mayfair, London\nAED 9,000,000\n")})
    result = asyncio.run(adapter.scrape(ScrapeConfig()))
    assert result.records == []


def test_sothebys_fused_bedroom_digit_price():
    page = make_page(SOTHEBYS_URL, markdown="Palm Jumeirah, Dubai\n296,000,0007Beds\n")
    assert sothebys_price(page, 0.27) == 79_920_000


def test_sothebys_failed_detail_page_is_skipped_and_delays_before_each_url():
    other = SOTHEBYS_URL.replace("49522", "49523")
    sleep = RecordingSleep()
    adapter, web = sothebys_adapter(
        {SOTHEBYS_URL: make_page(SOTHEBYS_URL, markdown=SOTHEBYS_MARKDOWN)},
        maps={SITE_URL: [other, SOTHEBYS_URL]},
        sleep=sleep,
    )
    result = asyncio.run(adapter.scrape(ScrapeConfig()))
    assert result.scraped == 1
    assert web.scraped == [other, SOTHEBYS_URL]
    assert sleep.calls == [1.0, 1.0]


def test_unexpected_parse_error_skips_only_that_page():
    broken = SOTHEBYS_URL.replace("49522", "49523")

    class FlakyAdapter(SothebysDubaiAdapter):
        def parse(self, url, page):
            if url == broken:
                raise TypeError("unexpected page shape")
            return super().parse(url, page)

    pages = {
        broken: make_page(broken, markdown=SOTHEBYS_MARKDOWN),
        SOTHEBYS_URL: make_page(SOTHEBYS_URL, markdown=SOTHEBYS_MARKDOWN),
    }
    web = FakeWeb(pages=pages, maps={SITE_URL: [broken, SOTHEBYS_URL]})
    adapter = FlakyAdapter(web, make_settings(), sleep=RecordingSleep())

    result = asyncio.run(adapter.scrape(ScrapeConfig()))
    assert result.scraped == 1
    assert result.records[0].source_url == SOTHEBYS_URL


def test_sothebys_limit_applies_to_urls():
    urls = [SOTHEBYS_URL.replace("49522", str(n)) for n in range(5)]
    adapter, web = sothebys_adapter({}, maps={SITE_URL: urls})
    result = asyncio.run(adapter.scrape(ScrapeConfig(limit=2)))
    assert result.urls_found == 2
    assert web.scraped == urls[:2]


def test_is_property_url():
    assert is_property_url(SOTHEBYS_URL)
    assert not is_property_url("https://sothebysrealty.ae/properties/buy/")
    assert not is_property_url(SOTHEBYS_URL + "?ref=map")


# -----------------------
# Christie's
# -----------------------

def test_christies_title_gets_source_suffix():
    url = "https://www.christiesrealestate.com/property/dubai-palm-mansion-1"
    page = make_page(
        url,
        markdown="# Palm Mansion\nPrice: AED 20,000,000\n6 Bedrooms\n7 Bathrooms\n",
        metadata={"title": "Palm Mansion | Christie's International Real Estate"},
    )
    adapter = ChristiesDubaiAdapter(FakeWeb(), make_settings(), sleep=RecordingSleep())
    record = adapter.parse(url, page)

    assert record.title == "Palm Mansion (Christie's)"
    assert record.price == 5_400_000
    assert record.bedrooms == 6
    assert record.address == "Dubai, UAE"
    assert "6 bedrooms" in record.description


def test_christies_list_valued_metadata_title():
    url = "https://www.christiesrealestate.com/property/dubai-palm-mansion-1"
    page = make_page(
        url,
        markdown="# Palm Mansion\nPrice: AED 20,000,000\n",
        metadata={"title": ["Sky Villa | Christie's International Real Estate", "Sky Villa"]},
    )
    adapter = ChristiesDubaiAdapter(FakeWeb(), make_settings(), sleep=RecordingSleep())
    assert adapter.parse(url, page).title == "Sky Villa (Christie's)"


def test_christies_price_without_aed_is_usd():
    page = make_page("u", markdown="Price: 4,500,000\n")
    assert christies_price(page, 0.27) == 4_500_000


def test_christies_discovery_skips_failed_index_pages():
    index = "https://www.christiesrealestate.com/dubai/sales"
    page = make_page(index, links=[
        "https://www.christiesrealestate.com/property/dubai-villa-1",
        "https://www.christiesrealestate.com/property/london-flat-2",
        "https://www.christiesrealestate.com/news/dubai",
    ])
    web = FakeWeb(pages={index: page})
    adapter = ChristiesDubaiAdapter(web, make_settings(), sleep=RecordingSleep())
    urls = asyncio.run(adapter.discover())
    assert urls == ["https://www.christiesrealestate.com/property/dubai-villa-1"]


# -----------------------
# Bayut
# -----------------------

BAYUT_URL = "https://www.bayut.com/property/details-1234567.html"

BAYUT_MARKDOWN = (
    "AED 15,000,000\n"
    "\n"
    "## Luxury Villa with Private Pool in Palm Jumeirah\n"
    "\n"
    "5 Beds\n"
    "6 Baths\n"
    "8,000 sqft\n"
    "\n"
    "Frond G, Palm Jumeirah, Dubai\n"
    "\n"
    "Description\n"
    "Signature villa with sea view and private pool, gym and maid room.\n"
)

BAYUT_HTML = (
    '<img src="https://images.bayut.com/thumbnails/1-400x300.jpg">'
    '<img src="https://images.bayut.com/photos/2-400x300.webp">'
    '<img src="https://images.bayut.com/logo.png">'
)


def test_bayut_detail_page_to_record():
    adapter = BayutDubaiAdapter(FakeWeb(), make_settings(), sleep=RecordingSleep())
    record = adapter.parse(BAYUT_URL, make_page(BAYUT_URL, markdown=BAYUT_MARKDOWN, html=BAYUT_HTML))

    assert record.title == "Luxury Villa with Private Pool in Palm Jumeirah"
    assert record.price == 4_050_000
    assert record.bedrooms == 5
    assert record.bathrooms == 6
    assert record.sqft == 8000
    assert record.address == "Palm Jumeirah, Dubai"
    assert record.property_type == "villa"
    assert record.images == ["https://images.bayut.com/photos/2-800x600.webp"]
    assert record.features == ["Private Pool", "Pool", "Gym", "Sea View", "Maid Room"]
    assert record.lifestyle_tags == ["Beachfront", "Views"]


def test_bayut_rejects_listings_under_one_million_usd():
    markdown = BAYUT_MARKDOWN.replace("AED 15,000,000", "AED 2,000,000")
    adapter = BayutDubaiAdapter(FakeWeb(), make_settings(), sleep=RecordingSleep())
    assert adapter.parse(BAYUT_URL, make_page(BAYUT_URL, markdown=markdown)) is None


def test_bayut_resize_image():
    assert resize_image("https://images.bayut.com/a/1-400x300.jpg") == "https://images.bayut.com/a/1-800x600.jpg"


# -----------------------
# Sotheby's luxury items
# -----------------------

JEWELRY = next(c for c in CATEGORIES if c.category == "Jewelry")

ITEM_CARD = (
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

ITEM_CARD_NO_BRAND = (
    "![](https://dam.sothebys.com/dam/image/Item/def/primary/medium)\n"
    "\n"
    "Diamond Stud Earrings\n"
    "\n"
    "8,000 USD\n"
    "\n"
    "[Buy Now](https://www.sothebys.com/en/buy/pdp/diamond-stud-earrings)\n"
)

ITEM_DETAIL = (
    "Description\n"
    "\n"
    "A rare bracelet from the Panthere collection.\n"
    "\n"
    "Dimensions: 17 cm\n"
    "Materials: 18k yellow gold\n"
    "Condition: Very good, minor wear\n"
    "Provenance: Private collection, Paris\n"
)


def test_parse_items_with_and_without_brand():
    items = parse_items(ITEM_CARD + "\n" + ITEM_CARD_NO_BRAND, JEWELRY)
    by_title = {i.title: i for i in items}

    bracelet = by_title["Panthere Bracelet"]
    assert bracelet.brand == "Cartier"
    assert bracelet.price == 62_500
    assert bracelet.featured is True
    assert bracelet.category == "Jewelry"
    assert bracelet.auction_house == "Sotheby's"
    assert bracelet.details.source_url == "https://www.sothebys.com/en/buy/pdp/cartier-panthere-bracelet"

    earrings = by_title["Diamond Stud Earrings"]
    assert earrings.brand is None
    assert earrings.featured is False


def test_title_from_slug():
    assert title_from_slug("https://www.sothebys.com/en/buy/pdp/rolex-daytona_2020/") == "rolex daytona 2020"


def test_parse_item_details():
    html = '<img src="https://dam.sothebys.com/dam/image/Item/abc/thumbnail/x.jpg">'
    found = parse_item_details(ITEM_DETAIL, html)
    assert found["description"] == "A rare bracelet from the Panthere collection."
    assert found["dimensions"] == "17 cm"
    assert found["materials"] == "18k yellow gold"
    assert found["condition"] == "Very Good"
    assert found["provenance"] == "Private collection, Paris"
    assert found["images"] == ["https://dam.sothebys.com/dam/image/Item/abc/large/x.jpg"]


def make_items_markdown(count):
    cards = []
    for i in range(count):
        cards.append(
            f"![](https://dam.sothebys.com/dam/image/Item/{i}/primary/medium)\n"
            "\n"
            f"Lot Number {i}\n"
            "\n"
            "1,000 USD\n"
            "\n"
            f"[Buy Now](https://www.sothebys.com/en/buy/pdp/lot-{i})\n"
        )
    return "\n".join(cards)


def test_items_detail_fetch_is_bounded_and_skips_known_items():
    pages = {JEWELRY.url: make_page(JEWELRY.url, markdown=make_items_markdown(30))}
    for i in range(30):
        url = f"https://www.sothebys.com/en/buy/pdp/lot-{i}"
        pages[url] = make_page(url, markdown=ITEM_DETAIL)
    web = FakeWeb(pages=pages)
    adapter = SothebysItemsAdapter(
        web, make_settings(), sleep=RecordingSleep(),
        has_details=lambda title: title == "Lot Number 0",
    )

    result = asyncio.run(adapter.scrape(ScrapeConfig(fetch_details=True, categories=["Jewelry"])))

    assert result.scraped == 30
    assert result.details_fetched == 25
    detail_urls = [u for u in web.scraped if "/pdp/" in u]
    assert len(detail_urls) == 25
    assert "https://www.sothebys.com/en/buy/pdp/lot-0" not in detail_urls
    enriched = [i for i in result.records if i.details.condition == "Very Good"]
    assert len(enriched) == 25


def test_items_failed_category_is_skipped():
    web = FakeWeb(pages={JEWELRY.url: make_page(JEWELRY.url, markdown=ITEM_CARD)})
    adapter = SothebysItemsAdapter(web, make_settings(), sleep=RecordingSleep())
    result = asyncio.run(adapter.scrape(ScrapeConfig()))
    assert [i.title for i in result.records] == ["Panthere Bracelet"]
    assert result.details_fetched == 0
