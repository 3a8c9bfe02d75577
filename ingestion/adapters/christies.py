import re
from typing import Optional

from core.extraction import (
    BATHROOM_PATTERNS,
    BEDROOM_PATTERNS,
    SQFT_PATTERNS,
    classify_property_type,
    clean_description,
    derive_lifestyle_tags,
    extract_heading,
    extract_images,
    extract_labelled,
    extract_section,
    first_match,
)
from core.models import ListingRecord, ScrapedPage
from core.normalizer import detect_currency, normalize_price
from ingestion.adapters.base import ListingPageAdapter
from ingestion.crawler import SeedConfig

SITE_URL = "https://www.christiesrealestate.com"

INDEX_PAGES = [
    f"{SITE_URL}/dubai/sales",
    f"{SITE_URL}/dubai/sales?page=2",
    f"{SITE_URL}/dubai/sales?page=3",
    f"{SITE_URL}/uae/sales",
    f"{SITE_URL}/sales/location/united-arab-emirates",
    f"{SITE_URL}/sales/location/dubai",
]

HREF_PATTERN = r"href=[\"']([^\"']*(?:property|listing)[^\"']*dubai[^\"']*)[\"']"

_MD_PRICE_RE = re.compile(r"(?:AED|USD|Price)[:\s]*([\d,]+)", re.IGNORECASE)
_HTML_PRICE_RE = re.compile(r"price[^>]*>[\s]*(?:AED|USD)?[\s]*([\d,]+)", re.IGNORECASE)


def is_detail_url(url: str) -> bool:
    return "/property/" in url or "/listing/" in url


def is_dubai_detail_url(url: str) -> bool:
    return is_detail_url(url) and ("dubai" in url or "uae" in url)


def extract_price(page: ScrapedPage, rate: float) -> int:
    """Prices tagged AED are converted, anything else is taken as USD."""
    m = _MD_PRICE_RE.search(page.markdown) or _HTML_PRICE_RE.search(page.html)
    if not m:
        return 0
    return normalize_price(m.group(1), detect_currency(m.group(0), "USD"), rate)


class ChristiesDubaiAdapter(ListingPageAdapter):
    source_name = "christies_dubai"
    detail_delay_s = 1.5

    def seed(self) -> SeedConfig:
        return SeedConfig(
            source=self.source_name,
            index_pages=INDEX_PAGES,
            index_formats=("html", "links"),
            link_filter=is_dubai_detail_url,
            href_pattern=HREF_PATTERN,
            base_url=SITE_URL,
            map_url=f"{SITE_URL}/dubai",
            map_search="property listing sale",
            map_limit=300,
            map_filter=is_detail_url,
            soft_cap=100,
            max_urls=100,
            delay_s=2.0,
        )

    def parse(self, url: str, page: ScrapedPage) -> Optional[ListingRecord]:
        markdown = page.markdown

        title = re.sub(r"\s*\|\s*Christie.*$", "", page.meta_text("title"), flags=re.IGNORECASE).strip()
        if not title:
            title = extract_heading(markdown, 1) or "Luxury Property in Dubai"

        bedrooms = first_match(markdown, BEDROOM_PATTERNS)
        bathrooms = first_match(markdown, BATHROOM_PATTERNS)

        description = clean_description(
            extract_section(markdown, ("description", "overview", "about")) or "", max_len=800
        )
        if not description:
            description = (
                "Luxury property in Dubai, UAE. "
                f"{f'{bedrooms} bedrooms, ' if bedrooms else ''}"
                f"{f'{bathrooms} bathrooms. ' if bathrooms else ''}"
                "Listed through Christie's International Real Estate."
            )

        record = self.build_record(
            url,
            title=title,
            description=description,
            price=extract_price(page, self.rate),
            bedrooms=bedrooms,
            bathrooms=bathrooms,
            sqft=first_match(markdown, SQFT_PATTERNS),
            property_type=classify_property_type(f"{title} {description}"),
            address=extract_labelled(markdown, ("location", "address")) or "Dubai, UAE",
            images=extract_images(page.html),
            features=[],
            lifestyle_tags=derive_lifestyle_tags(description),
        )
        # Christie's titles are not unique across sources
        if record and "christie" not in record.title.lower():
            record = record.model_copy(update={"title": f"{record.title} (Christie's)"})
        return record
