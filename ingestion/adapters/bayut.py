import re
from typing import Optional

from config.logging_config import log
from core.extraction import (
    classify_property_type,
    clean_description,
    derive_lifestyle_tags,
    extract_bathrooms,
    extract_bedrooms,
    extract_images,
    extract_section,
    extract_sqft,
    first_match,
    match_feature_keywords,
    regex,
)
from core.models import ListingRecord, ScrapedPage
from core.normalizer import normalize_price
from ingestion.adapters.base import ListingPageAdapter
from ingestion.crawler import SeedConfig

SITE_URL = "https://www.bayut.com"

LUXURY_AREAS = [
    "palm-jumeirah",
    "emirates-hills",
    "dubai-hills-estate",
    "downtown-dubai",
    "dubai-marina",
    "jumeirah-beach-residence-jbr",
    "bluewaters-island",
    "dubai-creek-harbour",
    "jumeirah-golf-estates",
    "al-barari",
    "mohammed-bin-rashid-city",
    "difc",
]

# AED 5M floor on the index pages, USD 1M floor on parsed records
INDEX_PRICE_MIN_AED = 5_000_000
MIN_PRICE_USD = 1_000_000
MAX_IMAGES = 10
MAX_DESCRIPTION = 2000

FEATURE_KEYWORDS = [
    "private pool", "pool", "gym", "parking", "balcony", "terrace",
    "sea view", "marina view", "city view", "garden", "maid room",
    "study", "beach access", "concierge", "security", "elevator",
    "smart home", "furnished", "unfurnished", "high floor", "corner unit",
]

PROPERTY_TYPE_RULES = [
    (("villa",), "villa"),
    (("penthouse",), "penthouse"),
    (("townhouse",), "townhouse"),
    (("duplex",), "duplex"),
    (("apartment", "flat"), "apartment"),
    (("mansion",), "mansion"),
]

LIFESTYLE_RULES = [
    (("beach", "sea", "palm", "jbr"), "Beachfront"),
    (("golf",), "Golf"),
    (("marina",), "Waterfront"),
    (("downtown", "difc"), "Urban"),
    (("hills", "barari"), "Suburban"),
    (("view", "panoramic"), "Views"),
]

TITLE_PATTERN = regex(r"##\s*([^\n]+)", flags=0)
ALT_TITLE_PATTERN = regex(r"((?:Villa|Apartment|Penthouse|Townhouse)[^\n]*)")

_AED_PREFIX = regex(r"AED\s*([\d,]+(?:\.\d+)?)")
_AED_SUFFIX = regex(r"([\d,]+)\s*AED")

PRICE_PATTERNS = [
    lambda page: _AED_PREFIX(page.markdown),
    lambda page: _AED_SUFFIX(page.markdown),
    lambda page: _AED_PREFIX(page.html),
]

LOCATION_PATTERNS = [
    regex(r"(?:###\s*)?([^,\n#]+,\s*Dubai)"),
    regex(r"(Palm Jumeirah|Emirates Hills|Downtown Dubai|Dubai Marina|Dubai Hills|JBR|Bluewaters|Creek Harbour|DIFC|Al Barari|MBR City)[^\n]*"),
]

IMAGE_PATTERN = r"src=[\"'](https://images\.bayut\.com/[^\"']+)[\"']"


def is_detail_url(url: str) -> bool:
    return bool(url) and "/property/details-" in url and url.endswith(".html")


def area_index_url(area: str) -> str:
    return f"{SITE_URL}/for-sale/property/dubai/{area}/?price_min={INDEX_PRICE_MIN_AED}"


def resize_image(url: str) -> str:
    return re.sub(r"-\d+x\d+\.", "-800x600.", url, count=1)


def extract_title(markdown: str) -> str:
    title = TITLE_PATTERN(markdown) or ""
    if len(title) < 10:
        title = ALT_TITLE_PATTERN(markdown) or "Luxury Property in Dubai"
    return title[:200]


def extract_description(markdown: str) -> str:
    description = clean_description(extract_section(markdown) or "")
    if len(description) > MAX_DESCRIPTION:
        description = description[: MAX_DESCRIPTION - 3] + "..."
    return description


class BayutDubaiAdapter(ListingPageAdapter):
    source_name = "bayut_dubai"
    detail_wait_for = 2000
    only_main_content = False
    detail_delay_s = 1.5

    def seed(self) -> SeedConfig:
        return SeedConfig(
            source=self.source_name,
            index_pages=[area_index_url(a) for a in LUXURY_AREAS],
            index_formats=("links",),
            link_filter=is_detail_url,
            map_url=f"{SITE_URL}/for-sale/property/dubai/palm-jumeirah/",
            map_search="property details villa apartment penthouse",
            map_limit=100,
            max_urls=100,
            delay_s=1.0,
        )

    def parse(self, url: str, page: ScrapedPage) -> Optional[ListingRecord]:
        markdown, html = page.markdown, page.html

        title = extract_title(markdown)
        raw_price = first_match(page, PRICE_PATTERNS)
        price = normalize_price(raw_price, "AED", self.rate) if raw_price else 0
        if price < MIN_PRICE_USD:
            log.info(f"[{self.source_name}] Skipping property under $1M: {price} ({url})")
            return None

        address = first_match(markdown, LOCATION_PATTERNS) or "Dubai, UAE"
        description = extract_description(markdown)

        return self.build_record(
            url,
            title=title,
            description=description,
            price=price,
            bedrooms=extract_bedrooms(markdown, html),
            bathrooms=extract_bathrooms(markdown, html),
            sqft=extract_sqft(markdown, html),
            property_type=classify_property_type(f"{title} {description}", PROPERTY_TYPE_RULES, default="residential"),
            address=address,
            images=extract_images(
                html,
                patterns=[IMAGE_PATTERN],
                include_img_tags=False,
                og_image=False,
                exclude=("thumbnail",),
                rewrite=resize_image,
                cap=MAX_IMAGES,
            ),
            features=match_feature_keywords(markdown, FEATURE_KEYWORDS),
            lifestyle_tags=derive_lifestyle_tags(f"{title} {description} {address}", LIFESTYLE_RULES),
        )
