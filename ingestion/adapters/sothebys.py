import re
from typing import Optional

from config.logging_config import log
from core.extraction import (
    BEDROOM_PATTERNS,
    BATHROOM_PATTERNS,
    classify_property_type,
    derive_lifestyle_tags,
    extract_description,
    extract_feature_block,
    extract_images,
    extract_location_line,
    extract_sqft,
    first_match,
    first_of,
    regex,
)
from core.models import ListingRecord, ScrapedPage
from core.normalizer import normalize_price, parse_int, strip_fused_bedroom_digit
from ingestion.adapters.base import ListingPageAdapter
from ingestion.crawler import SeedConfig

SITE_URL = "https://sothebysrealty.ae"

_HTML_SPAN_PRICE = regex(r"font-medium text-sm[^>]*>(\d{1,3}(?:,\d{3})+)</span>")
_FUSED_PRICE_MD = regex(r"([\d,]+)\d*Beds")
_FUSED_PRICE_HTML = regex(r"([\d,]+)\d*<!-- -->Beds")
_AED_PRICE_MD = regex(r"AED\s*([\d,]+)")
_AED_PRICE_HTML = regex(r"AED[^\d]*([\d,]+)")
_LONG_NUMBER_PRICE = regex(r"([\d,]{8,})\d*(?:Bed|Bath)")

_HTML_BEDS = regex(r">(\d+)<!-- -->.*Beds", parse_int)
_HTML_BATHS = regex(r">(\d+)<!-- -->.*Baths", parse_int)

IMAGE_PATTERNS = [
    r"https://my-dubai-real-estate\.s3[^\"'\s]+\.(?:jpg|jpeg|png|webp)",
    r"https://sothebysrealty\.ae/cdn-cgi/image[^\"']+",
]
IMAGE_HINTS = ("s3", "cdn", "listing")


def is_property_url(url: str) -> bool:
    return (
        "/properties/buy/" in url
        and not url.endswith("/buy/")
        and "?" not in url
        and len(url.split("/")) > 5
    )


def _html_span_price(page: ScrapedPage) -> Optional[str]:
    return _HTML_SPAN_PRICE(page.html)


def _fused_price(page: ScrapedPage) -> Optional[str]:
    # "296,000,0007Beds": the trailing digit is the bedroom count
    raw = first_of(_FUSED_PRICE_MD(page.markdown), _FUSED_PRICE_HTML(page.html))
    if raw is None:
        return None
    raw = strip_fused_bedroom_digit(raw)
    return raw if len(raw) > 3 else None


def _aed_price(page: ScrapedPage) -> Optional[str]:
    return first_of(_AED_PRICE_MD(page.markdown), _AED_PRICE_HTML(page.html))


def _long_number_price(page: ScrapedPage) -> Optional[str]:
    return _LONG_NUMBER_PRICE(page.markdown)


PRICE_CASCADE = [_html_span_price, _fused_price, _aed_price, _long_number_price]


def extract_price(page: ScrapedPage, rate: float) -> int:
    """Listing prices are quoted in AED; returns whole USD or 0."""
    raw = first_match(page, PRICE_CASCADE)
    return normalize_price(raw, "AED", rate) if raw else 0


class SothebysDubaiAdapter(ListingPageAdapter):
    source_name = "sothebys_dubai"
    detail_delay_s = 1.0

    def seed(self) -> SeedConfig:
        return SeedConfig(
            source=self.source_name,
            map_url=SITE_URL,
            map_search="/properties/",
            map_limit=200,
            map_filter=is_property_url,
            max_urls=50,
        )

    def parse(self, url: str, page: ScrapedPage) -> Optional[ListingRecord]:
        markdown, html = page.markdown, page.html

        # /properties/buy/villa-for-sale-dubai-palm-jumeirah-xxii-carat-49522
        slug_parts = url.rstrip("/").split("/")[-1].split("-")
        url_type = slug_parts[0] or "property"
        location = extract_location_line(markdown)

        if "," in location:
            area = location.split(",")[0].strip()
            title = f"{url_type[:1].upper()}{url_type[1:]} in {area}"
        else:
            meta_title = re.sub(r"\s*\|\s*Sotheby.*$", "", page.meta_text("title"), flags=re.IGNORECASE)
            title = meta_title.strip() or f"Luxury {url_type} in Dubai"

        if "-london-" in url or "london" in location.lower():
            log.info(f"[{self.source_name}] Skipping non-Dubai property: {url}")
            return None

        address = location or " ".join(p.capitalize() for p in slug_parts[4:-1])
        description = extract_description(markdown, max_len=1000) or "Luxury property in Dubai, UAE."
        features = extract_feature_block(markdown)

        return self.build_record(
            url,
            title=title,
            description=description,
            price=extract_price(page, self.rate),
            bedrooms=first_of(first_match(markdown, BEDROOM_PATTERNS), _HTML_BEDS(html)),
            bathrooms=first_of(first_match(markdown, BATHROOM_PATTERNS), _HTML_BATHS(html)),
            sqft=extract_sqft(markdown),
            property_type=classify_property_type(f"{title} {description}"),
            address=address,
            images=extract_images(html, patterns=IMAGE_PATTERNS, img_hints=IMAGE_HINTS),
            features=features,
            lifestyle_tags=derive_lifestyle_tags(f"{' '.join(features)} {description}"),
        )
