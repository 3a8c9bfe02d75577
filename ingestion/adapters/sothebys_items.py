import asyncio
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config.logging_config import log
from config.settings import Settings
from core.exceptions import FetchError
from core.extraction import first_match, regex
from core.models import ItemDetails, LuxuryItem, ScrapeConfig, ScrapeResult
from ingestion.adapters.base import BaseAdapter
from ingestion.crawler import Sleep

AUCTION_HOUSE = "Sotheby's"
FEATURED_PRICE_USD = 50_000
MAX_DETAIL_ITEMS = 25
MAX_DETAIL_IMAGES = 8


@dataclass(frozen=True)
class Category:
    url: str
    category: str
    type: str = "shopping"


CATEGORIES = [
    Category("https://www.sothebys.com/en/buy/luxury/jewelry", "Jewelry"),
    Category("https://www.sothebys.com/en/buy/luxury/watches/watch", "Watches"),
    Category("https://www.sothebys.com/en/buy/fashion/handbag", "Fashion"),
    Category("https://www.sothebys.com/en/buy/fine-art", "Art"),
    Category("https://www.sothebys.com/en/buy/luxury/wine-&-spirits", "Wine"),
    Category("https://www.sothebys.com/en/buy/interiors", "Collectibles"),
]

# -----------------------
# Category page summaries
# -----------------------

_WITH_BRAND_RE = re.compile(
    r"!\[\]\((https://dam\.sothebys\.com/[^)]+)\)[^\n]*\n[^\n]*\n"
    r"\*\*([^*]+)\*\*[^\n]*\n[^\n]*\n"
    r"([^\n]+)\n[^\n]*\n"
    r"([\d,]+)\s*USD[^\n]*\n[^\n]*\n"
    r"[^\]]*Buy Now\]\((https://www\.sothebys\.com/en/buy/pdp[^)]+)\)"
)
_NO_BRAND_RE = re.compile(
    r"!\[\]\((https://dam\.sothebys\.com/[^)]+)\)[^\n]*\n[^\n]*\n"
    r"([^*\n][^\n]*)\n[^\n]*\n"
    r"([\d,]+)\s*USD[^\n]*\n[^\n]*\n"
    r"[^\]]*Buy Now\]\((https://www\.sothebys\.com/en/buy/pdp[^)]+)\)"
)
_SIMPLE_RE = re.compile(
    r"(https://dam\.sothebys\.com/dam/image/Item/[^/]+/primary/medium)[\s\S]*?"
    r"([\d,]+)\s*USD[\s\S]*?"
    r"Buy Now\]\((https://www\.sothebys\.com/en/buy/pdp[^)]+)\)"
)


def _price(raw: str) -> Optional[int]:
    try:
        return int(raw.replace(",", "")) or None
    except ValueError:
        return None


def _make_item(category: Category, title: str, brand: Optional[str], price: Optional[int], image: str, url: str) -> LuxuryItem:
    return LuxuryItem(
        title=title,
        brand=brand,
        price=price,
        category=category.category,
        type=category.type,
        auction_house=AUCTION_HOUSE,
        images=[image] if image else [],
        featured=bool(price and price > FEATURED_PRICE_USD),
        details=ItemDetails(source_url=url),
    )


def title_from_slug(url: str) -> str:
    slug = url.rstrip("/").split("/")[-1]
    return slug.replace("_", " ").replace("-", " ").strip()[:200]


def parse_items(markdown: str, category: Category) -> List[LuxuryItem]:
    """Item cards from a "Buy Now" category page, keyed by their product URL."""
    items: Dict[str, LuxuryItem] = {}

    for m in _WITH_BRAND_RE.finditer(markdown):
        image, brand, title, price, url = m.groups()
        items.setdefault(url, _make_item(category, title.strip(), brand.strip(), _price(price), image, url))

    for m in _NO_BRAND_RE.finditer(markdown):
        image, title, price, url = m.groups()
        if url not in items:
            items[url] = _make_item(category, title.strip(), None, _price(price), image, url)

    if not items:
        for m in _SIMPLE_RE.finditer(markdown):
            image, price, url = m.groups()
            title = title_from_slug(url)
            if title and url not in items:
                items[url] = _make_item(category, title, None, _price(price), image, url)

    log.info(f"Parsed {len(items)} items from {category.category}")
    return list(items.values())


# -----------------------
# Item detail pages
# -----------------------

def _squash(sep: str, cap: int) -> Callable[[str], str]:
    return lambda s: re.sub(r"\n+", sep, s).strip()[:cap]


def normalize_condition(raw: str) -> str:
    text = raw.strip().lower()
    if "like new" in text or "mint" in text or "excellent" in text:
        return "Like New"
    if "very good" in text:
        return "Very Good"
    if "good" in text:
        return "Good"
    if "fair" in text:
        return "Fair"
    if "revive" in text:
        return "Revive"
    return raw[:100]


DESCRIPTION_PATTERNS = [
    regex(
        r"(?:^|\n)(?:Description|About this item|About|Details)\s*\n+([\s\S]*?)"
        r"(?=\n(?:Dimensions|Materials|Condition|Signature|Provenance|Specifications|\*\*|$))",
        lambda s: re.sub(r"\n\n+", "\n\n", s).strip()[:2000],
    ),
    regex(r"(?:^|\n)## Description\s*\n+([\s\S]*?)(?=\n##|\n\*\*|$)", lambda s: s[:2000]),
]

DIMENSION_PATTERNS = [
    regex(
        r"(?:Dimensions|Size|Measurements)[:\s]*\n?([\s\S]*?)(?=\n(?:Materials|Condition|Signature|Weight|\*\*|$))",
        _squash("\n", 500),
    ),
    regex(r"(?:Height|Width|Depth)[:\s]*([\d.]+\s*(?:inches|cm|in|mm)[\s\S]*?)(?=\n\n|\n\*\*|$)", _squash("\n", 500)),
    regex(r"(\d+\.?\d*\s*[x×]\s*\d+\.?\d*(?:\s*[x×]\s*\d+\.?\d*)?\s*(?:inches|cm|in|mm))", _squash("\n", 500)),
]

MATERIAL_PATTERNS = [
    regex(
        r"(?:Materials?|Made (?:of|from|with)|Composition)[:\s]*\n?([\s\S]*?)(?=\n(?:Dimensions|Condition|Signature|Weight|\*\*|$))",
        _squash(", ", 300),
    ),
    regex(r"(?:Materials?|Metal|Stone|Fabric)[:\s]+([^\n]+)", _squash(", ", 300)),
]

CONDITION_PATTERNS = [
    regex(
        r"(?:Condition(?: Report)?)[:\s]*\n?([\s\S]*?)(?=\n(?:Dimensions|Materials|Signature|Provenance|\*\*|$))",
        normalize_condition,
    ),
    regex(r"\b(Like New|Very Good|Good|Fair|Revive|Excellent|Mint)\b", normalize_condition),
]

SIGNATURE_PATTERNS = [
    regex(
        r"(?:Signature|Signed|Authenticity)[:\s]*\n?([\s\S]*?)(?=\n(?:Dimensions|Materials|Condition|Provenance|\*\*|$))",
        _squash(" ", 300),
    ),
    regex(r"(?:Hand-signed|Signed by)[^.]*\.", _squash(" ", 300), group=0),
]

EDITION_PATTERNS = [
    regex(r"(?:Edition|Limited to|Part of)[:\s]*([^\n]+)", lambda s: s[:100]),
    regex(r"(\d+\s*(?:of|/)\s*\d+)", lambda s: s[:100]),
    regex(r"(?:edition of|limited edition of)\s*(\d+)", lambda s: s[:100]),
]

YEAR_PATTERNS = [
    regex(r"(?:Year|Date|Created|Made)[:\s]*(\d{4})"),
    regex(r",\s*(\d{4})\b", flags=0),
    regex(r"\b(19\d{2}|20\d{2})\b", flags=0),
]

PROVENANCE_PATTERNS = [
    regex(
        r"(?:Provenance)[:\s]*\n?([\s\S]*?)(?=\n(?:Dimensions|Materials|Condition|Signature|\*\*|$))",
        _squash(" ", 500),
    ),
]

_DETAIL_IMAGE_RE = re.compile(r"src=[\"'](https://dam\.sothebys\.com/dam/image/[^\"']+)[\"']", re.IGNORECASE)


def _first_paragraph(markdown: str) -> str:
    for p in re.split(r"\n\n+", markdown or ""):
        cleaned = re.sub(r"^\s*[-*#>\[\]!]+\s*", "", p).strip()
        if len(cleaned) > 100 and not cleaned.startswith("http") and "USD" not in cleaned:
            return cleaned[:2000]
    return ""


def extract_detail_images(html: str, cap: int = MAX_DETAIL_IMAGES) -> List[str]:
    images: List[str] = []
    for m in _DETAIL_IMAGE_RE.finditer(html or ""):
        url = m.group(1)
        for size in ("/thumbnail/", "/medium/", "/small/"):
            url = url.replace(size, "/large/")
        if url not in images:
            images.append(url)
        if len(images) >= cap:
            break
    return images


def parse_item_details(markdown: str, html: str) -> dict:
    return {
        "description": first_match(markdown, DESCRIPTION_PATTERNS) or _first_paragraph(markdown),
        "images": extract_detail_images(html),
        "dimensions": first_match(markdown, DIMENSION_PATTERNS),
        "materials": first_match(markdown, MATERIAL_PATTERNS),
        "condition": first_match(markdown, CONDITION_PATTERNS),
        "signature": first_match(markdown, SIGNATURE_PATTERNS),
        "edition": first_match(markdown, EDITION_PATTERNS),
        "year": first_match(markdown, YEAR_PATTERNS),
        "provenance": first_match(markdown, PROVENANCE_PATTERNS),
    }


def apply_details(item: LuxuryItem, found: dict) -> LuxuryItem:
    details = item.details.model_copy(
        update={k: found[k] for k in ("dimensions", "materials", "condition", "signature", "edition", "year")}
    )
    return item.model_copy(
        update={
            "images": found["images"] or item.images,
            "description": found["description"] or None,
            "provenance": found["provenance"],
            "details": details,
        }
    )


class SothebysItemsAdapter(BaseAdapter):
    """Sotheby's "Buy Now" catalogue: luxury goods rather than properties."""

    source_name = "sothebys_items"
    record_kind = "item"
    category_delay_s = 1.5
    detail_delay_s = 1.0

    def __init__(
        self,
        web,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
        has_details: Optional[Callable[[str], bool]] = None,
        max_detail_items: int = MAX_DETAIL_ITEMS,
    ):
        super().__init__(settings, sleep)
        self.web = web
        # Lets the caller skip detail fetches for items already stored with details
        self.has_details = has_details
        self.max_detail_items = max_detail_items

    def categories(self, selected: Optional[List[str]] = None) -> List[Category]:
        if not selected:
            return list(CATEGORIES)
        return [c for c in CATEGORIES if c.category in selected]

    async def discover(self) -> List[str]:
        return [c.url for c in CATEGORIES]

    async def scrape(self, config: ScrapeConfig) -> ScrapeResult:
        categories = self.categories(config.categories)
        log.info(f"[{self.source_name}] Scraping {len(categories)} categories, fetch_details={config.fetch_details}")

        items: List[LuxuryItem] = []
        for cat in categories:
            try:
                page = await self.web.scrape(cat.url, formats=("markdown", "html"), wait_for=3000)
            except FetchError as e:
                log.warning(f"[{self.source_name}] Category {cat.category} failed: {e}")
            else:
                items.extend(parse_items(page.markdown, cat))
            await self.sleep(self.category_delay_s)

        log.info(f"[{self.source_name}] Total items scraped: {len(items)}")
        if config.limit and len(items) > config.limit:
            items = items[: config.limit]
            log.info(f"[{self.source_name}] Limited to {config.limit} items")

        details_fetched = 0
        if config.fetch_details:
            items, details_fetched = await self._fetch_details(items)

        return ScrapeResult(records=items, urls_found=len(items), details_fetched=details_fetched)

    async def _fetch_details(self, items: List[LuxuryItem]):
        out: List[LuxuryItem] = []
        attempts = 0
        fetched = 0
        for item in items:
            skip = attempts >= self.max_detail_items or (self.has_details and self.has_details(item.title))
            if skip:
                out.append(item)
                continue

            attempts += 1
            url = item.details.source_url
            try:
                page = await self.web.scrape(url, formats=("markdown", "html"), wait_for=2000)
            except FetchError as e:
                log.warning(f"[{self.source_name}] Details failed for {url}: {e}")
                out.append(item)
            else:
                found = parse_item_details(page.markdown, page.html)
                log.debug(
                    f"[{self.source_name}] Details for {url}: desc={len(found['description'])} chars, "
                    f"condition={found['condition']}, images={len(found['images'])}"
                )
                out.append(apply_details(item, found))
                fetched += 1
            await self.sleep(self.detail_delay_s)

        log.info(f"[{self.source_name}] Fetched details for {fetched} of {len(items)} items")
        return out, fetched
