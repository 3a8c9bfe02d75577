from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


PROPERTY_TYPES = (
    "villa",
    "apartment",
    "penthouse",
    "townhouse",
    "mansion",
    "duplex",
    "house",
    "residential",
)
MAX_IMAGES = 20
MAX_FEATURES = 15
DEFAULT_LIFESTYLE_TAG = "Luxury"

LuxuryItemType = Literal["shopping", "auction"]
LUXURY_CATEGORIES = ["Fashion", "Watches", "Jewelry", "Art", "Wine", "Collectibles", "Home", "Other"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _unique(values: List[str]) -> List[str]:
    out: List[str] = []
    for v in values:
        if v and v not in out:
            out.append(v)
    return out


class ListingRecord(BaseModel):
    """Canonical, source-agnostic property record produced by every adapter."""

    # Identification
    source: str
    source_url: Optional[str] = None

    # Core attributes
    title: str = Field(min_length=1)
    description: Optional[str] = None
    price: int = Field(gt=0)  # USD
    property_type: str = "house"
    status: str = "active"

    # Details
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    sqft: Optional[int] = None
    address: Optional[str] = None
    city: str
    country: str
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    images: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    lifestyle_tags: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("property_type")
    @classmethod
    def known_property_type(cls, v):
        value = (v or "").strip().lower()
        return value if value in PROPERTY_TYPES else "house"

    @field_validator("images")
    @classmethod
    def cap_images(cls, v):
        return _unique(v)[:MAX_IMAGES]

    @field_validator("features")
    @classmethod
    def cap_features(cls, v):
        return _unique([f.strip() for f in v if f and f.strip()])[:MAX_FEATURES]

    @field_validator("lifestyle_tags")
    @classmethod
    def never_empty_tags(cls, v):
        return _unique(v) or [DEFAULT_LIFESTYLE_TAG]

    @property
    def identity_key(self) -> Tuple[str, str]:
        return self.title, self.city

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump()


class ItemDetails(BaseModel):
    source_url: Optional[str] = None
    dimensions: Optional[str] = None
    materials: Optional[str] = None
    condition: Optional[str] = None
    signature: Optional[str] = None
    edition: Optional[str] = None
    year: Optional[str] = None

    def has_detailed_info(self) -> bool:
        return bool(self.dimensions or self.materials or self.condition)


class LuxuryItem(BaseModel):
    title: str = Field(min_length=1)
    brand: Optional[str] = None
    price: Optional[int] = None
    category: str = "Other"
    type: LuxuryItemType = "shopping"
    auction_house: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    provenance: Optional[str] = None
    featured: bool = False
    status: str = "active"
    details: ItemDetails = Field(default_factory=ItemDetails)

    @field_validator("images")
    @classmethod
    def unique_images(cls, v):
        return _unique(v)

    @property
    def identity_key(self) -> str:
        return self.title

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump()


class ScrapedPage(BaseModel):
    """One page as returned by the web-scraping API."""
    url: str
    markdown: str = ""
    html: str = ""
    links: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def meta_text(self, key: str) -> str:
        """Metadata value as text; list values (repeated meta tags) give their first entry."""
        value = self.metadata.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        return "" if value is None else str(value)


class ScrapeConfig(BaseModel):
    action: Literal["sync", "map"] = "sync"
    fetch_details: bool = False
    limit: int = Field(default=0, ge=0)  # 0 = no limit
    categories: Optional[List[str]] = None


class ScrapeResult(BaseModel):
    records: List[Any] = Field(default_factory=list)
    urls_found: int = 0
    details_fetched: int = 0

    @property
    def scraped(self) -> int:
        return len(self.records)


class SyncResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    failed: int = 0


class TriggerResponse(BaseModel):
    success: bool
    source: str
    action: str = "sync"
    scraped: int = 0
    inserted: int = 0
    updated: int = 0
    urls_found: Optional[int] = None
    urls: Optional[List[str]] = None
    details_fetched: Optional[int] = None
    error: Optional[str] = None


# -----------------------
# IDX
# -----------------------

class IdxSearchParams(BaseModel):
    city: Optional[str] = "Atlanta"
    region: Optional[str] = "Georgia"
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    beds: Optional[int] = None
    baths: Optional[int] = None
    property_type: Optional[str] = None
    limit: int = 20
    offset: int = 0
    saved_link_id: Optional[str] = None


class IdxProperty(BaseModel):
    id: str
    title: str
    description: str = ""
    price: float = 0
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    sqft: Optional[int] = None
    property_type: str = "house"
    address: str = ""
    city: str = "Atlanta"
    region: str = "Georgia"
    country: str = "USA"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    lifestyle_tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    status: str = "active"
    mls_number: str = ""
    year_built: Optional[int] = None
    lot_size: str = ""


class SavedLink(BaseModel):
    id: str
    link_name: str = ""
    link_title: str = ""


class SavedLinkList(BaseModel):
    saved_links: List[SavedLink] = Field(default_factory=list)
    error: Optional[str] = None


class IdxSearchResult(BaseModel):
    properties: List[IdxProperty] = Field(default_factory=list)
    total: int = 0
    error: Optional[str] = None


class CacheEntry(BaseModel):
    id: str
    payload: Dict[str, Any]
    cached_at: datetime
    expires_at: datetime

    @classmethod
    def create(cls, entry_id: str, payload: Dict[str, Any], now: datetime, ttl: timedelta) -> "CacheEntry":
        return cls(id=entry_id, payload=payload, cached_at=now, expires_at=now + ttl)

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


# -----------------------
# Read-side filters
# -----------------------

class PropertyFilters(BaseModel):
    status: str = "active"
    city: Optional[str] = None
    country: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    property_type: Optional[str] = None
    limit: int = 50
    offset: int = 0


class LuxuryItemFilters(BaseModel):
    type: Optional[LuxuryItemType] = None
    category: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    featured: Optional[bool] = None
    limit: int = 50
    offset: int = 0
