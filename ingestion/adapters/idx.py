"""
IDX Broker feed: licensed MLS data fetched through an API rather than scraped.

Listing JSON varies by account and MLS, so every logical field is read
through an ordered list of candidate keys (see ``first_present``). Broker and
agent fields are never copied into the output.
"""
import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.logging_config import log
from config.settings import Settings
from core.background import BackgroundTasks
from core.exceptions import ConfigurationError, FetchError
from core.extraction import classify_property_type, clean_description
from core.models import (
    IdxProperty,
    IdxSearchParams,
    IdxSearchResult,
    ListingRecord,
    SavedLink,
    SavedLinkList,
    ScrapeConfig,
    ScrapeResult,
)
from core.normalizer import parse_int, parse_number, parse_price
from ingestion.adapters.base import BaseAdapter
from ingestion.crawler import Sleep

SOLD_STATES = ("sold", "closed", "pending", "expired", "withdrawn", "cancelled", "off market")

ID_KEYS = ("listingID", "mlsID", "idxID")
DESCRIPTION_KEYS = ("remarksConcat", "remarks", "description")
PRICE_KEYS = ("listingPrice", "price", "listPrice")
BEDROOM_KEYS = ("bedrooms", "beds")
BATHROOM_KEYS = ("totalBaths", "bathrooms", "baths")
SQFT_KEYS = ("sqFt", "squareFeet", "sqft")
PROPERTY_TYPE_KEYS = ("propType", "propertyType", "type")
CITY_KEYS = ("cityName", "city")
REGION_KEYS = ("state", "stateProvince")
LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lng")
STATUS_KEYS = ("propStatus", "status", "listingStatus")
MLS_KEYS = ("listingID", "mlsID")
LOT_SIZE_KEYS = ("acres", "lotSize")

IMAGE_URL_KEYS = ("url", "largeImageURL", "mediumImageURL", "smallImageURL")
PHOTO_FIELDS = ("photoURL", "photo", "mainPhoto", "primaryPhoto", "listingPhoto")
PLACEHOLDER_IMAGE = "/placeholder.svg"
ULTRA_LUXURY_PRICE = 5_000_000


def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (int, float)):
        return value == 0
    return False


def first_present(listing: Dict[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    """Value of the first key holding something other than None, "", 0 or False."""
    for key in keys:
        value = listing.get(key)
        if not _is_blank(value):
            return value
    return default


def _flag(listing: Dict[str, Any], key: str) -> bool:
    return listing.get(key) in ("Y", "Yes", True)


def extract_listings(data: Any) -> List[Dict[str, Any]]:
    """Accept a list, a ``{"data": [...]}`` envelope, or an object keyed by listing."""
    if isinstance(data, list):
        return [l for l in data if isinstance(l, dict)]
    if isinstance(data, dict):
        if isinstance(data.get("data"), list):
            return [l for l in data["data"] if isinstance(l, dict)]
        return [v for v in data.values() if isinstance(v, dict)]
    return []


def is_sold(listing: Dict[str, Any]) -> bool:
    status = str(first_present(listing, STATUS_KEYS, "")).lower()
    if any(s in status for s in SOLD_STATES):
        return True
    sold_price = parse_price(listing.get("soldPrice"))
    if sold_price and sold_price > 0:
        return True
    return bool(listing.get("soldDate") or listing.get("closeDate"))


def _street(listing: Dict[str, Any]) -> str:
    parts = [listing.get("streetNumber"), listing.get("streetDirection"), listing.get("streetName")]
    return " ".join(str(p) for p in parts if p).strip()


def build_title(listing: Dict[str, Any]) -> str:
    address = listing.get("address")
    if isinstance(address, str) and address:
        return address
    return _street(listing) or "Luxury Property"


def build_address(listing: Dict[str, Any]) -> str:
    city_state = ", ".join(
        str(p) for p in (first_present(listing, CITY_KEYS, ""), listing.get("state")) if p
    )
    return ", ".join(p for p in (_street(listing), city_state, str(listing.get("zipcode") or "")) if p)


def extract_images(listing: Dict[str, Any]) -> List[str]:
    images: List[str] = []

    image = listing.get("image")
    if isinstance(image, dict):
        # {"0": {"url": ...}, "1": {...}}
        for key in sorted(image, key=lambda k: parse_int(k) or 0):
            img = image[key]
            if isinstance(img, dict):
                url = first_present(img, IMAGE_URL_KEYS)
                if isinstance(url, str):
                    images.append(url)
            elif isinstance(img, str):
                images.append(img)
    elif isinstance(image, str) and image:
        images.append(image)

    for field in ("photos", "images"):
        if isinstance(listing.get(field), list):
            images.extend(u for u in listing[field] if isinstance(u, str))

    for i in range(51):
        value = listing.get(f"image{i}")
        if isinstance(value, str) and value and value not in images:
            images.append(value)

    for field in PHOTO_FIELDS:
        value = listing.get(field)
        if isinstance(value, str) and value and value not in images:
            images.append(value)

    return images or [PLACEHOLDER_IMAGE]


def extract_features(listing: Dict[str, Any]) -> List[str]:
    if isinstance(listing.get("features"), list):
        return [str(f) for f in listing["features"]]

    features: List[str] = []
    if _flag(listing, "pool"):
        features.append("Pool")
    for key, label in (("spa", "Spa"), ("fireplace", "Fireplace"), ("waterfront", "Waterfront")):
        if listing.get(key) in ("Y", "Yes"):
            features.append(label)
    if listing.get("garage"):
        features.append(f"{listing['garage']} Car Garage")
    if listing.get("yearBuilt"):
        features.append(f"Built {listing['yearBuilt']}")
    acres = parse_number(str(listing.get("acres") or ""))
    if acres and acres > 0:
        features.append(f"{listing['acres']} Acres")
    if listing.get("stories"):
        features.append(f"{listing['stories']} Stories")
    if listing.get("basement") in ("Y", "Yes"):
        features.append("Basement")
    for key in ("cooling", "heating"):
        if listing.get(key):
            features.append(str(listing[key]))
    return features


def extract_lifestyle_tags(listing: Dict[str, Any]) -> List[str]:
    tags = ["luxury"]
    if listing.get("waterfront") in ("Y", "Yes"):
        tags.append("waterfront")
    if listing.get("pool") in ("Y", "Yes"):
        tags.append("pool")
    price = parse_price(first_present(listing, ("listingPrice", "price"))) or 0
    if price > ULTRA_LUXURY_PRICE:
        tags.append("ultra-luxury")
    if listing.get("golfCourse") in ("Y", "Yes"):
        tags.append("golf")
    if "ocean" in str(listing.get("view") or "").lower():
        tags.append("ocean-view")
    return tags


def map_listing(listing: Dict[str, Any]) -> IdxProperty:
    return IdxProperty(
        id=str(first_present(listing, ID_KEYS) or uuid.uuid4()),
        title=build_title(listing),
        description=clean_description(str(first_present(listing, DESCRIPTION_KEYS, ""))),
        price=parse_price(first_present(listing, PRICE_KEYS)) or 0,
        bedrooms=parse_int(first_present(listing, BEDROOM_KEYS)),
        bathrooms=parse_number(str(first_present(listing, BATHROOM_KEYS, ""))) or None,
        sqft=parse_int(first_present(listing, SQFT_KEYS)),
        property_type=str(first_present(listing, PROPERTY_TYPE_KEYS, "house")),
        address=build_address(listing),
        city=str(first_present(listing, CITY_KEYS, "Atlanta")),
        region=str(first_present(listing, REGION_KEYS, "Georgia")),
        latitude=parse_number(str(first_present(listing, LATITUDE_KEYS, ""))) or None,
        longitude=parse_number(str(first_present(listing, LONGITUDE_KEYS, ""))) or None,
        lifestyle_tags=extract_lifestyle_tags(listing),
        images=extract_images(listing),
        features=extract_features(listing),
        status=str(first_present(listing, ("propStatus", "status"), "active")).lower(),
        mls_number=str(first_present(listing, MLS_KEYS, "")),
        year_built=parse_int(listing.get("yearBuilt")),
        lot_size=str(first_present(listing, LOT_SIZE_KEYS, "")),
    )


def process_listings(data: Any) -> List[IdxProperty]:
    listings = extract_listings(data)
    log.info(f"[idx] Processing {len(listings)} raw listings")

    active = []
    for listing in listings:
        if is_sold(listing):
            log.debug(f"[idx] Filtering out sold/inactive listing {listing.get('listingID')}")
            continue
        active.append(listing)

    properties = sorted((map_listing(l) for l in active), key=lambda p: p.price, reverse=True)
    log.info(f"[idx] {len(properties)} active properties after filtering")
    return properties


def to_listing_record(prop: IdxProperty) -> Optional[ListingRecord]:
    price = int(round(prop.price))
    if not prop.title or price <= 0:
        return None
    return ListingRecord(
        source="idx",
        source_url=None,
        title=prop.title,
        description=prop.description or None,
        price=price,
        property_type=classify_property_type(f"{prop.property_type} {prop.title}"),
        bedrooms=prop.bedrooms,
        bathrooms=prop.bathrooms,
        sqft=prop.sqft,
        address=prop.address or None,
        city=prop.city,
        country=prop.country,
        region=prop.region,
        latitude=prop.latitude,
        longitude=prop.longitude,
        images=[u for u in prop.images if u.startswith("http")],
        features=prop.features,
        lifestyle_tags=[t.title() for t in prop.lifestyle_tags],
    )


class IdxAdapter(BaseAdapter):
    source_name = "idx"

    def __init__(
        self,
        settings: Settings,
        cache=None,
        client: Optional[httpx.AsyncClient] = None,
        tasks: Optional[BackgroundTasks] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(settings, sleep)
        if not settings.IDX_API_KEY:
            raise ConfigurationError("IDX credentials not configured")
        self.base_url = settings.IDX_BASE_URL.rstrip("/")
        self.retries = max(1, settings.REQUEST_RETRIES)
        self.client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)
        self.headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "accesskey": settings.IDX_API_KEY,
            "outputtype": "json",
        }
        self.cache = cache
        self.tasks = tasks or BackgroundTasks()

    async def close(self):
        await self.client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(min=1, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    r = await self.client.get(url, params=params, headers=self.headers)
        except httpx.HTTPError as e:
            raise FetchError(url, f"IDX request failed: {e}") from e
        log.info(f"[idx] GET {path} -> {r.status_code}")
        return r

    @staticmethod
    def _query(params: IdxSearchParams) -> Dict[str, Any]:
        query = {
            "cityName": params.city,
            "state": params.region,
            "minPrice": params.price_min,
            "maxPrice": params.price_max,
            "minBeds": params.beds,
            "minBaths": params.baths,
        }
        return {k: v for k, v in query.items() if v}

    # -----------------------
    # Queries
    # -----------------------

    async def search(self, params: IdxSearchParams) -> IdxSearchResult:
        if params.saved_link_id:
            return await self.saved_link_results(params.saved_link_id)

        query = self._query(params)
        try:
            r = await self._get("clients/featured", query)
            if not r.is_success:
                log.error(f"[idx] API error {r.status_code}: {r.text[:500]}")
                log.info("[idx] Trying alternative endpoint: clients/listing")
                alt = await self._get("clients/listing", query)
                if not alt.is_success:
                    return IdxSearchResult(error=f"IDX API error: {r.status_code}")
                r = alt
            data = r.json()
        except (FetchError, ValueError) as e:
            log.error(f"[idx] Search failed: {e}")
            return IdxSearchResult(error=str(e))

        properties = process_listings(data)
        self._cache_in_background(properties)
        page = properties[params.offset: params.offset + params.limit] if params.limit else properties[params.offset:]
        return IdxSearchResult(properties=page, total=len(properties))

    async def saved_links(self) -> SavedLinkList:
        try:
            r = await self._get("clients/savedlinks")
            if not r.is_success:
                log.error(f"[idx] Saved links error {r.status_code}: {r.text[:500]}")
                return SavedLinkList(error=f"Failed to fetch saved links: {r.status_code}")
            data = r.json()
        except (FetchError, ValueError) as e:
            return SavedLinkList(error=str(e))

        raw = data if isinstance(data, list) else list(data.values()) if isinstance(data, dict) else []
        links = [
            SavedLink(
                id=str(first_present(link, ("id", "savedLinkID"), "")),
                link_name=str(link.get("linkName") or ""),
                link_title=str(link.get("linkTitle") or link.get("linkName") or ""),
            )
            for link in raw
            if isinstance(link, dict)
        ]
        log.info(f"[idx] Found {len(links)} saved links")
        return SavedLinkList(saved_links=links)

    async def saved_link_results(self, link_id: str) -> IdxSearchResult:
        try:
            r = await self._get(f"clients/savedlinks/{link_id}/results")
            if not r.is_success:
                log.error(f"[idx] Saved link results error {r.status_code}: {r.text[:500]}")
                return IdxSearchResult(error=f"Failed to fetch saved link results: {r.status_code}")
            data = r.json()
        except (FetchError, ValueError) as e:
            return IdxSearchResult(error=str(e))

        properties = process_listings(data)
        self._cache_in_background(properties)
        return IdxSearchResult(properties=properties, total=len(properties))

    async def get_property(self, property_id: str) -> Optional[IdxProperty]:
        """Read-through: a fresh cache entry wins, otherwise search and pick the id."""
        if self.cache is not None:
            payload = await asyncio.to_thread(self.cache.get, property_id)
            if payload is not None:
                return IdxProperty(**payload)

        # every active listing, not just the first page
        result = await self.search(IdxSearchParams(limit=0))
        return next((p for p in result.properties if p.id == property_id), None)

    # -----------------------
    # Cache
    # -----------------------

    def _cache_in_background(self, properties: List[IdxProperty]) -> None:
        if self.cache is None or not properties:
            return
        payloads = {p.id: p.model_dump(mode="json") for p in properties}
        self.tasks.spawn(self._write_cache(payloads), name="idx-cache-write")

    async def _write_cache(self, payloads: Dict[str, Dict[str, Any]]) -> None:
        written = await asyncio.to_thread(self.cache.put_many, payloads)
        purged = await asyncio.to_thread(self.cache.purge_expired)
        log.info(f"[idx] Cached {written} properties, purged {purged} expired entries")

    # -----------------------
    # Pipeline contract
    # -----------------------

    async def discover(self) -> List[str]:
        result = await self.search(IdxSearchParams(limit=0))
        return [p.id for p in result.properties]

    async def scrape(self, config: ScrapeConfig) -> ScrapeResult:
        result = await self.search(IdxSearchParams(limit=config.limit))
        if result.error:
            raise FetchError(self.base_url, result.error)

        records = [r for r in (to_listing_record(p) for p in result.properties) if r]
        log.info(f"[idx] Mapped {len(records)} of {result.total} properties to listing records")
        return ScrapeResult(records=records, urls_found=result.total)
