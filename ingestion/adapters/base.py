import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from config.logging_config import log
from config.settings import Settings
from core.exceptions import FetchError
from core.models import ListingRecord, ScrapeConfig, ScrapedPage, ScrapeResult
from ingestion.crawler import SeedConfig, Sleep, UrlCrawler


class BaseAdapter(ABC):
    """Common contract every source exposes to the pipeline."""

    source_name: str
    # "property" records go through Synchronizer.sync, "item" through sync_items
    record_kind: str = "property"

    def __init__(self, settings: Settings, sleep: Sleep = asyncio.sleep):
        self.settings = settings
        self.rate = settings.AED_TO_USD_RATE
        self.sleep = sleep

    async def discover(self) -> List[str]:
        return []

    @abstractmethod
    async def scrape(self, config: ScrapeConfig) -> ScrapeResult:
        ...


class ListingPageAdapter(BaseAdapter):
    """
    Adapter for sources scraped page by page: discover detail URLs through
    the crawler, fetch each one in turn and parse it into a ListingRecord.
    """

    city = "Dubai"
    country = "UAE"
    region = "Middle East"

    detail_formats: Sequence[str] = ("markdown", "html")
    detail_wait_for = 3000
    only_main_content = True
    detail_delay_s = 1.0

    def __init__(self, web, settings: Settings, sleep: Sleep = asyncio.sleep):
        super().__init__(settings, sleep)
        self.web = web
        self.crawler = UrlCrawler(web, sleep)

    @abstractmethod
    def seed(self) -> SeedConfig:
        ...

    @abstractmethod
    def parse(self, url: str, page: ScrapedPage) -> Optional[ListingRecord]:
        ...

    async def discover(self) -> List[str]:
        return await self.crawler.discover(self.seed())

    async def scrape(self, config: ScrapeConfig) -> ScrapeResult:
        urls = await self.discover()
        if config.limit:
            urls = urls[: config.limit]
        log.info(f"[{self.source_name}] Scraping {len(urls)} properties...")

        records: List[ListingRecord] = []
        for url in urls:
            await self.sleep(self.detail_delay_s)
            record = await self._scrape_one(url)
            if record:
                records.append(record)

        log.info(f"[{self.source_name}] Scraped {len(records)} valid properties from {len(urls)} URLs")
        return ScrapeResult(records=records, urls_found=len(urls))

    async def _scrape_one(self, url: str) -> Optional[ListingRecord]:
        try:
            page = await self.web.scrape(
                url,
                formats=self.detail_formats,
                wait_for=self.detail_wait_for,
                only_main_content=self.only_main_content,
            )
        except FetchError as e:
            log.warning(f"[{self.source_name}] Skipping {url}: {e}")
            return None

        try:
            return self.parse(url, page)
        except Exception:
            log.exception(f"[{self.source_name}] Could not build record for {url}")
            return None

    def build_record(self, url: str, **fields) -> Optional[ListingRecord]:
        """Apply the acceptance rule (non-empty title, positive price) and the source defaults."""
        title = (fields.get("title") or "").strip()
        price = fields.get("price") or 0
        if not title or price <= 0:
            log.info(f"[{self.source_name}] Skipping {url} - missing title or price")
            return None

        fields.setdefault("city", self.city)
        fields.setdefault("country", self.country)
        fields.setdefault("region", self.region)
        return ListingRecord(source=self.source_name, source_url=url, **fields)
