import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from config.logging_config import log
from core.exceptions import DiscoveryError, FetchError

Sleep = Callable[[float], Awaitable[None]]
UrlFilter = Callable[[str], bool]


def _accept_all(url: str) -> bool:
    return True


@dataclass
class SeedConfig:
    """Where a source's detail-page URLs come from and how many to keep."""

    source: str
    index_pages: Sequence[str] = ()
    index_formats: Sequence[str] = ("links",)
    link_filter: UrlFilter = _accept_all
    # Extra hrefs scraped straight from the index page html
    href_pattern: Optional[str] = None
    base_url: str = ""
    map_url: Optional[str] = None
    map_search: str = ""
    map_limit: int = 100
    map_filter: Optional[UrlFilter] = None
    # Stop visiting index pages once this many URLs are known
    soft_cap: Optional[int] = None
    max_urls: int = 100
    delay_s: float = 1.0


@dataclass
class _UrlSet:
    urls: List[str] = field(default_factory=list)
    _seen: set = field(default_factory=set)

    def add(self, url: str) -> None:
        if url and url not in self._seen:
            self._seen.add(url)
            self.urls.append(url)

    def __len__(self):
        return len(self.urls)


class UrlCrawler:
    """
    Sequential URL discovery: harvest index pages one after another, then
    optionally ask the scraping API to map the site. Results are merged with
    set semantics on the full URL and keep discovery order.
    """

    def __init__(self, web, sleep: Sleep = asyncio.sleep):
        self.web = web
        self.sleep = sleep

    async def discover(self, seed: SeedConfig) -> List[str]:
        found = _UrlSet()

        for page_url in seed.index_pages:
            if seed.soft_cap and len(found) >= seed.soft_cap:
                log.info(f"[{seed.source}] Soft cap of {seed.soft_cap} URLs reached, skipping remaining index pages")
                break
            await self._harvest_index(seed, page_url, found)
            await self.sleep(seed.delay_s)

        if seed.map_url:
            await self._harvest_map(seed, found)

        urls = found.urls[: seed.max_urls]
        log.info(f"[{seed.source}] Found {len(found)} unique URLs, keeping {len(urls)}")
        return urls

    async def _harvest_index(self, seed: SeedConfig, page_url: str, found: _UrlSet) -> None:
        try:
            page = await self.web.scrape(page_url, formats=seed.index_formats)
        except FetchError as e:
            log.warning(f"[{seed.source}] Index page failed, skipping: {e}")
            return

        before = len(found)
        for link in page.links:
            if seed.link_filter(link):
                found.add(link)

        if seed.href_pattern and page.html:
            for m in re.finditer(seed.href_pattern, page.html, re.IGNORECASE):
                href = m.group(1)
                if href.startswith("/"):
                    href = seed.base_url.rstrip("/") + href
                found.add(href)

        log.info(f"[{seed.source}] {len(found) - before} new URLs from {page_url}")

    async def _harvest_map(self, seed: SeedConfig, found: _UrlSet) -> None:
        url_filter = seed.map_filter or seed.link_filter
        try:
            links = await self.web.map(seed.map_url, search=seed.map_search, limit=seed.map_limit)
        except FetchError as e:
            if not seed.index_pages:
                raise DiscoveryError(f"[{seed.source}] Failed to map URLs: {e}") from e
            log.warning(f"[{seed.source}] Map call failed, continuing with index results: {e}")
            return

        before = len(found)
        for link in links:
            if url_filter(link):
                found.add(link)
        log.info(f"[{seed.source}] {len(found) - before} new URLs from map of {seed.map_url}")
