from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.logging_config import log
from config.settings import Settings
from core.exceptions import ConfigurationError, FetchError
from core.models import ScrapedPage


class FirecrawlClient:
    """
    Thin async client for the hosted web-scraping API. It renders JS-heavy
    pages remotely and hands back markdown, html, links and page metadata.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        if not settings.FIRECRAWL_API_KEY:
            raise ConfigurationError("FIRECRAWL_API_KEY not configured")
        self.base_url = settings.FIRECRAWL_BASE_URL.rstrip("/")
        self.retries = max(1, settings.REQUEST_RETRIES)
        self.client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)
        self.headers = {
            "Authorization": f"Bearer {settings.FIRECRAWL_API_KEY}",
            "Content-Type": "application/json",
        }

    async def close(self):
        await self.client.aclose()

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        target = payload.get("url", url)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(min=1, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    r = await self.client.post(url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            raise FetchError(target, f"{endpoint} request failed: {e}") from e

        if r.status_code < 200 or r.status_code >= 300:
            raise FetchError(target, f"{endpoint} returned {r.status_code}: {r.text[:200]}", r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise FetchError(target, f"{endpoint} returned invalid JSON") from e

        if data.get("success") is False:
            raise FetchError(target, f"{endpoint} failed: {data.get('error', 'unknown error')}")
        return data

    async def scrape(
        self,
        url: str,
        formats: Sequence[str] = ("markdown", "html"),
        wait_for: int = 3000,
        only_main_content: bool = False,
    ) -> ScrapedPage:
        payload = {"url": url, "formats": list(formats), "waitFor": wait_for}
        if only_main_content:
            payload["onlyMainContent"] = True

        data = await self._post("scrape", payload)
        body = data.get("data") or {}
        page = ScrapedPage(
            url=url,
            markdown=body.get("markdown") or "",
            html=body.get("html") or "",
            links=_link_urls(body.get("links")),
            metadata=body.get("metadata") or {},
        )
        log.debug(f"Scraped {url}: markdown={len(page.markdown)} html={len(page.html)} links={len(page.links)}")
        return page

    async def map(self, url: str, search: str = "", limit: int = 100) -> List[str]:
        payload = {"url": url, "limit": limit}
        if search:
            payload["search"] = search

        data = await self._post("map", payload)
        links = _link_urls(data.get("links"))
        log.debug(f"Mapped {url}: {len(links)} links")
        return links


def _link_urls(links) -> List[str]:
    """The API returns links either as plain strings or as ``{"url": ...}`` objects."""
    out: List[str] = []
    for link in links or []:
        if isinstance(link, dict):
            link = link.get("url")
        if isinstance(link, str) and link:
            out.append(link)
    return out
