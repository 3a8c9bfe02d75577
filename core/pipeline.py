import asyncio
from typing import Dict, List, Optional, Type

import httpx

from config.logging_config import log
from config.settings import Settings
from core.background import BackgroundTasks
from core.exceptions import ConfigurationError
from core.models import ItemDetails, ScrapeConfig, TriggerResponse
from core.synchronizer import Synchronizer
from database.idx_cache import IdxCache
from ingestion.adapters.base import BaseAdapter
from ingestion.adapters.bayut import BayutDubaiAdapter
from ingestion.adapters.christies import ChristiesDubaiAdapter
from ingestion.adapters.idx import IdxAdapter
from ingestion.adapters.sothebys import SothebysDubaiAdapter
from ingestion.adapters.sothebys_items import SothebysItemsAdapter
from ingestion.crawler import Sleep
from ingestion.firecrawl import FirecrawlClient

# Sources fetched through the web-scraping API
WEB_ADAPTERS: Dict[str, Type[BaseAdapter]] = {
    SothebysDubaiAdapter.source_name: SothebysDubaiAdapter,
    ChristiesDubaiAdapter.source_name: ChristiesDubaiAdapter,
    BayutDubaiAdapter.source_name: BayutDubaiAdapter,
    SothebysItemsAdapter.source_name: SothebysItemsAdapter,
}
IDX_SOURCE = IdxAdapter.source_name
SOURCES = sorted([*WEB_ADAPTERS, IDX_SOURCE])

# Property sources run by the daily schedule
SCHEDULED_SOURCES = [
    SothebysDubaiAdapter.source_name,
    ChristiesDubaiAdapter.source_name,
    BayutDubaiAdapter.source_name,
]

ACTIONS = ("sync", "map")


class IngestionPipeline:
    """
    Trigger interface: run one source adapter end to end and report counts.

    Every outcome, including failures, comes back as a TriggerResponse so
    callers never need source-specific handling. Records already written when
    a run fails stay written.
    """

    def __init__(
        self,
        settings: Settings,
        store,
        web=None,
        idx_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.settings = settings
        self.store = store
        self.sleep = sleep
        self.tasks = tasks or BackgroundTasks()
        self.synchronizer = Synchronizer(store)
        self.cache = IdxCache.from_settings(store, settings)
        self._web = web
        self._owns_web = web is None
        self._idx_client = idx_client
        self._idx: Optional[IdxAdapter] = None

    # -----------------------
    # Collaborators
    # -----------------------

    def web(self):
        if self._web is None:
            self._web = FirecrawlClient(self.settings)
        return self._web

    def idx(self) -> IdxAdapter:
        if self._idx is None:
            self._idx = IdxAdapter(
                self.settings,
                cache=self.cache,
                client=self._idx_client,
                tasks=self.tasks,
                sleep=self.sleep,
            )
        return self._idx

    def _item_has_details(self, title: str) -> bool:
        existing = self.store.find_item(title)
        if not existing:
            return False
        return ItemDetails(**(existing.get("details") or {})).has_detailed_info()

    def build_adapter(self, source: str) -> BaseAdapter:
        if source == IDX_SOURCE:
            return self.idx()
        adapter_cls = WEB_ADAPTERS[source]
        if adapter_cls is SothebysItemsAdapter:
            return adapter_cls(self.web(), self.settings, sleep=self.sleep, has_details=self._item_has_details)
        return adapter_cls(self.web(), self.settings, sleep=self.sleep)

    # -----------------------
    # Trigger
    # -----------------------

    async def invoke(
        self,
        source: str,
        action: str = "sync",
        fetch_details: bool = False,
        limit: int = 0,
    ) -> TriggerResponse:
        if source not in SOURCES:
            log.error(f"Unknown source: {source}")
            return TriggerResponse(success=False, source=source, action=action, error=f"Unknown source: {source}")
        if action not in ACTIONS:
            log.error(f"[{source}] Invalid action: {action}")
            return TriggerResponse(success=False, source=source, action=action, error=f"Invalid action: {action}")

        try:
            adapter = self.build_adapter(source)
        except ConfigurationError as e:
            log.error(f"[{source}] {e}")
            return TriggerResponse(success=False, source=source, action=action, error=str(e))

        log.info(f"Starting {source}, action: {action}")
        try:
            if action == "map":
                urls = await adapter.discover()
                return TriggerResponse(success=True, source=source, action=action, urls_found=len(urls), urls=urls)

            config = ScrapeConfig(action=action, fetch_details=fetch_details, limit=limit)
            result = await adapter.scrape(config)
            sync = self.synchronizer.sync_items if adapter.record_kind == "item" else self.synchronizer.sync
            counts = await asyncio.to_thread(sync, result.records)
        except Exception as e:
            log.error(f"[{source}] Run failed: {e}")
            return TriggerResponse(success=False, source=source, action=action, error=str(e))

        log.info(
            f"Finished {source}: Scraped={result.scraped} | Inserted={counts.inserted} | "
            f"Updated={counts.updated} | Failed={counts.failed}"
        )
        return TriggerResponse(
            success=True,
            source=source,
            action=action,
            scraped=result.scraped,
            inserted=counts.inserted,
            updated=counts.updated,
            urls_found=result.urls_found,
            details_fetched=result.details_fetched if fetch_details else None,
        )

    async def run_all(self, sources: List[str] = SCHEDULED_SOURCES) -> List[TriggerResponse]:
        """Run sources one after another; one failing source does not stop the rest."""
        log.info("Starting ingestion pipeline...")
        responses = []
        for source in sources:
            responses.append(await self.invoke(source))
        log.info("Pipeline completed.")
        return responses

    async def close(self):
        await self.tasks.drain()
        if self._owns_web and self._web is not None:
            await self._web.close()
        if self._idx is not None:
            await self._idx.close()
