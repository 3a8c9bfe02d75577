from typing import Iterable

from config.logging_config import log
from core.exceptions import StorageError
from core.models import ItemDetails, ListingRecord, LuxuryItem, SyncResult, utcnow


class Synchronizer:
    """
    Identity-keyed upsert of scraped records into the canonical store.

    Properties are keyed by (title, city), luxury items by title: sources do
    not expose ids that stay stable across scrape runs. Each record is written
    independently, so a failure leaves earlier writes in place and later
    records still get their turn. Concurrent runs resolve as last write wins.
    """

    def __init__(self, store):
        self.store = store

    def sync(self, records: Iterable[ListingRecord]) -> SyncResult:
        result = SyncResult()
        for record in records:
            title, city = record.identity_key
            try:
                existing = self.store.find_property(title, city)
                row = record.to_row()
                now = utcnow()
                row["updated_at"] = now
                if existing:
                    self.store.update_property(existing["id"], row)
                    result.updated += 1
                else:
                    row["created_at"] = now
                    self.store.insert_property(row)
                    result.inserted += 1
            except StorageError as e:
                result.failed += 1
                log.error(f"[{record.source}] Failed to upsert '{title}' ({city}): {e}")

        log.info(f"Sync finished: Inserted={result.inserted} | Updated={result.updated} | Failed={result.failed}")
        return result

    def sync_items(self, items: Iterable[LuxuryItem]) -> SyncResult:
        result = SyncResult()
        for item in items:
            try:
                existing = self.store.find_item(item.title)
                row = self._merge_item(item, existing)
                now = utcnow()
                row["updated_at"] = now
                if existing:
                    self.store.update_item(existing["id"], row)
                    result.updated += 1
                else:
                    row["created_at"] = now
                    self.store.insert_item(row)
                    result.inserted += 1
            except StorageError as e:
                result.failed += 1
                log.error(f"[{item.auction_house}] Failed to upsert item '{item.title}': {e}")

        log.info(f"Item sync finished: Inserted={result.inserted} | Updated={result.updated} | Failed={result.failed}")
        return result

    def _merge_item(self, item: LuxuryItem, existing: dict = None) -> dict:
        """Fields a run did not fetch keep their previously stored value."""
        row = item.to_row()
        if not existing:
            return row

        old_details = ItemDetails(**(existing.get("details") or {}))
        merged = {
            k: v if v is not None else getattr(old_details, k)
            for k, v in item.details.model_dump().items()
        }
        row["details"] = merged
        row["description"] = item.description or existing.get("description")
        row["provenance"] = item.provenance or existing.get("provenance")
        return row
