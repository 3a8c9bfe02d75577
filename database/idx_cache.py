from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from config.logging_config import log
from config.settings import Settings
from core.models import CacheEntry, utcnow

Clock = Callable[[], datetime]


class IdxCache:
    """
    Short-TTL cache of IDX payloads keyed by listing id, stored in the
    ``idx_cache`` table. Expired rows are only ignored on read; they are
    removed when ``purge_expired`` runs after a write.
    """

    def __init__(self, store, ttl_minutes: int = 15, batch_size: int = 100, clock: Clock = utcnow):
        self.store = store
        self.ttl = timedelta(minutes=ttl_minutes)
        self.batch_size = batch_size
        self.clock = clock

    @classmethod
    def from_settings(cls, store, settings: Settings, clock: Clock = utcnow) -> "IdxCache":
        return cls(store, settings.CACHE_TTL_MINUTES, settings.CACHE_BATCH_SIZE, clock)

    def get(self, entry_id: str) -> Optional[Dict[str, Any]]:
        row = self.store.fetch_cache_entry(entry_id)
        if not row:
            return None
        entry = CacheEntry(**row)
        if not entry.is_fresh(self.clock()):
            return None
        return entry.payload

    def put(self, entry_id: str, payload: Dict[str, Any]) -> None:
        self.put_many({entry_id: payload})

    def put_many(self, payloads: Dict[str, Dict[str, Any]]) -> int:
        now = self.clock()
        rows = [CacheEntry.create(k, v, now, self.ttl).model_dump() for k, v in payloads.items()]
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start: start + self.batch_size]
            self.store.upsert_cache_entries(batch)
            log.debug(f"Cached batch of {len(batch)} entries")
        return len(rows)

    def purge_expired(self) -> int:
        return self.store.delete_expired_cache(self.clock())
