import asyncio
import time

import schedule

from config.logging_config import log
from config.settings import Settings
from core.models import TriggerResponse
from core.pipeline import IngestionPipeline, SCHEDULED_SOURCES
from database.postgres_store import PostgresStore


def build_pipeline(settings: Settings) -> IngestionPipeline:
    store = PostgresStore(settings.DATABASE_URL)
    store.setup_schema()
    return IngestionPipeline(settings, store)


async def run_source(settings: Settings, source: str, **options) -> TriggerResponse:
    pipeline = build_pipeline(settings)
    try:
        return await pipeline.invoke(source, **options)
    finally:
        await pipeline.close()


async def _run_all(settings: Settings):
    pipeline = build_pipeline(settings)
    try:
        return await pipeline.run_all(SCHEDULED_SOURCES)
    finally:
        await pipeline.close()


def run_job(settings: Settings):
    log.info("Starting scheduled ingestion job...")
    responses = asyncio.run(_run_all(settings))
    failed = [r.source for r in responses if not r.success]
    if failed:
        log.warning(f"Scheduled job finished with failures: {', '.join(failed)}")
    else:
        log.info("Scheduled job finished.")


def start_scheduler(settings: Settings):
    log.info("Scheduler started. Running every 24 hours.")
    schedule.every(24).hours.do(run_job, settings)
    run_job(settings)
    while True:
        schedule.run_pending()
        time.sleep(1)
