from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal

from fastapi import Depends, FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from config.logging_config import log, setup_logging
from config.settings import Settings, load_settings
from core.exceptions import ConfigurationError, StorageError
from core.models import (
    IdxProperty,
    IdxSearchParams,
    IdxSearchResult,
    LuxuryItemFilters,
    PropertyFilters,
    SavedLinkList,
    TriggerResponse,
)
from core.pipeline import IngestionPipeline
from database.postgres_store import PostgresStore


class IngestRequest(BaseModel):
    action: Literal["sync", "map"] = "sync"
    fetch_details: bool = False
    limit: int = Field(default=0, ge=0)


_state: Dict[str, Any] = {}


def get_settings() -> Settings:
    return load_settings()


def get_store(settings: Settings = Depends(get_settings)) -> PostgresStore:
    if "store" not in _state:
        store = PostgresStore(settings.DATABASE_URL)
        store.setup_schema()
        _state["store"] = store
    return _state["store"]


def get_pipeline(
    settings: Settings = Depends(get_settings),
    store: PostgresStore = Depends(get_store),
) -> IngestionPipeline:
    if "pipeline" not in _state:
        _state["pipeline"] = IngestionPipeline(settings, store)
    return _state["pipeline"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(load_settings())
    yield
    pipeline = _state.pop("pipeline", None)
    if pipeline is not None:
        await pipeline.close()
    _state.clear()


app = FastAPI(title="Luxury listing ingestion", lifespan=lifespan)


@app.get("/health")
def health():
    return {"status": "ok"}


# -----------------------
# Trigger
# -----------------------

@app.post("/ingest/{source}", response_model=TriggerResponse, response_model_exclude_none=True)
async def ingest(
    source: str,
    response: Response,
    body: IngestRequest = IngestRequest(),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    result = await pipeline.invoke(source, action=body.action, fetch_details=body.fetch_details, limit=body.limit)
    if not result.success:
        response.status_code = 500
    return result


# -----------------------
# Canonical storage reads
# -----------------------

@app.get("/properties")
def list_properties(filters: PropertyFilters = Depends(), store: PostgresStore = Depends(get_store)) -> List[Dict[str, Any]]:
    try:
        return store.query_properties(filters)
    except StorageError as e:
        log.error(f"Property query failed: {e}")
        raise HTTPException(status_code=503, detail="Storage unavailable")


@app.get("/luxury-items")
def list_luxury_items(filters: LuxuryItemFilters = Depends(), store: PostgresStore = Depends(get_store)) -> List[Dict[str, Any]]:
    try:
        return store.query_items(filters)
    except StorageError as e:
        log.error(f"Luxury item query failed: {e}")
        raise HTTPException(status_code=503, detail="Storage unavailable")


# -----------------------
# IDX
# -----------------------

@app.get("/idx/properties", response_model=IdxSearchResult)
async def idx_properties(params: IdxSearchParams = Depends(), pipeline: IngestionPipeline = Depends(get_pipeline)):
    try:
        idx = pipeline.idx()
    except ConfigurationError as e:
        log.error(f"[idx] {e}")
        return IdxSearchResult(error=str(e))
    return await idx.search(params)


@app.get("/idx/properties/{property_id}", response_model=IdxProperty)
async def idx_property(property_id: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    try:
        idx = pipeline.idx()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    prop = await idx.get_property(property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


@app.get("/idx/saved-links", response_model=SavedLinkList)
async def idx_saved_links(pipeline: IngestionPipeline = Depends(get_pipeline)):
    try:
        idx = pipeline.idx()
    except ConfigurationError as e:
        return SavedLinkList(error=str(e))
    return await idx.saved_links()
