from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

import psycopg
from psycopg import connect, sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from config.logging_config import log
from core.exceptions import StorageError
from core.models import LuxuryItemFilters, PropertyFilters

PROPERTY_COLUMNS = [
    "title",
    "description",
    "price",
    "property_type",
    "status",
    "bedrooms",
    "bathrooms",
    "sqft",
    "address",
    "city",
    "country",
    "region",
    "latitude",
    "longitude",
    "images",
    "features",
    "lifestyle_tags",
    "source",
    "source_url",
    "updated_at",
]

ITEM_COLUMNS = [
    "title",
    "brand",
    "price",
    "category",
    "type",
    "auction_house",
    "images",
    "description",
    "provenance",
    "featured",
    "status",
    "details",
    "updated_at",
]

SCHEMA = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS properties (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    description TEXT,
    price BIGINT NOT NULL CHECK (price > 0),
    property_type TEXT,
    status TEXT DEFAULT 'active',
    bedrooms INTEGER,
    bathrooms DOUBLE PRECISION,
    sqft INTEGER,
    address TEXT,
    city TEXT NOT NULL,
    country TEXT NOT NULL,
    region TEXT,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    images TEXT[],
    features TEXT[],
    lifestyle_tags TEXT[],
    source TEXT,
    source_url TEXT,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_properties_identity ON properties (title, city);

CREATE TABLE IF NOT EXISTS luxury_items (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    brand TEXT,
    price BIGINT,
    category TEXT NOT NULL,
    type TEXT NOT NULL,
    auction_house TEXT,
    images TEXT[],
    description TEXT,
    provenance TEXT,
    featured BOOLEAN DEFAULT false,
    status TEXT DEFAULT 'active',
    details JSONB,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_luxury_items_title ON luxury_items (title);

CREATE TABLE IF NOT EXISTS idx_cache (
    id TEXT PRIMARY KEY,
    payload JSONB NOT NULL,
    cached_at TIMESTAMPTZ NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_idx_cache_expires ON idx_cache (expires_at);
"""


class PostgresStore:
    """Canonical storage for properties, luxury items and the IDX cache."""

    def __init__(self, db_url: str):
        self.db_url = db_url

    def setup_schema(self) -> None:
        with connect(self.db_url) as conn:
            conn.execute(SCHEMA)
            conn.commit()
        log.info("PostgreSQL schema ready")

    # -----------------------
    # Properties
    # -----------------------

    def find_property(self, title: str, city: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT id FROM properties WHERE title = %s AND city = %s LIMIT 1",
            (title, city),
        )

    def insert_property(self, row: Dict[str, Any]) -> None:
        self._insert("properties", PROPERTY_COLUMNS + ["created_at"], row)

    def update_property(self, property_id: Any, row: Dict[str, Any]) -> None:
        self._update("properties", PROPERTY_COLUMNS, property_id, row)

    def query_properties(self, filters: PropertyFilters) -> List[Dict[str, Any]]:
        clauses = [sql.SQL("status = %(status)s")]
        params: Dict[str, Any] = filters.model_dump()
        if filters.city:
            clauses.append(sql.SQL("city ILIKE %(city_like)s"))
            params["city_like"] = f"%{filters.city}%"
        if filters.country:
            clauses.append(sql.SQL("country = %(country)s"))
        if filters.min_price is not None:
            clauses.append(sql.SQL("price >= %(min_price)s"))
        if filters.max_price is not None:
            clauses.append(sql.SQL("price <= %(max_price)s"))
        if filters.bedrooms:
            clauses.append(sql.SQL("bedrooms >= %(bedrooms)s"))
        if filters.bathrooms:
            clauses.append(sql.SQL("bathrooms >= %(bathrooms)s"))
        if filters.property_type:
            clauses.append(sql.SQL("property_type = %(property_type)s"))

        query = sql.SQL(
            "SELECT * FROM properties WHERE {where} ORDER BY price DESC LIMIT %(limit)s OFFSET %(offset)s"
        ).format(where=sql.SQL(" AND ").join(clauses))
        return self._fetch_all(query, params)

    # -----------------------
    # Luxury items
    # -----------------------

    def find_item(self, title: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT id, details, description, provenance FROM luxury_items WHERE title = %s LIMIT 1",
            (title,),
        )

    def insert_item(self, row: Dict[str, Any]) -> None:
        self._insert("luxury_items", ITEM_COLUMNS + ["created_at"], self._item_payload(row))

    def update_item(self, item_id: Any, row: Dict[str, Any]) -> None:
        self._update("luxury_items", ITEM_COLUMNS, item_id, self._item_payload(row))

    def query_items(self, filters: LuxuryItemFilters) -> List[Dict[str, Any]]:
        clauses = [sql.SQL("status = 'active'")]
        params: Dict[str, Any] = filters.model_dump()
        if filters.type:
            clauses.append(sql.SQL("type = %(type)s"))
        if filters.category:
            clauses.append(sql.SQL("category = %(category)s"))
        if filters.min_price is not None:
            clauses.append(sql.SQL("price >= %(min_price)s"))
        if filters.max_price is not None:
            clauses.append(sql.SQL("price <= %(max_price)s"))
        if filters.featured is not None:
            clauses.append(sql.SQL("featured = %(featured)s"))

        query = sql.SQL(
            "SELECT * FROM luxury_items WHERE {where} "
            "ORDER BY featured DESC, created_at DESC LIMIT %(limit)s OFFSET %(offset)s"
        ).format(where=sql.SQL(" AND ").join(clauses))
        return self._fetch_all(query, params)

    def _item_payload(self, row: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(row)
        payload["details"] = Jsonb(payload.get("details") or {})
        return payload

    # -----------------------
    # IDX cache
    # -----------------------

    def fetch_cache_entry(self, entry_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT id, payload, cached_at, expires_at FROM idx_cache WHERE id = %s",
            (entry_id,),
        )

    def upsert_cache_entries(self, rows: Iterable[Dict[str, Any]]) -> None:
        payload = [
            {**r, "payload": Jsonb(r["payload"])}
            for r in rows
        ]
        if not payload:
            return
        try:
            with connect(self.db_url) as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO idx_cache (id, payload, cached_at, expires_at)
                        VALUES (%(id)s, %(payload)s, %(cached_at)s, %(expires_at)s)
                        ON CONFLICT (id)
                        DO UPDATE SET
                            payload = EXCLUDED.payload,
                            cached_at = EXCLUDED.cached_at,
                            expires_at = EXCLUDED.expires_at
                        """,
                        payload,
                    )
                conn.commit()
        except psycopg.Error as e:
            raise StorageError(f"cache write failed: {e}") from e

    def delete_expired_cache(self, now: datetime) -> int:
        try:
            with connect(self.db_url) as conn:
                cur = conn.execute("DELETE FROM idx_cache WHERE expires_at < %s", (now,))
                conn.commit()
                return cur.rowcount
        except psycopg.Error as e:
            raise StorageError(f"cache purge failed: {e}") from e

    # -----------------------
    # Helpers
    # -----------------------

    def _fetch_one(self, query, params) -> Optional[Dict[str, Any]]:
        try:
            with connect(self.db_url) as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, params)
                    return cur.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"lookup failed: {e}") from e

    def _fetch_all(self, query, params) -> List[Dict[str, Any]]:
        try:
            with connect(self.db_url) as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, params)
                    return cur.fetchall()
        except psycopg.Error as e:
            raise StorageError(f"query failed: {e}") from e

    def _insert(self, table: str, columns: List[str], row: Dict[str, Any]) -> None:
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals})").format(
            table=sql.Identifier(table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            vals=sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
        )
        self._execute(query, {c: row.get(c) for c in columns})

    def _update(self, table: str, columns: List[str], row_id: Any, row: Dict[str, Any]) -> None:
        query = sql.SQL("UPDATE {table} SET {assignments} WHERE id = %(id)s").format(
            table=sql.Identifier(table),
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(c)) for c in columns
            ),
        )
        params = {c: row.get(c) for c in columns}
        params["id"] = row_id
        self._execute(query, params)

    def _execute(self, query, params) -> None:
        try:
            with connect(self.db_url) as conn:
                conn.execute(query, params)
                conn.commit()
        except psycopg.Error as e:
            raise StorageError(str(e)) from e
