"""
SQLite-backed caches that sit in front of the aggregation engine.

- GridCache: results per ~1.1km grid cell and category, 6h TTL, refreshed on
  every hit, capped at the 100 most-searched cells.
- LastSearchCache: one global slot holding the most recent result set, 24h TTL.
- PlaceDetailsCache: resolved provider details per place id, 24h TTL.
- PlaceTipsCache: generated tips per place, 30 day TTL.

Rows that fail to decode are deleted and reported as a miss. Every write is a
single transaction, so an entry is either fully written or not at all.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from domain.models import (
    Coordinates,
    GridCacheEntry,
    LastSearchCacheEntry,
    Place,
    PlaceDetails,
    PlaceDetailsCacheEntry,
)
from services.errors import CacheCorrupt
from services.geo_math import grid_key
from settings import settings

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DATA_DIR = os.path.join(BASE_DIR, "data")
SEARCH_CACHE_DB_FILENAME = "search_cache.sqlite"

GRID_TTL_SECONDS = 6 * 3600
GRID_MAX_ENTRIES = 100
LAST_SEARCH_TTL_SECONDS = 24 * 3600
PLACE_DETAILS_TTL_SECONDS = 24 * 3600
PLACE_TIPS_TTL_SECONDS = 30 * 24 * 3600

logger = logging.getLogger(__name__)
Clock = Callable[[], float]


def default_cache_path() -> str:
    return settings.SEARCH_CACHE_PATH or os.path.join(DATA_DIR, SEARCH_CACHE_DB_FILENAME)


def _decode(raw: str, build: Callable[[Any], Any], label: str) -> Any:
    try:
        return build(json.loads(raw))
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise CacheCorrupt(f"{label}: {exc}") from exc


class _SqliteCache:
    """Connection handling shared by the caches. Subclasses create their own tables."""

    def __init__(self, db_path: Optional[str] = None, clock: Clock = time.time):
        self.db_path = db_path or default_cache_path()
        self.clock = clock
        if self.db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self._conn.close()


class GridCache(_SqliteCache):
    def __init__(
        self,
        db_path: Optional[str] = None,
        clock: Clock = time.time,
        ttl_seconds: int = GRID_TTL_SECONDS,
        max_entries: int = GRID_MAX_ENTRIES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        super().__init__(db_path, clock)

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS grid_cache (
                    grid_key TEXT PRIMARY KEY,
                    places_json TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    search_count INTEGER NOT NULL DEFAULT 1,
                    category TEXT,
                    query TEXT,
                    city TEXT
                )
                """
            )
            columns = {row[1] for row in self._conn.execute("PRAGMA table_info(grid_cache)")}
            if "city" not in columns:
                self._conn.execute("ALTER TABLE grid_cache ADD COLUMN city TEXT")

    def _delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM grid_cache WHERE grid_key=?", (key,))

    def lookup(
        self,
        center: Coordinates,
        category: Optional[str] = None,
        query: Optional[str] = None,
    ) -> Optional[List[Place]]:
        """
        Cached places for the cell, or None.

        A requested category must equal the entry's category exactly, and two
        differing queries never match. A hit bumps search_count and resets the TTL.
        """
        key = grid_key(center, 2, category)
        with self._lock:
            row = self._conn.execute(
                "SELECT places_json, timestamp, search_count, category, query FROM grid_cache WHERE grid_key=?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            places_json, timestamp, search_count, entry_category, entry_query = row

            age = self.clock() - timestamp
            if age > self.ttl_seconds:
                logger.debug("Grid cache expired for %s (%.1fh old)", key, age / 3600)
                self._delete(key)
                return None
            if category and entry_category != category:
                logger.debug("Grid cache miss for %s: category %s != %s", key, entry_category, category)
                return None
            if query and entry_query and entry_query != query:
                logger.debug("Grid cache miss for %s: query mismatch", key)
                return None

            try:
                places = _decode(places_json, lambda rows: [Place.from_dict(p) for p in rows], key)
            except CacheCorrupt as exc:
                logger.warning("Dropping corrupt grid cache entry: %s", exc)
                self._delete(key)
                return None

            with self._conn:
                self._conn.execute(
                    "UPDATE grid_cache SET search_count = search_count + 1, timestamp = ? WHERE grid_key = ?",
                    (self.clock(), key),
                )
        logger.info("Grid cache hit %s (%d places, %d searches)", key, len(places), search_count + 1)
        return places

    def store(
        self,
        center: Coordinates,
        places: List[Place],
        category: Optional[str] = None,
        query: Optional[str] = None,
        city: Optional[str] = None,
    ) -> None:
        """Write the cell, bumping search_count if it already existed, then evict down to the cap."""
        key = grid_key(center, 2, category)
        payload = json.dumps([p.to_dict() for p in places])
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO grid_cache (grid_key, places_json, timestamp, search_count, category, query, city)
                VALUES (?, ?, ?, 1, ?, ?, ?)
                ON CONFLICT(grid_key) DO UPDATE SET
                    places_json = excluded.places_json,
                    timestamp = excluded.timestamp,
                    search_count = grid_cache.search_count + 1,
                    category = excluded.category,
                    query = excluded.query,
                    city = excluded.city
                """,
                (key, payload, self.clock(), category, query, city),
            )
            cur = self._conn.execute(
                """
                DELETE FROM grid_cache WHERE grid_key NOT IN (
                    SELECT grid_key FROM grid_cache
                    ORDER BY search_count DESC, timestamp DESC
                    LIMIT ?
                )
                """,
                (self.max_entries,),
            )
        if cur.rowcount:
            logger.info("Evicted %d grid cache entries", cur.rowcount)
        logger.debug("Grid cache saved %s (%d places)", key, len(places))

    def get_entry(self, center: Coordinates, category: Optional[str] = None) -> Optional[GridCacheEntry]:
        """Raw entry without hit bookkeeping or expiry handling."""
        key = grid_key(center, 2, category)
        with self._lock:
            row = self._conn.execute(
                "SELECT places_json, timestamp, search_count, category, query, city FROM grid_cache WHERE grid_key=?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        places_json, timestamp, search_count, entry_category, entry_query, entry_city = row
        return GridCacheEntry(
            grid_key=key,
            places=[Place.from_dict(p) for p in json.loads(places_json)],
            timestamp=timestamp,
            search_count=search_count,
            category=entry_category,
            query=entry_query,
            city=entry_city,
        )

    def city_for(self, center: Coordinates, category: Optional[str] = None) -> Optional[str]:
        """City label stored with the cell, if any."""
        with self._lock:
            row = self._conn.execute(
                "SELECT city FROM grid_cache WHERE grid_key=?", (grid_key(center, 2, category),)
            ).fetchone()
        return row[0] if row else None

    def keys(self) -> List[str]:
        with self._lock:
            return [r[0] for r in self._conn.execute("SELECT grid_key FROM grid_cache ORDER BY grid_key")]

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total, searches, oldest, newest = self._conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(search_count), 0), MIN(timestamp), MAX(timestamp) FROM grid_cache"
            ).fetchone()
        return {
            "total_cells": total,
            "total_searches": searches,
            "oldest_entry": oldest or 0,
            "newest_entry": newest or 0,
        }

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM grid_cache")


class LastSearchCache(_SqliteCache):
    def __init__(self, db_path: Optional[str] = None, clock: Clock = time.time, ttl_seconds: int = LAST_SEARCH_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        super().__init__(db_path, clock)

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS last_search (
                    slot INTEGER PRIMARY KEY CHECK (slot = 0),
                    payload_json TEXT NOT NULL,
                    timestamp REAL NOT NULL
                )
                """
            )

    def store(self, places: List[Place], city: str, coord: Coordinates, query: Optional[str] = None) -> None:
        payload = json.dumps({
            "places": [p.to_dict() for p in places],
            "city": city,
            "latitude": coord.latitude,
            "longitude": coord.longitude,
            "query": query,
        })
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO last_search (slot, payload_json, timestamp) VALUES (0, ?, ?)",
                (payload, self.clock()),
            )
        logger.debug("Cached last search: %d places for %s", len(places), city)

    def lookup(self) -> Optional[LastSearchCacheEntry]:
        with self._lock:
            row = self._conn.execute("SELECT payload_json, timestamp FROM last_search WHERE slot = 0").fetchone()
        if row is None:
            return None
        payload_json, timestamp = row
        if self.clock() - timestamp > self.ttl_seconds:
            logger.debug("Last search cache expired, clearing")
            self.clear()
            return None

        def build(data: Dict[str, Any]) -> LastSearchCacheEntry:
            return LastSearchCacheEntry(
                places=[Place.from_dict(p) for p in data["places"]],
                city=data["city"],
                latitude=float(data["latitude"]),
                longitude=float(data["longitude"]),
                timestamp=timestamp,
                query=data.get("query"),
            )

        try:
            return _decode(payload_json, build, "last_search")
        except CacheCorrupt as exc:
            logger.warning("Dropping corrupt last search entry: %s", exc)
            self.clear()
            return None

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM last_search")


class PlaceDetailsCache(_SqliteCache):
    def __init__(self, db_path: Optional[str] = None, clock: Clock = time.time, ttl_seconds: int = PLACE_DETAILS_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        super().__init__(db_path, clock)

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS place_details (
                    place_id TEXT PRIMARY KEY,
                    details_json TEXT NOT NULL,
                    timestamp REAL NOT NULL
                )
                """
            )

    def _delete(self, place_id: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM place_details WHERE place_id=?", (place_id,))

    def lookup(self, place_id: str) -> Optional[PlaceDetails]:
        with self._lock:
            row = self._conn.execute(
                "SELECT details_json, timestamp FROM place_details WHERE place_id=?", (place_id,)
            ).fetchone()
            if row is None:
                return None
            details_json, timestamp = row
            if self.clock() - timestamp > self.ttl_seconds:
                self._delete(place_id)
                return None
            try:
                return _decode(details_json, PlaceDetails.from_dict, place_id)
            except CacheCorrupt as exc:
                logger.warning("Dropping corrupt place details: %s", exc)
                self._delete(place_id)
                return None

    def store(self, place_id: str, details: PlaceDetails) -> None:
        """Upsert one entry and sweep everything past its TTL."""
        now = self.clock()
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO place_details (place_id, details_json, timestamp) VALUES (?, ?, ?)",
                (place_id, json.dumps(details.to_dict()), now),
            )
            self._conn.execute("DELETE FROM place_details WHERE timestamp < ?", (now - self.ttl_seconds,))

    def get_entry(self, place_id: str) -> Optional[PlaceDetailsCacheEntry]:
        """Raw entry without expiry handling."""
        with self._lock:
            row = self._conn.execute(
                "SELECT details_json, timestamp FROM place_details WHERE place_id=?", (place_id,)
            ).fetchone()
        if row is None:
            return None
        return PlaceDetailsCacheEntry(
            place_id=place_id,
            details=_decode(row[0], PlaceDetails.from_dict, place_id),
            timestamp=row[1],
        )

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM place_details")


class PlaceTipsCache(_SqliteCache):
    def __init__(self, db_path: Optional[str] = None, clock: Clock = time.time, ttl_seconds: int = PLACE_TIPS_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        super().__init__(db_path, clock)

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS place_tips (
                    place_key TEXT PRIMARY KEY,
                    tips_json TEXT NOT NULL,
                    timestamp REAL NOT NULL
                )
                """
            )

    def lookup(self, place_key: str) -> Optional[List[str]]:
        with self._lock:
            row = self._conn.execute(
                "SELECT tips_json, timestamp FROM place_tips WHERE place_key=?", (place_key,)
            ).fetchone()
        if row is None:
            return None
        tips_json, timestamp = row
        try:
            tips = json.loads(tips_json)
        except ValueError:
            tips = None
        if tips is None or self.clock() - timestamp > self.ttl_seconds:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM place_tips WHERE place_key=?", (place_key,))
            return None
        return [str(t) for t in tips]

    def store(self, place_key: str, tips: List[str]) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO place_tips (place_key, tips_json, timestamp) VALUES (?, ?, ?)",
                (place_key, json.dumps(list(tips)), self.clock()),
            )


_default_grid_cache: Optional[GridCache] = None
_default_last_search_cache: Optional[LastSearchCache] = None
_default_place_details_cache: Optional[PlaceDetailsCache] = None
_default_place_tips_cache: Optional[PlaceTipsCache] = None


def get_default_grid_cache() -> GridCache:
    global _default_grid_cache
    if _default_grid_cache is None:
        _default_grid_cache = GridCache()
    return _default_grid_cache


def get_default_last_search_cache() -> LastSearchCache:
    global _default_last_search_cache
    if _default_last_search_cache is None:
        _default_last_search_cache = LastSearchCache()
    return _default_last_search_cache


def get_default_place_details_cache() -> PlaceDetailsCache:
    global _default_place_details_cache
    if _default_place_details_cache is None:
        _default_place_details_cache = PlaceDetailsCache()
    return _default_place_details_cache


def get_default_place_tips_cache() -> PlaceTipsCache:
    global _default_place_tips_cache
    if _default_place_tips_cache is None:
        _default_place_tips_cache = PlaceTipsCache()
    return _default_place_tips_cache
