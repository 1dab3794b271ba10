"""Content-addressed memoization of pipeline results, keyed by URL hash."""

from __future__ import annotations

import abc
import hashlib
import json
import logging
import os
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from pipeline.errors import CacheConflict
from pipeline.types import CacheEntry, CategorizedObject

log = logging.getLogger(__name__)


def hash_for_url(url: str) -> str:
    """SHA-256 of the exact URL string; no normalization of any kind."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Cache(abc.ABC):
    """Persistence capability for cache rows."""

    @abc.abstractmethod
    def lookup(self, url: str) -> Optional[CacheEntry]:
        """Return the entry stored for exactly this URL, if any."""

    @abc.abstractmethod
    def store(self, entry: CacheEntry) -> CacheEntry:
        """Persist a new entry. Raises `CacheConflict` if its hash already exists."""


class MemoryCache(Cache):
    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def lookup(self, url: str) -> Optional[CacheEntry]:
        return self._entries.get(hash_for_url(url))

    def store(self, entry: CacheEntry) -> CacheEntry:
        with self._lock:
            if entry.image_hash in self._entries:
                raise CacheConflict(f"Entry {entry.image_hash} already exists")
            self._entries[entry.image_hash] = entry
        return entry

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCache(Cache):
    """SQLite-backed cache with a unique index on `image_hash`."""

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.initialize_db()

    def initialize_db(self) -> None:
        with self._lock:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS object_detections (
                    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    image_hash TEXT NOT NULL UNIQUE,
                    image_url TEXT NOT NULL,
                    annotated_image_path TEXT NOT NULL,
                    image_width INTEGER NOT NULL,
                    image_height INTEGER NOT NULL,
                    total_objects INTEGER NOT NULL DEFAULT 0,
                    categories JSON NOT NULL,
                    objects_data JSON NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_object_detections_created "
                "ON object_detections (created_at DESC)"
            )
            self.conn.commit()

    def close(self) -> None:
        if self.conn:
            self.conn.close()

    def lookup(self, url: str) -> Optional[CacheEntry]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM object_detections WHERE image_hash = ?",
                (hash_for_url(url),),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            image_hash=row["image_hash"],
            image_url=row["image_url"],
            annotated_image_path=row["annotated_image_path"],
            image_width=row["image_width"],
            image_height=row["image_height"],
            total_objects=row["total_objects"],
            categories=json.loads(row["categories"]),
            objects=[CategorizedObject.from_dict(o) for o in json.loads(row["objects_data"])],
            created_at=row["created_at"],
        )

    def store(self, entry: CacheEntry) -> CacheEntry:
        created_at = entry.created_at or _now()
        try:
            with self._lock:
                with self.conn:
                    self.conn.execute(
                        """
                        INSERT INTO object_detections (
                            image_hash, image_url, annotated_image_path,
                            image_width, image_height, total_objects,
                            categories, objects_data, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            entry.image_hash,
                            entry.image_url,
                            entry.annotated_image_path,
                            entry.image_width,
                            entry.image_height,
                            entry.total_objects,
                            json.dumps(entry.categories),
                            json.dumps([o.to_dict() for o in entry.objects]),
                            created_at,
                        ),
                    )
        except sqlite3.IntegrityError as e:
            raise CacheConflict(f"Entry {entry.image_hash} already exists: {e}")

        log.info("[CACHE] stored %s (%d objects)", entry.image_hash[:12], entry.total_objects)
        return replace(entry, created_at=created_at)
