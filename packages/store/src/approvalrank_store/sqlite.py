"""SQLiteStore — single-file key/value cache.

Why SQLite as an alternative to DiskStore:
- Batteries included: ships with Python, no extra dependencies.
- One file instead of tens of thousands of small JSON files, which some
  file systems and CI caches handle poorly.
- Several repositories share one database; rows are namespaced by
  ``owner/repo`` so keys never collide.

Schema:
  entries — one row per (namespace, key), value stored as a BLOB.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Iterator

from approvalrank_store.base import BaseStore, NotFound, WriteFailure, check_namespace, split_key

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    namespace   TEXT NOT NULL,
    key         TEXT NOT NULL,
    value       BLOB NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""


class SQLiteStore(BaseStore):
    """Stores cache entries for one owner/repo in a local SQLite database.

    The connection is shared between threads and guarded by a lock, since
    the loader reads from a worker pool.
    """

    def __init__(self, owner: str, repo: str, db_path: str = ".approvalrank.db"):
        check_namespace(owner, repo)
        self._namespace = f"{owner}/{repo}"
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def get(self, key: str) -> bytes:
        split_key(key)
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM entries WHERE namespace=? AND key=?",
                (self._namespace, key),
            ).fetchone()
        if row is None:
            raise NotFound(key)
        return bytes(row[0])

    def put(self, key: str, value: bytes) -> None:
        split_key(key)
        try:
            with self._lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO entries (namespace, key, value) VALUES (?, ?, ?)",
                    (self._namespace, key, sqlite3.Binary(value)),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            logger.error("SQLiteStore.put(%r) failed: %s", key, e)
            raise WriteFailure(key, e) from e

    def keys(self) -> Iterator[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM entries WHERE namespace=?",
                (self._namespace,),
            ).fetchall()
        for row in rows:
            yield row[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
