"""In-memory store — nothing survives the process.

Useful for dry runs and tests. Using a MemoryStore rather than None lets
callers always go through the BaseStore contract.
"""

from __future__ import annotations

import threading
from typing import Iterator

from approvalrank_store.base import BaseStore, NotFound, split_key


class MemoryStore(BaseStore):
    def __init__(self):
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise NotFound(key) from None

    def put(self, key: str, value: bytes) -> None:
        split_key(key)
        with self._lock:
            self._data[key] = bytes(value)

    def keys(self) -> Iterator[str]:
        with self._lock:
            snapshot = list(self._data)
        return iter(snapshot)
