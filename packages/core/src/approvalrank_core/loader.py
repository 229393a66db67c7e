"""Rebuild PullAggregates from the cache.

Every top-level numeric key is a pull request; its reviews and files sit
under ``<number>/reviews`` and ``<number>/files``. Records are read on a
bounded thread pool and all of them are loaded before the function returns.
A record that cannot be read or decoded is logged and skipped; it never
aborts the whole load.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from approvalrank_store.base import KEY_DELIMITER, BaseStore, StoreError

from approvalrank_core.errors import SerializationError, SyncCancelled
from approvalrank_core.models import (
    FileRecord,
    PullAggregate,
    PullRecord,
    ReviewRecord,
    decode,
    decode_list,
    files_key,
    reviews_key,
)
from approvalrank_core.sync import METADATA_KEY

logger = logging.getLogger(__name__)


def list_pull_keys(store: BaseStore) -> list[str]:
    """Return the cache keys holding pull request records."""
    keys = []
    for key in store.keys():
        if KEY_DELIMITER in key or key == METADATA_KEY:
            continue
        if not key.isdigit():
            logger.warning("Ignoring unexpected cache entry %r", key)
            continue
        keys.append(key)
    return keys


def load_aggregate(store: BaseStore, key: str) -> PullAggregate:
    """Read one pull request and its reviews and files from the cache."""
    pull = PullRecord.from_dict(decode(store.get(key)))
    reviews = decode_list(store.get(reviews_key(pull.number)), ReviewRecord)
    files = decode_list(store.get(files_key(pull.number)), FileRecord)
    return PullAggregate(pull=pull, reviews=reviews, files=files)


def load_all(store: BaseStore, workers: int = 16, cancel: threading.Event | None = None) -> list[PullAggregate]:
    """Load every cached pull request. Order of the result is not defined."""
    keys = list_pull_keys(store)
    if not keys:
        return []

    aggregates: list[PullAggregate] = []
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="approvalrank-load") as pool:
        futures = {pool.submit(load_aggregate, store, key): key for key in keys}
        for future in as_completed(futures):
            if cancel is not None and cancel.is_set():
                for pending in futures:
                    pending.cancel()
                raise SyncCancelled("load cancelled")
            key = futures[future]
            try:
                aggregates.append(future.result())
            except (StoreError, SerializationError) as e:
                logger.warning("Skipping pull request %s: %s", key, e)

    logger.debug("Loaded %d of %d pull request(s)", len(aggregates), len(keys))
    return aggregates
