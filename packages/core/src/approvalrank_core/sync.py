"""Incremental ingestion of merged pull requests into the cache.

A sync pass pages through closed pull requests newest first. Every merged
pull request above the cursor is written to the cache together with its
reviews and changed files; the first pull request at or below the cursor
ends the pass, because everything older was ingested by an earlier pass.
The cursor only moves once every pull request of the pass is fully stored,
so an interrupted pass is simply repeated next time.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Callable

from approvalrank_store.base import BaseStore, NotFound

from approvalrank_core.errors import IngestionError, RateLimited, SerializationError, SyncCancelled
from approvalrank_core.gh.pull_request import Page, PullRequestSource
from approvalrank_core.gh.ratelimit import RateLimitGate
from approvalrank_core.models import (
    FileRecord,
    PullAggregate,
    PullRecord,
    ReviewRecord,
    SyncCursor,
    encode,
    files_key,
    pull_key,
    reviews_key,
)

logger = logging.getLogger(__name__)

METADATA_KEY = "metadata"

# How often a page join looks at the caller's cancel event.
_JOIN_POLL_SECONDS = 0.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def read_or_create_cursor(store: BaseStore) -> SyncCursor:
    """Return the stored cursor, persisting the sentinel cursor on first use."""
    try:
        data = store.get(METADATA_KEY)
    except NotFound:
        logger.debug("No sync cursor yet; starting from scratch.")
        cursor = SyncCursor()
        store.put(METADATA_KEY, cursor.to_bytes())
        return cursor
    return SyncCursor.from_bytes(data)


def write_cursor(store: BaseStore, cursor: SyncCursor) -> None:
    store.put(METADATA_KEY, cursor.to_bytes())


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise SyncCancelled("sync cancelled")


class SyncEngine:
    """Pulls one repository's merged pull requests into a store.

    One engine must not run two passes for the same repository at once;
    the cursor is not guarded against concurrent writers.
    """

    def __init__(
        self,
        store: BaseStore,
        source: PullRequestSource,
        cooldown_seconds: float = 20,
        workers: int = 4,
        gate: RateLimitGate | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._source = source
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._workers = workers
        self._gate = gate or RateLimitGate()
        self._now = now

    def sync(self, cancel: threading.Event | None = None) -> list[PullAggregate]:
        """Run one pass and return the pull requests it ingested.

        Raises IngestionError (RemoteAPIError, SyncCancelled, or wrapping a
        SerializationError) or a store WriteFailure. Rate limits are waited
        out, never raised.
        """
        try:
            cursor = read_or_create_cursor(self._store)
        except SerializationError as e:
            raise IngestionError(f"stored sync cursor is unreadable: {e}") from e

        next_allowed = cursor.last_sync_time + self._cooldown
        now = self._now()
        if next_allowed > now:
            logger.info(
                "Last synced at %s, not updating. Will update in %s",
                cursor.last_sync_time.isoformat(),
                next_allowed - now,
            )
            return []

        logger.info("Syncing from cursor: last pull #%d, last sync %s", cursor.last_pull_number, cursor.last_sync_time)

        try:
            ingested = self._ingest_since(cursor, cancel)
        except SerializationError as e:
            raise IngestionError(f"malformed response from remote API: {e}") from e

        if ingested:
            highest = max(agg.number for agg in ingested)
            write_cursor(
                self._store,
                SyncCursor(last_sync_time=self._now(), last_pull_number=max(highest, cursor.last_pull_number)),
            )
        logger.info("Downloaded %d pull request(s)", len(ingested))
        return ingested

    def _ingest_since(self, cursor: SyncCursor, cancel: threading.Event | None) -> list[PullAggregate]:
        ingested: list[PullAggregate] = []
        # Set when the pass is aborting; workers stop at their next request.
        stop = threading.Event()
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="approvalrank-sync") as pool:
            page: int | None = 1
            while page is not None:
                _check_cancel(cancel)
                listing = self._fetch(self._source.list_closed_pulls, page, cancel=cancel)

                futures: list[Future] = []
                reached_cursor = False
                for raw in listing.items:
                    pull = PullRecord.from_dict(raw)
                    if pull.number <= cursor.last_pull_number:
                        logger.info("Reached previously downloaded pull #%d. Exiting early.", pull.number)
                        reached_cursor = True
                        break
                    if pull.merged:
                        futures.append(pool.submit(self._ingest_pull, pull, stop))

                ingested.extend(self._join(futures, stop, cancel))
                if reached_cursor:
                    break
                page = listing.next_page
                if ingested:
                    logger.info("Last downloaded: #%d", ingested[-1].number)
        return ingested

    @staticmethod
    def _join(
        futures: list[Future], stop: threading.Event, cancel: threading.Event | None
    ) -> list[PullAggregate]:
        """Wait for every worker of a page.

        On the first failure, or when the caller cancels, ``stop`` is set so
        running workers give up at their next request, including one parked
        on the rate limit gate, and the first failure is re-raised.
        """
        timeout = None if cancel is None else _JOIN_POLL_SECONDS
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=timeout, return_when=FIRST_EXCEPTION)
            if cancel is not None and cancel.is_set():
                stop.set()
            for future in futures:
                if future in done and future.exception() is not None:
                    stop.set()
                    for waiting in pending:
                        waiting.cancel()
                    raise future.exception()
        return [future.result() for future in futures]

    def _fetch(self, list_page: Callable[..., Page], *args, cancel: threading.Event | None = None) -> Page:
        """Request one page, waiting out rate limits and retrying the same request."""
        while True:
            self._gate.wait(cancel)
            try:
                return list_page(*args)
            except RateLimited as e:
                self._gate.hold(e)

    def _fetch_all(self, list_page: Callable[..., Page], number: int, cancel: threading.Event | None) -> list[dict]:
        items: list[dict] = []
        page: int | None = 1
        while page is not None:
            _check_cancel(cancel)
            result = self._fetch(list_page, number, page, cancel=cancel)
            items.extend(result.items)
            page = result.next_page
        return items

    def _ingest_pull(self, pull: PullRecord, cancel: threading.Event | None) -> PullAggregate:
        number = pull.number
        self._store.put(pull_key(number), encode(pull.raw))

        raw_reviews = self._fetch_all(self._source.list_reviews, number, cancel)
        reviews = [ReviewRecord.from_dict(r) for r in raw_reviews]
        self._store.put(reviews_key(number), encode(raw_reviews))
        logger.debug("Downloaded %d review(s) for #%d", len(reviews), number)

        raw_files = self._fetch_all(self._source.list_files, number, cancel)
        files = [FileRecord.from_dict(f) for f in raw_files]
        self._store.put(files_key(number), encode(raw_files))
        logger.debug("Downloaded %d file(s) for #%d", len(files), number)

        return PullAggregate(pull=pull, reviews=reviews, files=files)
