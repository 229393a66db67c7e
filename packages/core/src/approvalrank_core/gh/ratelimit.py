"""Engine-wide pause for GitHub rate limits.

GitHub's limits are per account, not per endpoint, so when one request is
throttled every worker of the sync engine waits, not only the one that saw
the 403. Waits are dictated by the API (reset epoch, retry-after), not
computed by exponential backoff.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from approvalrank_core.errors import RateLimited, SyncCancelled

logger = logging.getLogger(__name__)

# GitHub asks clients to wait at least a minute when a secondary limit
# response carries no retry-after header.
DEFAULT_BACKOFF_SECONDS = 60.0

# Every throttled response pauses at least this long, even when the
# reported reset time has already passed.
MIN_BACKOFF_SECONDS = 1.0


class RateLimitGate:
    """Holds every caller until the latest requested resume time has passed."""

    def __init__(self, clock: Callable[[], float] = time.time, sleep: Callable[[float], None] | None = None):
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._resume_at = 0.0

    @property
    def resume_at(self) -> float:
        with self._lock:
            return self._resume_at

    def hold(self, err: RateLimited) -> float:
        """Extend the pause for a throttled response and return its end."""
        now = self._clock()
        until = now + MIN_BACKOFF_SECONDS
        if err.reset_at is not None:
            until = max(until, err.reset_at)
        if err.retry_after is not None:
            until = max(until, now + err.retry_after)
        if err.reset_at is None and err.retry_after is None:
            until = now + DEFAULT_BACKOFF_SECONDS

        with self._lock:
            self._resume_at = max(self._resume_at, until)
            resume_at = self._resume_at
        logger.warning("API rate limit exceeded. Pausing requests for %.0fs", max(resume_at - now, 0.0))
        return resume_at

    def wait(self, cancel: threading.Event | None = None) -> None:
        """Block until the gate is open. Raise SyncCancelled if cancel is set meanwhile."""
        while True:
            if cancel is not None and cancel.is_set():
                raise SyncCancelled("sync cancelled")
            remaining = self.resume_at - self._clock()
            if remaining <= 0:
                return
            logger.info("Waiting %.0fs for rate limit reset", remaining)
            if self._sleep is not None:
                self._sleep(remaining)
            elif cancel is not None:
                cancel.wait(remaining)
            else:
                time.sleep(remaining)
