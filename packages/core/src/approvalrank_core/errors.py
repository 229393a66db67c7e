"""Exception hierarchy for ingestion and graph building.

Cache-level failures (NotFound, WriteFailure) live in approvalrank_store so
the store package stays independent of the core.
"""

from __future__ import annotations


class ApprovalRankError(Exception):
    """Base class for approvalrank failures."""


class SerializationError(ApprovalRankError):
    """A record could not be encoded or decoded."""


class RateLimited(ApprovalRankError):
    """The remote API throttled a request.

    Carries the wait the API asked for. Raised by a source and handled by
    the sync engine, which retries after the wait; never surfaced to callers.
    """

    def __init__(self, reset_at: float | None = None, retry_after: float | None = None):
        super().__init__(f"rate limited (reset_at={reset_at}, retry_after={retry_after})")
        self.reset_at = reset_at
        self.retry_after = retry_after


class IngestionError(ApprovalRankError):
    """A sync pass failed. The cursor is left where it was."""


class RemoteAPIError(IngestionError):
    """The remote API failed for a reason other than throttling."""

    def __init__(self, status: int | None, message: str):
        super().__init__(f"remote API error ({status}): {message}")
        self.status = status


class SyncCancelled(IngestionError):
    """The caller cancelled a sync or load in flight."""
