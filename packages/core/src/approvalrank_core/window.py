"""Client-side filtering of pull requests by creation time."""

from __future__ import annotations

from datetime import datetime, timezone

from approvalrank_core.models import PullAggregate

_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


def _created(aggregate: PullAggregate) -> datetime:
    return aggregate.created_at or _UNDATED


def filter_by_window(aggregates: list[PullAggregate], start: datetime, end: datetime) -> list[PullAggregate]:
    """Return the aggregates created within [start, end], oldest first.

    Sorts ``aggregates`` in place. Aggregates without a creation time sort
    first and are never part of a window.
    """
    aggregates.sort(key=_created)

    selected = []
    for aggregate in aggregates:
        created = aggregate.created_at
        if created is None or created < start:
            continue
        if created > end:
            break
        selected.append(aggregate)
    return selected
