"""Cache -> loader -> time window -> ranked graph."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

from approvalrank_store.base import BaseStore

from approvalrank_core.graph.force import ForceGraph, build_graph
from approvalrank_core.loader import load_all
from approvalrank_core.models import EPOCH
from approvalrank_core.window import filter_by_window

logger = logging.getLogger(__name__)


def compute_graph(
    store: BaseStore,
    start: datetime | None = None,
    end: datetime | None = None,
    workers: int = 16,
    cancel: threading.Event | None = None,
) -> ForceGraph:
    """Build the approval graph for pull requests created in [start, end].

    ``start`` defaults to the epoch and ``end`` to now.
    """
    start = start or EPOCH
    end = end or datetime.now(timezone.utc)

    began = time.monotonic()
    aggregates = load_all(store, workers=workers, cancel=cancel)
    logger.info("Loaded %d pull request(s) in %.2fs", len(aggregates), time.monotonic() - began)

    began = time.monotonic()
    selected = filter_by_window(aggregates, start, end)
    logger.info("Filtered to %d pull request(s) in %.2fs", len(selected), time.monotonic() - began)

    began = time.monotonic()
    graph = build_graph(selected)
    logger.info("Built graph of %d node(s) in %.2fs", len(graph.nodes), time.monotonic() - began)
    return graph
