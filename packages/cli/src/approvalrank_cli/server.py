"""HTTP query service.

GET /graph?owner=&repo=&start=&end= returns the force-graph document for
pull requests created within [start, end]. start defaults to the epoch and
end to now; unparseable timestamps fall back to those defaults. A missing
or malformed owner or repo gets an empty 400 response. Internal
failures are logged and answered with the best document available, never
with a 5xx.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from approvalrank_core.errors import ApprovalRankError
from approvalrank_core.gh.pull_request import GithubSource, PullRequestSource
from approvalrank_core.graph.force import ForceGraph
from approvalrank_core.models import EPOCH, parse_timestamp
from approvalrank_core.pipeline import compute_graph
from approvalrank_core.sync import SyncEngine
from approvalrank_store.base import BaseStore, StoreError, is_valid_name

logger = logging.getLogger(__name__)

StoreFactory = Callable[[str, str], BaseStore]
SourceFactory = Callable[[str, str], PullRequestSource]


def _parse_or_default(value: Optional[str], default: Optional[datetime]) -> Optional[datetime]:
    try:
        return parse_timestamp(value) or default
    except ValueError:
        logger.debug("Ignoring unparseable timestamp %r", value)
        return default


def github_source_factory(config: dict) -> SourceFactory:
    token = config["github_token"]
    per_page = config.get("per_page", 100)

    def factory(owner: str, repo: str) -> PullRequestSource:
        return GithubSource.from_token(token, owner, repo, per_page=per_page)

    return factory


class _RepoLocks:
    """One lock per owner/repo so two requests never sync the same cursor at once."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, owner: str, repo: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(f"{owner}/{repo}", threading.Lock())


def create_app(
    config: dict,
    store_factory: StoreFactory,
    source_factory: Optional[SourceFactory] = None,
) -> FastAPI:
    """Build the FastAPI app. With a source_factory, each query syncs first."""
    app = FastAPI(title="approvalrank", description="Reviewer influence graphs from pull request approvals")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get("cors_origins", []),
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    locks = _RepoLocks()

    def _sync(store: BaseStore, owner: str, repo: str) -> None:
        engine = SyncEngine(
            store,
            source_factory(owner, repo),
            cooldown_seconds=config.get("cooldown_seconds", 20),
            workers=config.get("sync_workers", 4),
        )
        with locks.get(owner, repo):
            try:
                engine.sync()
            except (ApprovalRankError, StoreError) as e:
                logger.warning("Sync of %s/%s failed, serving cached data: %s", owner, repo, e)

    @app.get("/graph")
    def graph(
        owner: Optional[str] = None,
        repo: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ):
        if not is_valid_name(owner) or not is_valid_name(repo):
            return Response(status_code=400)

        start_at = _parse_or_default(start, EPOCH)
        end_at = _parse_or_default(end, None)

        store = store_factory(owner, repo)
        try:
            if source_factory is not None:
                _sync(store, owner, repo)
            result = compute_graph(store, start_at, end_at, workers=config.get("loader_workers", 16))
        except (ApprovalRankError, StoreError) as e:
            logger.error("Could not build graph for %s/%s: %s", owner, repo, e)
            result = ForceGraph()
        finally:
            store.close()

        return JSONResponse(result.to_dict())

    return app
