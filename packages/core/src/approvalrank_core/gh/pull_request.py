"""Paginated access to pull requests, reviews and changed files.

The sync engine only needs three listings, each returning one page at a
time plus the number of the next page. GithubSource provides them on top
of PyGithub's Requester so that the engine, not the HTTP layer, decides how
long to wait when GitHub throttles us.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from github import Auth, Github, GithubException, RateLimitExceededException

from approvalrank_core.errors import RateLimited, RemoteAPIError, SerializationError

logger = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'<[^>]*[?&]page=(\d+)[^>]*>;\s*rel="next"')


@dataclass
class Page:
    items: list[dict] = field(default_factory=list)
    next_page: int | None = None


class PullRequestSource(ABC):
    """The remote listings the sync engine pages through.

    Pages are 1-based. Implementations raise RateLimited when throttled,
    RemoteAPIError for any other remote failure and SerializationError when
    a response is not the expected JSON array.
    """

    @abstractmethod
    def list_closed_pulls(self, page: int) -> Page:
        """Closed pull requests, newest first."""

    @abstractmethod
    def list_reviews(self, number: int, page: int) -> Page:
        """Reviews on one pull request."""

    @abstractmethod
    def list_files(self, number: int, page: int) -> Page:
        """Files changed by one pull request."""


def _header(headers: dict | None, name: str) -> str | None:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def next_page_from_link(link: str | None) -> int | None:
    """Return the page number of the ``rel="next"`` entry of a Link header."""
    if not link:
        return None
    match = _NEXT_LINK_RE.search(link)
    return int(match.group(1)) if match else None


def _as_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def translate_exception(e: GithubException) -> RateLimited | RemoteAPIError:
    """Map a PyGithub failure onto the ingestion error taxonomy.

    Primary limits arrive as 403/429 with ``x-ratelimit-remaining: 0`` and a
    reset epoch; secondary ("abuse") limits carry a ``retry-after`` hint.
    """
    headers = e.headers or {}
    retry_after = _as_float(_header(headers, "retry-after"))
    reset_at = _as_float(_header(headers, "x-ratelimit-reset"))
    remaining = _header(headers, "x-ratelimit-remaining")

    throttled = isinstance(e, RateLimitExceededException) or (
        e.status in (403, 429) and (retry_after is not None or remaining == "0")
    )
    if throttled:
        return RateLimited(reset_at=reset_at, retry_after=retry_after)
    return RemoteAPIError(e.status, str(e))


class GithubSource(PullRequestSource):
    """PullRequestSource backed by the GitHub REST API."""

    def __init__(self, requester, owner: str, repo: str, per_page: int = 100):
        self._requester = requester
        self._base = f"/repos/{owner}/{repo}"
        self._per_page = per_page

    @classmethod
    def from_token(cls, token: str, owner: str, repo: str, per_page: int = 100) -> GithubSource:
        # retry=None: throttling is surfaced to the engine instead of being
        # retried inside urllib3.
        gh = Github(auth=Auth.Token(token), per_page=per_page, retry=None)
        return cls(gh.requester, owner, repo, per_page=per_page)

    def _get(self, path: str, page: int, **params) -> Page:
        parameters = {"per_page": self._per_page, "page": page, **params}
        try:
            headers, data = self._requester.requestJsonAndCheck("GET", self._base + path, parameters=parameters)
        except GithubException as e:
            raise translate_exception(e) from e

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise SerializationError(f"GET {self._base}{path} page {page} did not return a JSON array of objects")

        logger.debug("GET %s%s page %d: %d item(s)", self._base, path, page, len(data))
        return Page(items=data, next_page=next_page_from_link(_header(headers, "link")))

    def list_closed_pulls(self, page: int) -> Page:
        return self._get("/pulls", page, state="closed", sort="created", direction="desc")

    def list_reviews(self, number: int, page: int) -> Page:
        return self._get(f"/pulls/{number}/reviews", page)

    def list_files(self, number: int, page: int) -> Page:
        return self._get(f"/pulls/{number}/files", page)
