"""Abstract cache interface.

Every backend (disk, SQLite, in-memory) maps hierarchical, slash-delimited
keys such as ``"1234/reviews"`` to opaque bytes. The core depends on
BaseStore, not on a concrete backend, and receives one instance per
owner/repo namespace from whoever builds it.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Iterator

KEY_DELIMITER = "/"

# Characters GitHub allows in owner and repository names.
_NAME_RE = re.compile(r"[A-Za-z0-9_.-]+")


class StoreError(Exception):
    """Base class for cache failures."""


class NotFound(StoreError, KeyError):
    """The key has never been written. Expected on first run."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"key not found: {self.key!r}"


class WriteFailure(StoreError):
    """The underlying backend refused a put()."""

    def __init__(self, key: str, cause: BaseException):
        super().__init__(f"put for {key!r} failed: {cause}")
        self.key = key
        self.cause = cause


def split_key(key: str) -> list[str]:
    """Split a key into its segments, rejecting empty segments."""
    segments = key.split(KEY_DELIMITER)
    if not key or any(not s for s in segments):
        raise ValueError(f"invalid cache key: {key!r}")
    return segments


def is_valid_name(name: str) -> bool:
    """True if name can be a GitHub owner or repository name."""
    return isinstance(name, str) and bool(_NAME_RE.fullmatch(name)) and name not in (".", "..")


def check_namespace(owner: str, repo: str) -> None:
    """Raise ValueError unless owner and repo are safe to use as a namespace."""
    for name in (owner, repo):
        if not is_valid_name(name):
            raise ValueError(f"invalid owner or repository name: {name!r}")


class BaseStore(ABC):
    """Durable key -> bytes store.

    Implementations must tolerate concurrent get()/put() calls on distinct
    keys from several threads without external locking. No cross-key
    transaction is offered.
    """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the bytes stored under key, or raise NotFound."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store value under key, overwriting. Raise WriteFailure on error."""

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Yield every stored key, in no particular order."""

    def has(self, key: str) -> bool:
        try:
            self.get(key)
        except NotFound:
            return False
        return True

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
