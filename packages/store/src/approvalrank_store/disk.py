"""DiskStore — one JSON file per key under a namespace directory.

Key ``"1234/reviews"`` lives at ``<base>/1234/reviews.json``; key
``"metadata"`` at ``<base>/metadata.json``. The namespace directory is
``<cache_dir>/<owner>/<repo>``, so several repositories share one cache root
without colliding.

Writes go to a temporary file beside the destination and are moved into
place with os.replace(), which is atomic on POSIX and Windows. Readers never
see a half-written record and two writers to distinct keys never touch the
same file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterator

from approvalrank_store.base import KEY_DELIMITER, BaseStore, NotFound, WriteFailure, check_namespace, split_key

logger = logging.getLogger(__name__)

SUFFIX = ".json"
DEFAULT_CACHE_DIR = ".disk-cache"


def key_to_path(key: str) -> PurePosixPath:
    """Map a key to its path relative to the store root."""
    segments = split_key(key)
    return PurePosixPath(*segments[:-1], segments[-1] + SUFFIX)


def path_to_key(path: PurePosixPath) -> str:
    """Inverse of key_to_path."""
    if not path.name.endswith(SUFFIX) or path.name == SUFFIX:
        raise ValueError(f"not a cache entry: {path}")
    parts = list(path.parts[:-1]) + [path.name[: -len(SUFFIX)]]
    return KEY_DELIMITER.join(parts)


class DiskStore(BaseStore):
    """File-system backed store rooted at ``<cache_dir>/<owner>/<repo>``."""

    def __init__(self, owner: str, repo: str, cache_dir: str = DEFAULT_CACHE_DIR):
        check_namespace(owner, repo)
        self._root = Path(cache_dir) / owner / repo

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / key_to_path(key)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFound(key) from None

    def has(self, key: str) -> bool:
        return self._path(key).is_file()

    def put(self, key: str, value: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                # Leave no stray temporary behind on failure.
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("DiskStore.put(%r) failed: %s", key, e)
            raise WriteFailure(key, e) from e

    def keys(self) -> Iterator[str]:
        if not self._root.is_dir():
            return
        for path in self._root.rglob("*" + SUFFIX):
            if not path.is_file() or path.name.startswith("."):
                continue
            rel = PurePosixPath(path.relative_to(self._root).as_posix())
            yield path_to_key(rel)
