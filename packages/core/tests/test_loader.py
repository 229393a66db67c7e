"""Tests for rebuilding pull request aggregates from the cache."""

import logging
import threading

import pytest

from approvalrank_core.errors import SyncCancelled
from approvalrank_core.loader import list_pull_keys, load_aggregate, load_all
from approvalrank_core.models import SyncCursor, encode
from approvalrank_core.sync import METADATA_KEY
from approvalrank_store.disk import DiskStore
from approvalrank_store.memory import MemoryStore


def _seed(store, number, author="alice", reviews=None, files=None):
    store.put(
        str(number),
        encode(
            {
                "number": number,
                "user": {"login": author},
                "state": "closed",
                "created_at": "2021-01-01T00:00:00Z",
                "merged_at": "2021-01-02T00:00:00Z",
            }
        ),
    )
    store.put(f"{number}/reviews", encode(reviews or []))
    store.put(f"{number}/files", encode(files or []))


def test_list_pull_keys_skips_metadata_and_children():
    store = MemoryStore()
    store.put(METADATA_KEY, SyncCursor().to_bytes())
    _seed(store, 7)
    store.put("notes", b"{}")
    assert list_pull_keys(store) == ["7"]


def test_load_aggregate():
    store = MemoryStore()
    _seed(store, 3, reviews=[{"user": {"login": "bob"}, "state": "APPROVED"}], files=[{"filename": "x.py"}])

    aggregate = load_aggregate(store, "3")

    assert aggregate.number == 3
    assert aggregate.pull.author == "alice"
    assert aggregate.reviews[0].approved
    assert aggregate.files[0].filename == "x.py"


def test_load_all_from_disk(tmp_path):
    store = DiskStore("owner", "repo", cache_dir=str(tmp_path))
    store.put(METADATA_KEY, SyncCursor().to_bytes())
    for n in range(1, 26):
        _seed(store, n)

    aggregates = load_all(store, workers=4)

    assert sorted(a.number for a in aggregates) == list(range(1, 26))


def test_empty_store_loads_nothing():
    assert load_all(MemoryStore()) == []


def test_missing_reviews_skips_only_that_record(caplog):
    store = MemoryStore()
    _seed(store, 1)
    _seed(store, 2)
    store.put("3", encode({"number": 3, "user": {"login": "carol"}}))  # no reviews/files

    with caplog.at_level(logging.WARNING, logger="approvalrank_core.loader"):
        aggregates = load_all(store)

    assert sorted(a.number for a in aggregates) == [1, 2]
    assert "Skipping pull request 3" in caplog.text


def test_malformed_record_skipped():
    store = MemoryStore()
    _seed(store, 1)
    store.put("2", b"{not json")
    store.put("2/reviews", b"[]")
    store.put("2/files", b"[]")

    assert [a.number for a in load_all(store)] == [1]


def test_non_string_timestamp_skipped():
    store = MemoryStore()
    _seed(store, 1)
    store.put("2", encode({"number": 2, "user": {"login": "bob"}, "created_at": 12345}))
    store.put("2/reviews", b"[]")
    store.put("2/files", b"[]")

    assert [a.number for a in load_all(store)] == [1]


def test_non_string_review_timestamp_skipped():
    store = MemoryStore()
    _seed(store, 1)
    _seed(store, 2, reviews=[{"user": {"login": "bob"}, "state": "APPROVED", "submitted_at": ["2021"]}])

    assert [a.number for a in load_all(store)] == [1]


def test_non_string_login_reads_as_empty():
    store = MemoryStore()
    _seed(store, 1, reviews=[{"user": {"login": 42}, "state": "APPROVED"}])
    store.put("1", encode({"number": 1, "user": {"login": {"nested": True}}, "created_at": "2021-01-01T00:00:00Z"}))

    [aggregate] = load_all(store)
    assert aggregate.pull.author == ""
    assert aggregate.reviews[0].reviewer == ""


def test_cancelled_load_raises():
    store = MemoryStore()
    _seed(store, 1)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(SyncCancelled):
        load_all(store, cancel=cancel)
