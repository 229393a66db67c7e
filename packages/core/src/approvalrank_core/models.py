"""Records cached from the remote API and the aggregates built from them.

Each record keeps the raw payload it was parsed from, so what is written to
the cache is exactly what the API returned.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from approvalrank_core.errors import SerializationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Login GitHub substitutes for deleted accounts.
GHOST_LOGIN = "ghost"
APPROVED = "APPROVED"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 / ISO-8601 timestamp into an aware UTC datetime.

    Returns None for None or an empty string. Raises ValueError for anything
    else that is not a timestamp string.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _login(user: Any) -> str:
    if not isinstance(user, dict):
        return ""
    login = user.get("login")
    return login if isinstance(login, str) else ""


def _field_timestamp(raw: dict, name: str) -> datetime | None:
    try:
        return parse_timestamp(raw.get(name))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"bad {name!r} timestamp: {raw.get(name)!r}") from e


def encode(payload: Any) -> bytes:
    try:
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"cannot encode record: {e}") from e


def decode(data: bytes) -> Any:
    try:
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(f"cannot decode record: {e}") from e


@dataclass
class SyncCursor:
    """Ingestion bookmark, stored under the reserved ``metadata`` key."""

    last_sync_time: datetime = EPOCH
    last_pull_number: int = -1

    def to_bytes(self) -> bytes:
        return encode(
            {
                "lastModifiedTime": format_timestamp(self.last_sync_time),
                "lastPullNumber": self.last_pull_number,
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> SyncCursor:
        raw = decode(data)
        if not isinstance(raw, dict):
            raise SerializationError("cursor is not an object")
        try:
            last_sync_time = _field_timestamp(raw, "lastModifiedTime") or EPOCH
            return cls(last_sync_time=last_sync_time, last_pull_number=int(raw.get("lastPullNumber", -1)))
        except (TypeError, ValueError) as e:
            raise SerializationError(f"malformed cursor: {e}") from e


@dataclass
class PullRecord:
    number: int
    author: str
    state: str
    created_at: datetime | None
    merged_at: datetime | None
    title: str = ""
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_dict(cls, raw: Any) -> PullRecord:
        if not isinstance(raw, dict) or not isinstance(raw.get("number"), int):
            raise SerializationError("pull request payload has no integer 'number'")
        return cls(
            number=raw["number"],
            author=_login(raw.get("user")),
            state=raw.get("state") or "",
            created_at=_field_timestamp(raw, "created_at"),
            merged_at=_field_timestamp(raw, "merged_at"),
            title=raw.get("title") or "",
            raw=raw,
        )


@dataclass
class ReviewRecord:
    reviewer: str
    state: str
    submitted_at: datetime | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def approved(self) -> bool:
        return self.state == APPROVED

    @classmethod
    def from_dict(cls, raw: Any) -> ReviewRecord:
        if not isinstance(raw, dict):
            raise SerializationError("review payload is not an object")
        return cls(
            reviewer=_login(raw.get("user")),
            state=raw.get("state") or "",
            submitted_at=_field_timestamp(raw, "submitted_at"),
            raw=raw,
        )


@dataclass
class FileRecord:
    filename: str
    status: str = ""
    additions: int = 0
    deletions: int = 0
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, raw: Any) -> FileRecord:
        if not isinstance(raw, dict) or not raw.get("filename"):
            raise SerializationError("file payload has no 'filename'")
        return cls(
            filename=raw["filename"],
            status=raw.get("status") or "",
            additions=raw.get("additions") or 0,
            deletions=raw.get("deletions") or 0,
            raw=raw,
        )


def decode_list(data: bytes, record_type):
    """Decode a cached JSON array into a list of record_type."""
    payload = decode(data)
    if not isinstance(payload, list):
        raise SerializationError(f"expected a JSON array of {record_type.__name__}")
    return [record_type.from_dict(item) for item in payload]


@dataclass
class PullAggregate:
    """A pull request with its reviews and changed files. Never persisted as a unit."""

    pull: PullRecord
    reviews: list[ReviewRecord] = field(default_factory=list)
    files: list[FileRecord] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.pull.number

    @property
    def created_at(self) -> datetime | None:
        return self.pull.created_at


def pull_key(number: int) -> str:
    return str(number)


def reviews_key(number: int) -> str:
    return f"{number}/reviews"


def files_key(number: int) -> str:
    return f"{number}/files"
