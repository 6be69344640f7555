from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from uuid import uuid4

SCHEMA_VERSION = 1

# 9999-01-01T00:00:00Z; later values do not fit a datetime in every local zone.
MAX_TIMESTAMP_MS = 253_370_764_800_000


def now_ms() -> int:
    return int(time.time() * 1000)


def is_timestamp(value) -> bool:
    """True for a finite, positive ms timestamp that datetime can represent."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value) and 0 < value <= MAX_TIMESTAMP_MS


def new_id() -> str:
    return str(uuid4())


@dataclass
class Prompt:
    title: str
    content: str = ""
    tags: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = 0

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Prompt:
        return cls(
            id=data["id"],
            title=data["title"],
            content=data.get("content", ""),
            tags=list(data.get("tags", [])),
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
        )


@dataclass
class State:
    version: int = SCHEMA_VERSION
    prompts: list[Prompt] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "prompts": [p.to_dict() for p in self.prompts],
        }


@dataclass
class Preferences:
    auto_backup_enabled: bool = True
    auto_backup_threshold: int = 10
    change_counter: int = 0

    def to_dict(self) -> dict:
        return {
            "autoBackupEnabled": self.auto_backup_enabled,
            "autoBackupThreshold": self.auto_backup_threshold,
            "changeCounter": self.change_counter,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Preferences:
        """Stored values override defaults; unusable values fall back to them."""
        prefs = cls()
        enabled = data.get("autoBackupEnabled")
        if isinstance(enabled, bool):
            prefs.auto_backup_enabled = enabled
        threshold = data.get("autoBackupThreshold")
        if isinstance(threshold, int) and not isinstance(threshold, bool) and threshold > 0:
            prefs.auto_backup_threshold = threshold
        counter = data.get("changeCounter")
        if isinstance(counter, int) and not isinstance(counter, bool) and counter >= 0:
            prefs.change_counter = counter
        return prefs


@dataclass
class Backup:
    """A full state snapshot held in the local ring buffer."""

    data: dict
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)

    @property
    def prompt_count(self) -> int:
        prompts = self.data.get("prompts") if isinstance(self.data, dict) else None
        return len(prompts) if isinstance(prompts, list) else 0

    def to_dict(self) -> dict:
        return {"id": self.id, "timestamp": self.timestamp, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict) -> Backup:
        return cls(
            id=data.get("id", ""),
            timestamp=data.get("timestamp", 0),
            data=data.get("data") or {},
        )


@dataclass
class Placeholder:
    name: str
    default_value: str = ""
    has_default: bool = False


@dataclass
class FillResult:
    text: str
    missing: list[str] = field(default_factory=list)


@dataclass
class BatchResult:
    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"created": self.created, "skipped": self.skipped, "errors": self.errors}


@dataclass
class ImportData:
    """Validated shape of an import payload."""

    prompts: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    total_count: int = 0
    valid_count: int = 0
    error_count: int = 0
