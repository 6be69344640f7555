"""Versioned persistence over a SQLite-backed key-value namespace."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Callable

from .errors import PromptboardError
from .models import (
    SCHEMA_VERSION,
    Backup,
    Preferences,
    Prompt,
    State,
    is_timestamp,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".config" / "promptboard" / "promptboard.db"

STORAGE_KEY = "promptboard:v1"
PREFERENCES_KEY = "promptboard:prefs:v1"
VARIABLES_KEY_PREFIX = "promptboard:vars:v1:"
BACKUPS_KEY = "promptboard:backups:v1"

# Source version -> step producing the next version's shape.
MIGRATIONS: dict[int, Callable[[dict], dict]] = {}


def _repair_prompt(raw: dict, now: int) -> Prompt:
    prompt_id = raw.get("id")
    title = raw.get("title")
    content = raw.get("content")
    tags = raw.get("tags")
    created_at = int(raw["createdAt"]) if is_timestamp(raw.get("createdAt")) else now
    updated_at = int(raw["updatedAt"]) if is_timestamp(raw.get("updatedAt")) else now
    return Prompt(
        id=prompt_id if isinstance(prompt_id, str) and prompt_id else new_id(),
        title=title if isinstance(title, str) and title else "Untitled",
        content=content if isinstance(content, str) else "",
        tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
        created_at=created_at,
        updated_at=max(updated_at, created_at),
    )


def migrate(data) -> State:
    """Bring a stored value up to the current schema and repair every record.

    Non-object input yields an empty state. Records that are not objects are
    dropped; the rest get missing fields filled in. Applying this to its own
    output returns an equal state.
    """
    if not isinstance(data, dict):
        return State()

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        version = 1

    migrated = dict(data)
    while version < SCHEMA_VERSION:
        migrated = MIGRATIONS[version](migrated)
        version += 1

    raw_prompts = migrated.get("prompts")
    if not isinstance(raw_prompts, list):
        raw_prompts = []

    now = now_ms()
    prompts = [_repair_prompt(p, now) for p in raw_prompts if isinstance(p, dict)]
    return State(version=SCHEMA_VERSION, prompts=prompts)


class Storage:
    def __init__(self, db_path: Path | None = None, quota_bytes: int | None = None):
        self.db_path = db_path or DEFAULT_DB_PATH
        self.quota_bytes = quota_bytes
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self.init_db()

    def init_db(self) -> None:
        try:
            self._conn.execute(
                """CREATE TABLE IF NOT EXISTS kv (
                       key TEXT PRIMARY KEY,
                       value TEXT NOT NULL
                   )"""
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise PromptboardError.persistence(str(e)) from e

    def close(self) -> None:
        self._conn.close()

    # Raw key-value access

    def get_item(self, key: str) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read %s: %s", key, e)
            return None
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> bool:
        """Write a value; returns False when the store rejects it."""
        try:
            if self.quota_bytes is not None:
                row = self._conn.execute(
                    "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) AS used "
                    "FROM kv WHERE key != ?",
                    (key,),
                ).fetchone()
                if row["used"] + len(key) + len(value) > self.quota_bytes:
                    logger.error("Storage quota exceeded writing %s", key)
                    return False
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value)
            )
            self._conn.commit()
            return True
        except sqlite3.Error as e:
            logger.error("Failed to write %s: %s", key, e)
            return False

    def remove_item(self, key: str) -> bool:
        try:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()
            return True
        except sqlite3.Error as e:
            logger.error("Failed to remove %s: %s", key, e)
            return False

    def keys_with_prefix(self, prefix: str) -> list[str]:
        try:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as e:
            logger.warning("Failed to list keys for %s: %s", prefix, e)
            return []
        return [row["key"] for row in rows]

    def _load_json(self, key: str, default):
        stored = self.get_item(key)
        if stored is None:
            return default
        try:
            return json.loads(stored)
        except json.JSONDecodeError as e:
            logger.warning("Discarding unreadable value for %s: %s", key, e)
            return default

    # Main state

    def load(self) -> State:
        data = self._load_json(STORAGE_KEY, None)
        if data is None:
            return State()
        return migrate(data)

    def save(self, state: State) -> bool:
        payload = state.to_dict()
        payload["version"] = SCHEMA_VERSION
        return self.set_item(STORAGE_KEY, json.dumps(payload))

    def clear(self) -> bool:
        return self.remove_item(STORAGE_KEY)

    def get_storage_info(self) -> dict:
        stored = self.get_item(STORAGE_KEY)
        size = len(stored) if stored else 0
        return {"size": size, "size_kb": round(size / 1024, 2)}

    # Preferences

    def get_preferences(self) -> Preferences:
        data = self._load_json(PREFERENCES_KEY, {})
        if not isinstance(data, dict):
            data = {}
        return Preferences.from_dict(data)

    def set_preferences(self, prefs: Preferences) -> bool:
        return self.set_item(PREFERENCES_KEY, json.dumps(prefs.to_dict()))

    def increment_change_counter(self) -> int:
        prefs = self.get_preferences()
        prefs.change_counter += 1
        self.set_preferences(prefs)
        return prefs.change_counter

    def reset_change_counter(self) -> None:
        prefs = self.get_preferences()
        prefs.change_counter = 0
        self.set_preferences(prefs)

    def update_settings(
        self,
        auto_backup_enabled: bool | None = None,
        auto_backup_threshold: int | None = None,
    ) -> Preferences:
        prefs = self.get_preferences()
        if auto_backup_threshold is not None:
            if (
                not isinstance(auto_backup_threshold, int)
                or isinstance(auto_backup_threshold, bool)
                or auto_backup_threshold < 1
            ):
                raise PromptboardError.validation(
                    ["Backup threshold must be a positive integer"]
                )
            prefs.auto_backup_threshold = auto_backup_threshold
        if auto_backup_enabled is not None:
            prefs.auto_backup_enabled = auto_backup_enabled
        if not self.set_preferences(prefs):
            raise PromptboardError.persistence("preferences")
        return prefs

    # Per-prompt variable cache

    def get_prompt_variables(self, prompt_id: str) -> dict[str, str]:
        data = self._load_json(VARIABLES_KEY_PREFIX + prompt_id, {})
        return data if isinstance(data, dict) else {}

    def set_prompt_variables(self, prompt_id: str, variables: dict[str, str]) -> bool:
        return self.set_item(VARIABLES_KEY_PREFIX + prompt_id, json.dumps(variables))

    def clear_all_prompt_variables(self) -> int:
        keys = self.keys_with_prefix(VARIABLES_KEY_PREFIX)
        for key in keys:
            self.remove_item(key)
        return len(keys)

    # Backup ring buffer

    def get_local_backups(self) -> list[Backup]:
        data = self._load_json(BACKUPS_KEY, [])
        if not isinstance(data, list):
            return []
        return [Backup.from_dict(b) for b in data if isinstance(b, dict)]

    def set_local_backups(self, backups: list[Backup]) -> bool:
        return self.set_item(BACKUPS_KEY, json.dumps([b.to_dict() for b in backups]))
