"""Threshold-triggered auto-backup and the local ring buffer of snapshots."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable

from .engine import PromptEngine
from .errors import PromptboardError
from .models import Backup, BatchResult, State
from .storage import Storage
from .transfer import build_export, compact_timestamp

logger = logging.getLogger(__name__)

BACKUPS_DIR = Path.home() / ".config" / "promptboard" / "backups"
MAX_LOCAL_BACKUPS = 3

AUTO_BACKUP_TAG = "PromptBoard Auto-Backup"
LOCAL_BACKUP_TAG = "PromptBoard Local Backup"
MANUAL_BACKUP_TAG = "PromptBoard Backup"

Writer = Callable[[str, str], Path]


def make_snapshot(state: State) -> dict:
    return state.to_dict()


def write_backup_file(content: str, filename: str, backups_dir: Path | None = None) -> Path:
    out_dir = backups_dir or BACKUPS_DIR
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / filename
    path.write_text(content)
    return path


class BackupManager:
    def __init__(
        self,
        storage: Storage,
        engine: PromptEngine,
        writer: Writer | None = None,
        backups_dir: Path | None = None,
    ):
        self.storage = storage
        self.engine = engine
        self.backups_dir = backups_dir or BACKUPS_DIR
        self.writer = writer or (
            lambda content, filename: write_backup_file(content, filename, self.backups_dir)
        )

    def _export(self, data: dict, tag: str, prefix: str) -> Path:
        content = json.dumps(build_export(data, exported_by=tag), indent=2)
        return self.writer(content, f"{prefix}-{compact_timestamp()}.json")

    def save_local_backup(self, data: dict) -> Backup:
        """Push a snapshot onto the ring buffer, evicting beyond three."""
        backup = Backup(data=data)
        backups = [backup] + self.storage.get_local_backups()
        if not self.storage.set_local_backups(backups[:MAX_LOCAL_BACKUPS]):
            raise PromptboardError.persistence("local backup")
        return backup

    def save_current_backup(self) -> Backup:
        return self.save_local_backup(make_snapshot(self.storage.load()))

    def list_local_backups(self) -> list[Backup]:
        return self.storage.get_local_backups()

    def get_local_backup(self, backup_id: str) -> Backup:
        for backup in self.list_local_backups():
            if backup.id == backup_id:
                return backup
        raise PromptboardError.backup_not_found(backup_id)

    def maybe_backup(self) -> Backup | None:
        prefs = self.storage.get_preferences()
        if not prefs.auto_backup_enabled:
            return None
        if prefs.change_counter >= prefs.auto_backup_threshold:
            return self.trigger_auto_backup()
        return None

    def trigger_auto_backup(self) -> Backup:
        snapshot = make_snapshot(self.storage.load())
        path = self._export(snapshot, AUTO_BACKUP_TAG, "promptboard-autobackup")
        backup = self.save_local_backup(snapshot)
        self.storage.reset_change_counter()
        logger.info("Auto-backup saved to %s", path)
        return backup

    def restore_local_backup(self, backup_id: str, mode: str = "merge") -> BatchResult:
        backup = self.get_local_backup(backup_id)
        prompts = backup.data.get("prompts") if isinstance(backup.data, dict) else None
        if not isinstance(prompts, list):
            raise PromptboardError.invalid_backup(backup_id)
        result = self.engine.batch_create(prompts, mode)
        logger.info("Restored backup %s (%s): %d created", backup_id, mode, result.created)
        return result

    def download_local_backup(self, backup_id: str) -> Path:
        backup = self.get_local_backup(backup_id)
        return self._export(backup.data, LOCAL_BACKUP_TAG, "promptboard-backup")

    def download_backup(self) -> Path:
        snapshot = make_snapshot(self.storage.load())
        return self._export(snapshot, MANUAL_BACKUP_TAG, "promptboard-backup")
