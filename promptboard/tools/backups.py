import json

from ..backup import BackupManager
from .prompts import after_change


def register_tools(mcp, backups: BackupManager) -> None:
    @mcp.tool()
    def backup_list() -> str:
        """List local backups, newest first."""
        result = [
            {"id": b.id, "timestamp": b.timestamp, "prompt_count": b.prompt_count}
            for b in backups.list_local_backups()
        ]
        return json.dumps(result)

    @mcp.tool()
    def backup_save() -> str:
        """Snapshot the current prompts into the local backup ring (max 3)."""
        backup = backups.save_current_backup()
        return json.dumps({"status": "saved", "id": backup.id, "prompt_count": backup.prompt_count})

    @mcp.tool()
    def backup_restore(backup_id: str, mode: str = "merge") -> str:
        """Restore a local backup (mode: merge or replace)."""
        result = backups.restore_local_backup(backup_id, mode)
        payload = result.to_dict()
        if result.created:
            payload.update(after_change(backups))
        return json.dumps(payload)

    @mcp.tool()
    def backup_settings(
        auto_backup_enabled: bool | None = None,
        auto_backup_threshold: int | None = None,
    ) -> str:
        """Show or change auto-backup preferences."""
        if auto_backup_enabled is None and auto_backup_threshold is None:
            prefs = backups.storage.get_preferences()
        else:
            prefs = backups.storage.update_settings(auto_backup_enabled, auto_backup_threshold)
        return json.dumps(prefs.to_dict())
