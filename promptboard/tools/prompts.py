import json
import logging

from ..backup import BackupManager
from ..engine import PromptEngine, get_all_tags, process_prompts
from ..errors import PromptboardError
from ..template import parse_placeholders
from ..transfer import export_to_json, export_to_markdown, parse_import_data

logger = logging.getLogger(__name__)


def _summary(prompt) -> dict:
    return {
        "id": prompt.id,
        "title": prompt.title,
        "tags": prompt.tags,
        "variables": [p.name for p in parse_placeholders(prompt.content)],
        "updatedAt": prompt.updated_at,
    }


def after_change(backups: BackupManager) -> dict:
    """Run the auto-backup check after a saved mutation.

    The mutation is already stored, so a failed backup is reported in the
    result instead of failing the tool call.
    """
    try:
        backup = backups.maybe_backup()
    except (PromptboardError, OSError) as e:
        logger.error("Auto-backup failed: %s", e)
        return {"auto_backup_error": str(e)}
    return {"auto_backup": backup.id} if backup else {}


def register_tools(mcp, engine: PromptEngine, backups: BackupManager) -> None:
    @mcp.tool()
    def prompt_save(
        title: str,
        content: str = "",
        tags: list[str] | None = None,
    ) -> str:
        """Save a new prompt. Placeholders use {{name}} or {{name|default}} syntax."""
        prompt = engine.create_prompt({"title": title, "content": content, "tags": tags or []})
        result = {"status": "saved", **_summary(prompt), **after_change(backups)}
        return json.dumps(result)

    @mcp.tool()
    def prompt_get(prompt_id: str) -> str:
        """Get a prompt by id."""
        prompt = engine.get_prompt(prompt_id)
        return json.dumps(prompt.to_dict())

    @mcp.tool()
    def prompt_update(
        prompt_id: str,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """Update the given fields of a prompt."""
        changes = {
            k: v
            for k, v in (("title", title), ("content", content), ("tags", tags))
            if v is not None
        }
        prompt = engine.update_prompt(prompt_id, changes)
        result = {"status": "updated", **_summary(prompt), **after_change(backups)}
        return json.dumps(result)

    @mcp.tool()
    def prompt_delete(prompt_id: str) -> str:
        """Delete a prompt by id."""
        prompt = engine.delete_prompt(prompt_id)
        result = {
            "status": "deleted",
            "id": prompt.id,
            "title": prompt.title,
            **after_change(backups),
        }
        return json.dumps(result)

    @mcp.tool()
    def prompt_duplicate(prompt_id: str) -> str:
        """Copy a prompt under a new id."""
        prompt = engine.duplicate_prompt(prompt_id)
        result = {"status": "duplicated", **_summary(prompt), **after_change(backups)}
        return json.dumps(result)

    @mcp.tool()
    def prompt_list(query: str | None = None, tags: list[str] | None = None) -> str:
        """List prompts, newest first, optionally searched and filtered by tags (AND)."""
        prompts = process_prompts(engine.list_prompts(), query, tags)
        return json.dumps([_summary(p) for p in prompts])

    @mcp.tool()
    def prompt_tags() -> str:
        """List all tags with usage counts."""
        tags = get_all_tags(engine.list_prompts())
        return json.dumps([{"tag": tag, "count": count} for tag, count in tags])

    @mcp.tool()
    def prompt_use(
        prompt_id: str,
        variables: dict[str, str] | None = None,
    ) -> str:
        """Fill a prompt's placeholders and return the text. Values are remembered per prompt."""
        values = {**engine.get_variables_with_auto(prompt_id), **(variables or {})}
        filled = engine.insert_and_copy(prompt_id, values, copy=lambda text: True)
        return json.dumps({"id": prompt_id, "filled": filled.text, "missing": filled.missing})

    @mcp.tool()
    def prompt_import(data: str, mode: str = "merge") -> str:
        """Import prompts from a JSON export (mode: merge or replace)."""
        parsed = parse_import_data(data)
        result = engine.batch_create(parsed.prompts, mode)
        payload = {
            "total": parsed.total_count,
            "valid": parsed.valid_count,
            **result.to_dict(),
            "parse_errors": parsed.errors,
        }
        if result.created:
            payload.update(after_change(backups))
        return json.dumps(payload)

    @mcp.tool()
    def prompt_export(format: str = "json") -> str:
        """Export every prompt as JSON or Markdown."""
        state = engine.storage.load()
        if format == "markdown":
            return export_to_markdown(state)
        if format != "json":
            raise PromptboardError.validation([f"Unknown export format: {format}"])
        return export_to_json(state)
