"""JSON / Markdown export and JSON import parsing."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from .errors import PromptboardError
from .models import ImportData, State, now_ms

EXPORTED_BY = "PromptBoard"
MAX_IMPORT_BYTES = 10 * 1024 * 1024
MAX_REPORTED_ERRORS = 10


def format_date(timestamp_ms: int) -> str:
    """Render a ms timestamp like "Oct 19, 2026, 02:30 PM" (local time)."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000)
    return f"{dt:%b} {dt.day}, {dt:%Y, %I:%M %p}"


def compact_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d%H%M")


def export_filename(extension: str, now: datetime | None = None) -> str:
    day = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"promptboard-export-{day}.{extension}"


def build_export(
    data: dict,
    exported_by: str = EXPORTED_BY,
    exported_at: int | None = None,
) -> dict:
    return {
        **data,
        "exportedAt": exported_at if exported_at is not None else now_ms(),
        "exportedBy": exported_by,
    }


def export_to_json(
    state: State,
    exported_by: str = EXPORTED_BY,
    exported_at: int | None = None,
) -> str:
    return json.dumps(build_export(state.to_dict(), exported_by, exported_at), indent=2)


def export_to_markdown(state: State, exported_at: int | None = None) -> str:
    prompts = state.prompts
    if not prompts:
        raise PromptboardError.empty_export()

    ordered = sorted(prompts, key=lambda p: p.updated_at, reverse=True)
    lines = [
        "# PromptBoard Export",
        "",
        f"Exported on: {format_date(exported_at if exported_at is not None else now_ms())}",
        f"Total prompts: {len(prompts)}",
        "",
        "---",
        "",
    ]
    for index, prompt in enumerate(ordered):
        lines.extend([f"## {prompt.title}", ""])
        if prompt.tags:
            lines.extend([f"**Tags:** {', '.join(prompt.tags)}", ""])
        if prompt.content:
            lines.extend([prompt.content, ""])
        lines.append(f"*Created: {format_date(prompt.created_at)}*")
        lines.extend([f"*Updated: {format_date(prompt.updated_at)}*", ""])
        if index < len(ordered) - 1:
            lines.extend(["---", ""])
    return "\n".join(lines)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def parse_import_data(text: str) -> ImportData:
    """Parse an import payload into normalized prompt dicts plus error messages.

    Accepts a bare list of prompts or an object with a "prompts" list. Items
    without a string title are reported as "Item N: ..." and left out.
    """
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, TypeError) as e:
        raise PromptboardError.invalid_json() from e

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict) and isinstance(data.get("prompts"), list):
        items = data["prompts"]
    else:
        raise PromptboardError.no_prompts_array()

    prompts: list[dict] = []
    errors: list[str] = []
    for position, item in enumerate(items, 1):
        if not isinstance(item, dict):
            errors.append(f"Item {position}: Invalid prompt object")
            continue
        title = item.get("title")
        if not isinstance(title, str) or not title:
            errors.append(f"Item {position}: Missing or invalid title")
            continue
        now = now_ms()
        prompts.append(
            {
                "title": title.strip(),
                "content": item.get("content") if isinstance(item.get("content"), str) else "",
                "tags": item.get("tags") if isinstance(item.get("tags"), list) else [],
                "createdAt": item.get("createdAt") or now,
                "updatedAt": item.get("updatedAt") or now,
            }
        )

    if errors and not prompts:
        raise PromptboardError.import_failed(errors)

    return ImportData(
        prompts=prompts,
        errors=errors[:MAX_REPORTED_ERRORS],
        total_count=len(items),
        valid_count=len(prompts),
        error_count=len(errors),
    )


def read_import_file(path: Path) -> ImportData:
    if path.suffix.lower() != ".json":
        raise PromptboardError.invalid_file("Please select a JSON file")
    try:
        if path.stat().st_size > MAX_IMPORT_BYTES:
            raise PromptboardError.invalid_file("File too large (max 10MB)")
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PromptboardError.invalid_file(f"Failed to read file: {e}") from e
    return parse_import_data(text)
