"""Prompt CRUD, search/filter helpers and batch import on top of Storage."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable

from .errors import PromptboardError
from .fingerprint import prompt_fingerprint
from .models import BatchResult, FillResult, Placeholder, Prompt, is_timestamp, now_ms
from .storage import Storage
from .template import AUTO_VALUE_NAMES, apply_placeholders, auto_values, parse_placeholders
from .validation import MAX_TITLE_LENGTH, sanitize_tags, validate_prompt_data

logger = logging.getLogger(__name__)

IMPORT_MODES = ("merge", "replace")
COPY_SUFFIX = " (Copy)"


def _timestamp_or(value, default: int) -> int:
    if is_timestamp(value):
        return int(value)
    return default


class PromptEngine:
    def __init__(self, storage: Storage):
        self.storage = storage

    def _commit(self, state, action: str) -> None:
        if not self.storage.save(state):
            raise PromptboardError.persistence(action)
        self.storage.increment_change_counter()

    def list_prompts(self) -> list[Prompt]:
        return self.storage.load().prompts

    def get_prompt(self, prompt_id: str) -> Prompt:
        for prompt in self.list_prompts():
            if prompt.id == prompt_id:
                return prompt
        raise PromptboardError.prompt_not_found(prompt_id)

    def create_prompt(self, data: dict) -> Prompt:
        errors = validate_prompt_data(data)
        if errors:
            raise PromptboardError.validation(errors)

        prompt = Prompt(
            title=data["title"],
            content=data.get("content") or "",
            tags=sanitize_tags(data.get("tags") or []),
        )
        state = self.storage.load()
        state.prompts.append(prompt)
        self._commit(state, "prompt")
        logger.info("Created prompt %s", prompt.id)
        return prompt

    def update_prompt(self, prompt_id: str, data: dict) -> Prompt:
        """Replace only the supplied fields; id and created_at never change."""
        state = self.storage.load()
        for index, current in enumerate(state.prompts):
            if current.id == prompt_id:
                break
        else:
            raise PromptboardError.prompt_not_found(prompt_id)

        changes = {k: data[k] for k in ("title", "content", "tags") if k in data}
        errors = validate_prompt_data(changes, partial=True)
        if errors:
            raise PromptboardError.validation(errors)

        updated = Prompt(
            id=current.id,
            title=changes.get("title", current.title),
            content=(changes["content"] or "") if "content" in changes else current.content,
            tags=sanitize_tags(changes["tags"]) if "tags" in changes else current.tags,
            created_at=current.created_at,
            updated_at=max(now_ms(), current.updated_at + 1),
        )
        state.prompts[index] = updated
        self._commit(state, "prompt update")
        return updated

    def delete_prompt(self, prompt_id: str) -> Prompt:
        # Cached template values for the prompt are left in place.
        state = self.storage.load()
        remaining = [p for p in state.prompts if p.id != prompt_id]
        if len(remaining) == len(state.prompts):
            raise PromptboardError.prompt_not_found(prompt_id)
        deleted = next(p for p in state.prompts if p.id == prompt_id)
        state.prompts = remaining
        self._commit(state, "prompt deletion")
        return deleted

    def duplicate_prompt(self, prompt_id: str) -> Prompt:
        original = self.get_prompt(prompt_id)
        title = original.title[: MAX_TITLE_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX
        return self.create_prompt(
            {"title": title, "content": original.content, "tags": list(original.tags)}
        )

    def batch_create(self, items: list, mode: str = "merge") -> BatchResult:
        """Insert many prompts with a single write.

        "replace" discards the current collection first; "merge" skips items
        whose title+content fingerprint matches an existing or earlier item.
        Invalid items are skipped and reported by 1-based position.
        """
        if mode not in IMPORT_MODES:
            raise PromptboardError.validation([f"Unknown import mode: {mode}"])

        state = self.storage.load()
        result = BatchResult()
        if mode == "replace":
            state.prompts = []
        fingerprints = {prompt_fingerprint(p.title, p.content) for p in state.prompts}

        for position, item in enumerate(items, 1):
            if not isinstance(item, dict):
                result.errors.append(f"Prompt {position}: Invalid prompt object")
                result.skipped += 1
                continue
            errors = validate_prompt_data(item)
            if errors:
                result.errors.append(f"Prompt {position}: {', '.join(errors)}")
                result.skipped += 1
                continue

            content = item.get("content") or ""
            fingerprint = prompt_fingerprint(item["title"], content)
            if mode == "merge" and fingerprint in fingerprints:
                result.skipped += 1
                continue

            now = now_ms()
            created_at = _timestamp_or(item.get("createdAt"), now)
            state.prompts.append(
                Prompt(
                    title=item["title"],
                    content=content,
                    tags=sanitize_tags(item.get("tags") or []),
                    created_at=created_at,
                    updated_at=max(now, created_at),
                )
            )
            fingerprints.add(fingerprint)
            result.created += 1

        if result.created > 0:
            self._commit(state, "imported prompts")
        logger.info(
            "Batch %s: %d created, %d skipped", mode, result.created, result.skipped
        )
        return result

    # Template values

    def detect_placeholders(self, prompt_id: str) -> list[Placeholder]:
        return parse_placeholders(self.get_prompt(prompt_id).content)

    def get_variables_with_auto(
        self, prompt_id: str, now: datetime | None = None
    ) -> dict[str, str]:
        values = {
            k: v
            for k, v in self.storage.get_prompt_variables(prompt_id).items()
            if k not in AUTO_VALUE_NAMES
        }
        values.update(auto_values(now))
        return values

    def insert_and_copy(
        self,
        prompt_id: str,
        values: dict[str, str],
        copy: Callable[[str], bool],
        now: datetime | None = None,
    ) -> FillResult:
        """Fill the prompt, hand the text to copy, then remember the values."""
        prompt = self.get_prompt(prompt_id)
        result = apply_placeholders(prompt.content, values, now=now)
        if not copy(result.text):
            raise PromptboardError.copy_failed()

        supplied = {
            k: v for k, v in values.items() if k not in AUTO_VALUE_NAMES and v != ""
        }
        if supplied:
            cached = self.storage.get_prompt_variables(prompt_id)
            cached.update(supplied)
            self.storage.set_prompt_variables(prompt_id, cached)
        return result

    def clear_all_variables(self) -> int:
        return self.storage.clear_all_prompt_variables()


def search_prompts(prompts: list[Prompt], query: str | None) -> list[Prompt]:
    """Case-insensitive literal substring match over title, content and tags."""
    if not query or not query.strip():
        return prompts
    pattern = re.compile(re.escape(query.strip()), re.IGNORECASE)
    return [
        p
        for p in prompts
        if pattern.search(p.title)
        or pattern.search(p.content)
        or any(pattern.search(tag) for tag in p.tags)
    ]


def filter_prompts_by_tags(
    prompts: list[Prompt], selected_tags: list[str] | None
) -> list[Prompt]:
    """Keep prompts carrying every selected tag (case-insensitive)."""
    if not selected_tags:
        return prompts
    wanted = [t.lower() for t in selected_tags]
    result = []
    for prompt in prompts:
        have = {t.lower() for t in prompt.tags}
        if all(t in have for t in wanted):
            result.append(prompt)
    return result


def sort_prompts(prompts: list[Prompt]) -> list[Prompt]:
    """Newest update first; ties keep their original order."""
    return sorted(prompts, key=lambda p: p.updated_at, reverse=True)


def process_prompts(
    prompts: list[Prompt],
    query: str | None = None,
    selected_tags: list[str] | None = None,
) -> list[Prompt]:
    return sort_prompts(filter_prompts_by_tags(search_prompts(prompts, query), selected_tags))


def get_all_tags(prompts: list[Prompt]) -> list[tuple[str, int]]:
    counts: dict[str, int] = {}
    for prompt in prompts:
        for tag in prompt.tags:
            counts[tag] = counts.get(tag, 0) + 1
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def get_prompt_stats(prompts: list[Prompt]) -> dict:
    total = len(prompts)
    return {
        "total_prompts": total,
        "total_tags": len(get_all_tags(prompts)),
        "average_tags_per_prompt": (
            round(sum(len(p.tags) for p in prompts) / total, 1) if total else 0
        ),
        "oldest_prompt": min((p.created_at for p in prompts), default=None),
        "newest_prompt": max((p.updated_at for p in prompts), default=None),
    }
