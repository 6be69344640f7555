"""Field constraints for prompt records and tag normalization."""

from __future__ import annotations

MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 50_000
MAX_TAGS = 20
MAX_TAG_LENGTH = 50


def validate_prompt_data(data: dict, partial: bool = False) -> list[str]:
    """Return every constraint violation in data (empty list when valid).

    With partial=True only the keys present in data are checked, so a missing
    title is not reported.
    """
    errors: list[str] = []

    if not partial or "title" in data:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append("Title is required")
        elif len(title) > MAX_TITLE_LENGTH:
            errors.append(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    content = data.get("content")
    if content is not None:
        if not isinstance(content, str):
            errors.append("Content must be a string")
        elif len(content) > MAX_CONTENT_LENGTH:
            errors.append("Content must be at most 50,000 characters")

    tags = data.get("tags")
    if tags is not None:
        if not isinstance(tags, (list, tuple)):
            errors.append("Tags must be an array")
        elif len(tags) > MAX_TAGS:
            errors.append(f"Maximum {MAX_TAGS} tags allowed")
        else:
            for index, tag in enumerate(tags, 1):
                if not isinstance(tag, str):
                    errors.append(f"Tag {index} must be a string")
                elif len(tag) > MAX_TAG_LENGTH:
                    errors.append(
                        f'Tag "{tag}" is too long (max {MAX_TAG_LENGTH} characters)'
                    )

    return errors


def sanitize_tags(tags) -> list[str]:
    """Trim, lowercase, drop empties and de-duplicate, keeping first-seen order."""
    if not isinstance(tags, (list, tuple)):
        return []
    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def parse_tags_string(value: str | None) -> list[str]:
    """Parse a comma-separated tag list such as "email, Work"."""
    if not value:
        return []
    return sanitize_tags(value.split(","))
