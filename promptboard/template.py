"""Placeholder templates: {{name}} and {{name|default}}.

A name is any run of characters other than "}" and "|", trimmed. A default is
any run of characters other than "}" and may be empty. Anything that does not
complete the grammar is passed through as literal text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .models import FillResult, Placeholder

OPEN = "{{"
CLOSE = "}}"

AUTO_VALUE_NAMES = ("today", "now")


@dataclass
class _Match:
    start: int
    end: int
    name: str
    default: str | None


def _match_at(text: str, pos: int, close: int) -> _Match | None:
    """Read the placeholder opening at pos, given the first "}" after its "{{".

    The name runs up to the first "|" or "}", and a default runs from that
    "|" to the same "}", so every attempt ends at close.
    """
    body_start = pos + len(OPEN)
    bar = text.find("|", body_start, close)
    if bar == -1:
        name, default = text[body_start:close], None
    else:
        name, default = text[body_start:bar], text[bar + 1:close]
    if not name.strip():
        return None
    return _Match(start=pos, end=close + len(CLOSE), name=name.strip(), default=default)


def _scan(text: str):
    pos = 0
    close = -1
    while True:
        pos = text.find(OPEN, pos)
        if pos == -1:
            return
        if close < pos + len(OPEN):
            close = text.find("}", pos + len(OPEN))
            if close == -1:
                return
        if not text.startswith(CLOSE, close):
            # No "{{" at or before close can complete.
            pos = close + 1
            continue
        match = _match_at(text, pos, close)
        if match is None:
            pos += 1
            continue
        yield match
        pos = match.end


def parse_placeholders(text: str) -> list[Placeholder]:
    """Distinct placeholders in order of first appearance.

    When a name repeats, its first occurrence decides the default.
    """
    if not isinstance(text, str):
        return []
    found: dict[str, Placeholder] = {}
    for match in _scan(text):
        if match.name in found:
            continue
        found[match.name] = Placeholder(
            name=match.name,
            default_value=match.default or "",
            has_default=match.default is not None,
        )
    return list(found.values())


def auto_values(now: datetime | None = None) -> dict[str, str]:
    current = now or datetime.now()
    return {
        "today": current.strftime("%Y-%m-%d"),
        "now": current.strftime("%Y-%m-%d %H:%M"),
    }


def apply_placeholders(
    text: str,
    values: dict[str, str] | None = None,
    now: datetime | None = None,
) -> FillResult:
    """Substitute placeholders left to right.

    A non-empty supplied value wins, then a declared default (even ""),
    otherwise the markup is kept and the name reported as missing. A literal
    {{today}} or {{now}} in the text is always filled with the current date or
    time, overriding any supplied value.
    """
    if not isinstance(text, str) or not text:
        return FillResult(text=text if isinstance(text, str) else "", missing=[])

    effective = dict(values or {})
    autos = auto_values(now)
    for name in AUTO_VALUE_NAMES:
        if f"{OPEN}{name}{CLOSE}" in text:
            effective[name] = autos[name]

    out: list[str] = []
    missing: list[str] = []
    pos = 0
    for match in _scan(text):
        out.append(text[pos:match.start])
        value = effective.get(match.name)
        if value is not None and value != "":
            out.append(str(value))
        elif match.default is not None:
            out.append(match.default)
        else:
            out.append(text[match.start:match.end])
            if match.name not in missing:
                missing.append(match.name)
        pos = match.end
    out.append(text[pos:])

    return FillResult(text="".join(out), missing=missing)
