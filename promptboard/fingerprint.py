"""Content fingerprint used to spot duplicate prompts during import.

This is a similarity heuristic: equal strings always match, but distinct
strings can collide.
"""

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


def simple_hash(text: str) -> str:
    """Polynomial rolling hash (h*31 + unit) over UTF-16 code units.

    The accumulator wraps to a signed 32-bit integer after every step and the
    result is the absolute value rendered in base 36.
    """
    encoded = text.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def prompt_fingerprint(title: str, content: str) -> str:
    return simple_hash((title or "") + (content or ""))
