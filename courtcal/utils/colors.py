from __future__ import annotations


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(text: str) -> int:
    """Signed 32-bit ``h = h * 31 + ord(c)`` hash."""
    h = 0
    for char in text:
        h = _int32((h << 5) - h + ord(char))
    return h


def park_color(name: str) -> str:
    """Deterministic ``#rrggbb`` color; every channel stays within 55-254."""
    h = string_hash(name)
    r = abs(h) % 200 + 55
    g = abs(h >> 8) % 200 + 55
    b = abs(h >> 16) % 200 + 55
    return f"#{r:02x}{g:02x}{b:02x}"
