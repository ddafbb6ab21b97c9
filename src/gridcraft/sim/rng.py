from __future__ import annotations

import hashlib

# 53 bits fit a float mantissa exactly, so the result never rounds up to 1.0.
_UNIT_BITS = 53


def luck(key: str) -> float:
    """Map a string to a reproducible uniform value in [0, 1)."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    raw = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - _UNIT_BITS)
    return raw / float(1 << _UNIT_BITS)
