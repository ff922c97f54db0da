"""Hash helpers used for consistent server selection."""

from __future__ import annotations

from typing import Any

_MASK64 = (1 << 64) - 1
_FNV64_OFFSET = 14695981039346656037
_FNV64_PRIME = 1099511628211


def jump_hash(key: int, buckets: int) -> int:
    """Jump consistent hash: choose a bucket in ``[0, buckets)`` for ``key``."""
    if buckets <= 0:
        buckets = 1
    key &= _MASK64
    b, j = 0, 0
    while j < buckets:
        b = j
        key = (key * 2862933555777941757 + 1) & _MASK64
        j = int(float(b + 1) * (float(1 << 31) / float((key >> 33) + 1)))
    return b


def hash_string(s: str) -> int:
    """64-bit FNV-1a hash of the UTF-8 bytes of ``s``."""
    h = _FNV64_OFFSET
    for byte in s.encode("utf-8"):
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return h


def _format(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def gen_key(*args: Any) -> int:
    """Hash the values joined as ``/a/b/...``."""
    return hash_string("".join("/" + _format(arg) for arg in args))


def jump_consistent_hash(length: int, *args: Any) -> int:
    """Pick an index in ``[0, length)`` from the given values."""
    return jump_hash(gen_key(*args), length)