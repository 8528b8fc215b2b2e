"""Byte-buffer primitives over writable and read-only buffers."""

from __future__ import annotations


def _checked(buffer, n: int) -> memoryview:
    if n < 0:
        raise ValueError("length must not be negative")
    view = memoryview(buffer).cast("B")
    if n > len(view):
        raise ValueError(f"length {n} exceeds buffer of {len(view)} bytes")
    return view


def memset(buffer, value: int, n: int):
    """Fill the first ``n`` bytes of ``buffer`` with ``value`` and return it."""
    view = _checked(buffer, n)
    view[:n] = bytes([value & 0xFF]) * n
    return buffer


def bzero(buffer, n: int) -> None:
    """Zero the first ``n`` bytes of ``buffer``."""
    memset(buffer, 0, n)


def memcpy(dest, src, n: int):
    """Copy ``n`` bytes from ``src`` to ``dest`` and return ``dest``."""
    target = _checked(dest, n)
    source = _checked(src, n)
    target[:n] = bytes(source[:n])
    return dest


def memmove(dest, src, n: int):
    """Copy ``n`` bytes between possibly overlapping buffers; return ``dest``."""
    target = _checked(dest, n)
    source = _checked(src, n)
    if n:
        target[:n] = bytes(source[:n])
    return dest


def memchr(buffer, value: int, n: int) -> int | None:
    """Return the offset of the first byte equal to ``value`` in the first ``n``."""
    view = _checked(buffer, n)
    offset = bytes(view[:n]).find(value & 0xFF)
    return None if offset < 0 else offset


def memcmp(first, second, n: int) -> int:
    """Compare ``n`` bytes; return the difference of the first unequal pair, or 0."""
    left = _checked(first, n)
    right = _checked(second, n)
    for a, b in zip(left[:n], right[:n]):
        if a != b:
            return a - b
    return 0