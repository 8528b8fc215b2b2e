"""Minimal printf-style formatting used by the allocator's diagnostics."""

from __future__ import annotations

import re
import sys

_DIRECTIVE = re.compile(r"%(ld|[cspdiuxX%])")
_UINT32_MASK = 0xFFFF_FFFF
_SIZE_MASK = 0xFFFF_FFFF_FFFF_FFFF


def _to_int32(value: int) -> int:
    value &= _UINT32_MASK
    return value - (1 << 32) if value >= 1 << 31 else value


def format_hex(value: int, upper: bool = False) -> str:
    """Render ``value`` as an unsigned 32-bit hexadecimal number."""
    return format(value & _UINT32_MASK, "X" if upper else "x")


def format_pointer(address: int | None) -> str:
    """Render an address as ``0x`` followed by upper-case hex, or ``(nil)``."""
    if not address:
        return "(nil)"
    return f"0x{address & _SIZE_MASK:X}"


def _format_char(value: int | str) -> str:
    if isinstance(value, str):
        if len(value) != 1:
            raise TypeError("%c requires a single character")
        return value
    return chr(value & 0xFF)


def format_printf(fmt: str, *args: object) -> str:
    """Format ``args`` according to the directives in ``fmt``.

    Supported directives are ``%c %s %p %d %i %u %x %X %ld %%``. Any other
    ``%`` is emitted literally, followed by the character after it.
    """
    if fmt is None:
        raise TypeError("format string must not be None")
    values = iter(args)

    def next_value() -> object:
        try:
            return next(values)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    def render(match: re.Match[str]) -> str:
        spec = match.group(1)
        if spec == "%":
            return "%"
        value = next_value()
        if spec == "c":
            return _format_char(value)
        if spec == "s":
            return "(null)" if value is None else str(value)
        if spec == "p":
            return format_pointer(value)
        if spec in ("d", "i"):
            return str(_to_int32(value))
        if spec == "u":
            return str(value & _UINT32_MASK)
        if spec == "x":
            return format_hex(value, False)
        if spec == "X":
            return format_hex(value, True)
        return str(value & _SIZE_MASK)

    return _DIRECTIVE.sub(render, fmt)


def printf(fmt: str, *args: object) -> int:
    """Write the formatted text to standard output and return its length."""
    text = format_printf(fmt, *args)
    sys.stdout.write(text)
    return len(text)