"""Human-readable reports of a heap's arenas and live allocations."""

from __future__ import annotations

import sys
from typing import TextIO

from .arena import Arena
from .formatting import format_printf
from .heap import METADATA_SIZE, Heap, default_heap


def _resolve(heap: Heap | None) -> Heap:
    return default_heap() if heap is None else heap


def _arena_line(arena: Arena) -> str:
    return format_printf("%s : %p\n", str(arena.type), arena.address)


def hex_dump(address: int, data) -> str:
    """Hexadecimal dump of the ``data`` held by the allocation at ``address``.

    Bytes are separated by one space, with two spaces after every fourth byte.
    """
    payload = bytes(data)
    head = format_printf(
        "\npointer %p -> %p\n-------\n",
        address,
        address - METADATA_SIZE + len(payload),
    )
    groups = [
        " ".join(f"{byte:02x}" for byte in payload[start : start + 4])
        for start in range(0, len(payload), 4)
    ]
    return head + "  ".join(groups) + "\n"


def format_alloc_mem(heap: Heap | None = None) -> str:
    """List every arena by increasing address with its allocations and a total."""
    heap = _resolve(heap)
    arenas = heap.arenas()
    if not arenas:
        return "No allocations.\n"
    parts: list[str] = []
    total = 0
    for arena in sorted(arenas, key=lambda arena: arena.address):
        parts.append(_arena_line(arena))
        for meta, header in heap.blocks(arena):
            if not header.is_malloc:
                continue
            start = meta + METADATA_SIZE
            parts.append(
                format_printf(
                    "%p - %p : %ld bytes\n", start, start + header.size, header.size
                )
            )
            total += header.size
    parts.append(format_printf("Total : %ld bytes\n", total))
    return "".join(parts)


def format_alloc_mem_ex(heap: Heap | None = None) -> str:
    """List every arena in mapping order with a hex dump of each allocation."""
    heap = _resolve(heap)
    arenas = heap.arenas()
    if not arenas:
        return "No allocations.\n"
    parts: list[str] = []
    for arena in arenas:
        parts.append(_arena_line(arena))
        for meta, header in heap.blocks(arena):
            if header.is_malloc:
                start = meta + METADATA_SIZE
                parts.append(hex_dump(start, heap.read(start, header.size)))
        parts.append("\n")
    return "".join(parts)


def show_alloc_mem(heap: Heap | None = None, file: TextIO | None = None) -> None:
    """Write the allocation listing to ``file`` (standard output by default)."""
    (sys.stdout if file is None else file).write(format_alloc_mem(heap))


def show_alloc_mem_ex(heap: Heap | None = None, file: TextIO | None = None) -> None:
    """Write the hex-dump listing to ``file`` (standard output by default)."""
    (sys.stdout if file is None else file).write(format_alloc_mem_ex(heap))