"""Arenas, size classes and a simulated page-granular address space."""

from __future__ import annotations

import mmap as _mmap
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum

PAGE_SIZE = _mmap.PAGESIZE
ALIGNMENT = 8

TINY_ARENA_PAGES = 4
SMALL_ARENA_PAGES = 96

# Byte sizes of the bookkeeping records kept for every mapped arena.
ARENA_RECORD_SIZE = 32
REGISTRY_HEADER_SIZE = 16
REGISTRY_INITIAL_SIZE = 8 + 300 * ARENA_RECORD_SIZE
REGISTRY_GROWTH = 100 * ARENA_RECORD_SIZE

DEFAULT_BASE = 0x7F00_0000_0000


class ArenaType(Enum):
    """Size class of an arena."""

    TINY = "TINY"
    SMALL = "SMALL"
    LARGE = "LARGE"

    def __str__(self) -> str:
        return self.value


def align(size: int) -> int:
    """Round ``size`` up to the allocation alignment."""
    return (size + ALIGNMENT - 1) & ~(ALIGNMENT - 1)


def tiny_limit(page_size: int = PAGE_SIZE) -> int:
    """Largest block size served from a TINY arena."""
    return TINY_ARENA_PAGES * page_size // 100


def small_limit(page_size: int = PAGE_SIZE) -> int:
    """Largest block size served from a SMALL arena."""
    return SMALL_ARENA_PAGES * page_size // 100


def arena_type_for_block(block_size: int, page_size: int = PAGE_SIZE) -> ArenaType:
    """The size class a block of ``block_size`` bytes belongs to."""
    if block_size <= tiny_limit(page_size):
        return ArenaType.TINY
    if block_size <= small_limit(page_size):
        return ArenaType.SMALL
    return ArenaType.LARGE


def arena_size_for_block(block_size: int, page_size: int = PAGE_SIZE) -> int:
    """Size of a fresh arena able to hold a block of ``block_size`` bytes."""
    kind = arena_type_for_block(block_size, page_size)
    if kind is ArenaType.TINY:
        return TINY_ARENA_PAGES * page_size
    if kind is ArenaType.SMALL:
        return SMALL_ARENA_PAGES * page_size
    return block_size


@dataclass(eq=False)
class Arena:
    """A mapped region of ``size`` bytes starting at ``address``."""

    type: ArenaType
    size: int
    address: int
    memory: _mmap.mmap = field(repr=False)

    @property
    def end(self) -> int:
        return self.address + self.size

    def contains(self, address: int) -> bool:
        """Whether ``address`` lies inside this arena."""
        return self.address <= address < self.end

    def view(self, address: int, size: int) -> memoryview:
        """A writable view of ``size`` bytes of the arena starting at ``address``."""
        if size < 0 or address < self.address or address + size > self.end:
            raise IndexError(
                f"range {address:#x}+{size} lies outside arena at {self.address:#x}"
            )
        offset = address - self.address
        return memoryview(self.memory)[offset : offset + size]


class AddressSpace:
    """Hands out page-aligned, zero-filled regions at simulated addresses."""

    def __init__(
        self,
        page_size: int = PAGE_SIZE,
        base: int = DEFAULT_BASE,
        limit: int | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page size must be positive")
        if base < 0 or base % page_size:
            raise ValueError("base address must be a non-negative multiple of the page size")
        self.page_size = page_size
        self.base = base
        self.limit = limit
        self._regions: dict[int, _mmap.mmap] = {}
        self._mapped = 0

    def _round(self, size: int) -> int:
        return -(-size // self.page_size) * self.page_size

    def _find_gap(self, length: int) -> int:
        cursor = self.base
        for start in sorted(self._regions):
            if start - cursor >= length:
                return cursor
            cursor = max(cursor, start + len(self._regions[start]))
        return cursor

    def map(self, size: int) -> tuple[int, _mmap.mmap]:
        """Map at least ``size`` bytes; return the address and its backing memory.

        Raises MemoryError when the region cannot be provided.
        """
        if size <= 0:
            raise ValueError("mapping size must be positive")
        length = self._round(size)
        if self.limit is not None and self._mapped + length > self.limit:
            raise MemoryError("mmap syscall failed")
        address = self._find_gap(length)
        try:
            region = _mmap.mmap(-1, length)
        except (OSError, OverflowError, ValueError) as exc:
            raise MemoryError("mmap syscall failed") from exc
        self._regions[address] = region
        self._mapped += length
        return address, region

    def unmap(self, address: int, size: int) -> None:
        """Release the region mapped at ``address`` with the given ``size``."""
        region = self._regions.get(address)
        if region is None:
            raise ValueError(f"no mapping at {address:#x}")
        if size <= 0 or self._round(size) != len(region):
            raise ValueError(f"size {size} does not match mapping at {address:#x}")
        del self._regions[address]
        self._mapped -= len(region)
        with suppress(BufferError):
            region.close()