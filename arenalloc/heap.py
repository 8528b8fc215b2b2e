"""A best-fit block allocator working inside arenas of an address space."""

from __future__ import annotations

import functools
import struct
import threading
from dataclasses import dataclass, replace
from typing import Iterator

from .arena import (
    ARENA_RECORD_SIZE,
    REGISTRY_GROWTH,
    REGISTRY_HEADER_SIZE,
    REGISTRY_INITIAL_SIZE,
    AddressSpace,
    Arena,
    ArenaType,
    align,
    arena_size_for_block,
    arena_type_for_block,
)
from .memops import bzero, memcpy

SIZE_MAX = 2**64 - 1

_HEADER = struct.Struct("<QQQ?7x")
METADATA_SIZE = _HEADER.size


class InvalidFreeError(ValueError):
    """Raised when an address does not name a live allocation."""

    def __init__(self, address: int) -> None:
        super().__init__(f"block cannot be freed: {address:#x}")
        self.address = address


@dataclass(frozen=True)
class BlockHeader:
    """The metadata stored in front of every block of an arena."""

    size: int
    prev: int | None = None
    next: int | None = None
    is_malloc: bool = False

    def pack(self) -> bytes:
        """Encode the header as it is stored in arena memory."""
        return _HEADER.pack(self.size, self.prev or 0, self.next or 0, self.is_malloc)

    @classmethod
    def unpack(cls, data) -> BlockHeader:
        """Decode a header from its stored bytes."""
        size, prev, nxt, is_malloc = _HEADER.unpack(bytes(data))
        return cls(size, prev or None, nxt or None, is_malloc)


@dataclass
class _Registry:
    address: int
    size: int


class Heap:
    """Serves malloc, free, realloc and calloc from TINY, SMALL and LARGE arenas."""

    def __init__(self, address_space: AddressSpace | None = None) -> None:
        self.address_space = address_space if address_space is not None else AddressSpace()
        self._lock = threading.RLock()
        self._registry: _Registry | None = None
        self._arenas: list[Arena] = []
        self._slots: dict[int, int] = {}

    @property
    def page_size(self) -> int:
        return self.address_space.page_size

    # ------------------------------------------------------------------ public

    def malloc(self, size: int) -> int | None:
        """Allocate ``size`` bytes and return their address; ``None`` for zero.

        Raises MemoryError when the request overflows or memory cannot be mapped.
        """
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            return None
        with self._lock:
            if size > SIZE_MAX - METADATA_SIZE:
                raise MemoryError("allocation size overflows")
            block = align(size + METADATA_SIZE)
            kind = arena_type_for_block(block, self.page_size)
            if kind is ArenaType.LARGE:
                return self._large_allocation(block, size)
            meta = self._get_block(block, kind)
            self._mark_block(meta, block, size)
            return meta + METADATA_SIZE

    def free(self, address: int | None) -> None:
        """Release the allocation at ``address``; ``None`` is ignored."""
        if address is None:
            return
        with self._lock:
            meta = address - METADATA_SIZE
            if not self._is_freeable(meta):
                raise InvalidFreeError(address)
            header = self.header(meta)
            self._set_header(
                meta, BlockHeader(self.block_size(meta), header.prev, header.next, False)
            )
            if self._is_free(header.next):
                self._defragment(meta, header.next)
            prev = self.header(meta).prev
            if self._is_free(prev):
                meta = prev
                self._defragment(meta, self.header(meta).next)
            self._release_if_empty(meta)

    def realloc(self, address: int | None, size: int) -> int | None:
        """Resize the allocation at ``address``, moving it when it cannot grow."""
        if address is None:
            return self.malloc(size)
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            self.free(address)
            return None
        with self._lock:
            meta = address - METADATA_SIZE
            if not self._is_freeable(meta):
                raise InvalidFreeError(address)
            current = self.block_size(meta)
            if current - METADATA_SIZE == size:
                return address
            if self._available_for_realloc(meta) < size:
                return self._move(address, size)
            block = align(size + METADATA_SIZE)
            if current < block:
                self._grow_in_place(meta, block, size)
            else:
                self._shrink_in_place(meta, block, size)
            return address

    def calloc(self, nmemb: int, size: int) -> int | None:
        """Allocate a zeroed array of ``nmemb`` elements of ``size`` bytes."""
        if nmemb < 0 or size < 0:
            raise ValueError("sizes must not be negative")
        total = nmemb * size
        if total == 0:
            return None
        if total > SIZE_MAX:
            raise MemoryError("allocation size overflows")
        with self._lock:
            address = self.malloc(total)
            bzero(self._view(address, total), total)
            return address

    def read(self, address: int, n: int) -> bytes:
        """Read ``n`` bytes of mapped arena memory."""
        with self._lock:
            return bytes(self._view(address, n))

    def write(self, address: int, data) -> None:
        """Write ``data`` into mapped arena memory."""
        payload = bytes(data)
        with self._lock:
            memcpy(self._view(address, len(payload)), payload, len(payload))

    def header(self, meta_address: int) -> BlockHeader:
        """The block header stored at ``meta_address``."""
        with self._lock:
            return BlockHeader.unpack(self._view(meta_address, METADATA_SIZE))

    def block_size(self, meta_address: int) -> int:
        """Full size of a block: header, requested bytes and padding."""
        with self._lock:
            header = self.header(meta_address)
            if header.next is None:
                arena = self.arena_of(meta_address)
                return 0 if arena is None else arena.end - meta_address
            return header.next - meta_address

    def arena_of(self, address: int) -> Arena | None:
        """The arena holding ``address``, if any."""
        with self._lock:
            return next((arena for arena in self._arenas if arena.contains(address)), None)

    def best_fit(self, block_size: int, arena_type: ArenaType) -> int | None:
        """Header address of the smallest free block of ``arena_type`` that fits."""
        with self._lock:
            best: int | None = None
            best_size = 0
            for arena in self._arenas:
                if arena.type is not arena_type:
                    continue
                head = arena.address
                while head is not None and arena.end > head + METADATA_SIZE:
                    header = self.header(head)
                    if not header.is_malloc:
                        size = self.block_size(head)
                        if size >= block_size and (best is None or size < best_size):
                            best, best_size = head, size
                    head = header.next
            return best

    def blocks(self, arena: Arena) -> Iterator[tuple[int, BlockHeader]]:
        """Yield ``(header_address, header)`` for each block of ``arena`` in order."""
        meta = arena.address
        while meta is not None:
            header = self.header(meta)
            yield meta, header
            meta = header.next

    def arenas(self) -> list[Arena]:
        """The arenas in the order they were mapped."""
        with self._lock:
            return list(self._arenas)

    # ----------------------------------------------------------------- memory

    def _view(self, address: int, size: int) -> memoryview:
        arena = self.arena_of(address)
        if arena is None:
            raise IndexError(f"address {address:#x} is not mapped")
        return arena.view(address, size)

    def _set_header(self, meta: int, header: BlockHeader) -> None:
        self._view(meta, METADATA_SIZE)[:] = header.pack()

    def _relink_prev(self, meta: int, prev: int) -> None:
        self._set_header(meta, replace(self.header(meta), prev=prev))

    def _is_free(self, meta: int | None) -> bool:
        return meta is not None and not self.header(meta).is_malloc

    # --------------------------------------------------------------- registry

    def _ensure_registry(self) -> None:
        if self._registry is None:
            address, _ = self.address_space.map(REGISTRY_INITIAL_SIZE)
            self._registry = _Registry(address, REGISTRY_INITIAL_SIZE)

    def _grow_registry(self) -> None:
        old = self._registry
        size = old.size + REGISTRY_GROWTH
        address, _ = self.address_space.map(size)
        self._registry = _Registry(address, size)
        self._slots = {arena.address: slot for slot, arena in enumerate(self._arenas)}
        self.address_space.unmap(old.address, old.size)

    def _register(self, arena: Arena) -> None:
        slot = 0
        if self._arenas:
            slot = self._slots[self._arenas[-1].address] + 1
            if REGISTRY_HEADER_SIZE + (slot + 1) * ARENA_RECORD_SIZE > self._registry.size:
                self._grow_registry()
                slot = len(self._arenas)
        self._arenas.append(arena)
        self._slots[arena.address] = slot

    def _map_arena(self, kind: ArenaType, size: int) -> int:
        address, memory = self.address_space.map(size)
        try:
            self._ensure_registry()
            self._register(Arena(kind, size, address, memory))
        except MemoryError:
            self.address_space.unmap(address, size)
            raise
        return address

    # ------------------------------------------------------------- allocation

    def _get_block(self, block: int, kind: ArenaType) -> int:
        self._ensure_registry()
        best = self.best_fit(block, kind) if self._arenas else None
        if best is None:
            best = self._map_arena(kind, arena_size_for_block(block, self.page_size))
            self._set_header(best, BlockHeader(self.arena_of(best).size))
        return best

    def _large_allocation(self, block: int, size: int) -> int:
        address = self._map_arena(ArenaType.LARGE, block)
        self._set_header(address, BlockHeader(size, None, None, True))
        return address + METADATA_SIZE

    def _mark_block(self, meta: int, block: int, size: int) -> None:
        header = self.header(meta)
        available = self.block_size(meta)
        if available - block < METADATA_SIZE:
            block = available
        if available == block:
            self._set_header(meta, BlockHeader(size, header.prev, header.next, True))
            return
        split = meta + block
        self._set_header(split, BlockHeader(available - block, meta, header.next, False))
        if header.next is not None:
            self._relink_prev(header.next, split)
        self._set_header(meta, BlockHeader(size, header.prev, split, True))

    # -------------------------------------------------------------- releasing

    def _is_freeable(self, meta: int) -> bool:
        arena = self.arena_of(meta)
        if arena is None:
            return False
        return next(
            (header.is_malloc for address, header in self.blocks(arena) if address == meta),
            False,
        )

    def _defragment(self, first: int, second: int) -> None:
        first_header = self.header(first)
        second_header = self.header(second)
        merged = self.block_size(first) + self.block_size(second)
        self._set_header(
            first, BlockHeader(merged, first_header.prev, second_header.next, False)
        )
        if second_header.next is not None:
            self._relink_prev(second_header.next, first)

    def _release_if_empty(self, meta: int) -> None:
        header = self.header(meta)
        if header.prev is not None or header.next is not None:
            return
        if len(self._arenas) == 1:
            return
        arena = next(arena for arena in self._arenas if arena.address == meta)
        self._arenas.remove(arena)
        del self._slots[arena.address]
        self.address_space.unmap(arena.address, arena.size)

    # -------------------------------------------------------------- resizing

    def _available_for_realloc(self, meta: int) -> int:
        size = self.block_size(meta) - METADATA_SIZE
        nxt = self.header(meta).next
        if nxt is None or self.header(nxt).is_malloc:
            return size
        return size + self.block_size(nxt)

    def _move(self, address: int, size: int) -> int:
        new_address = self.malloc(size)
        count = (
            min(
                self.block_size(address - METADATA_SIZE),
                self.block_size(new_address - METADATA_SIZE),
            )
            - METADATA_SIZE
        )
        memcpy(self._view(new_address, count), self._view(address, count), count)
        self.free(address)
        return new_address

    def _grow_in_place(self, meta: int, block: int, size: int) -> None:
        header = self.header(meta)
        nxt = header.next
        after = self.header(nxt).next
        own = self.block_size(meta)
        following = self.block_size(nxt)
        if nxt + following < meta + block + METADATA_SIZE:
            block = own + following
        if block == own + following:
            self._set_header(meta, BlockHeader(size, header.prev, after, True))
            if after is not None:
                self._relink_prev(after, meta)
            return
        split = meta + block
        self._set_header(split, BlockHeader(following - (block - own), meta, after, False))
        if after is not None:
            self._relink_prev(after, split)
        self._set_header(meta, BlockHeader(size, header.prev, split, True))

    def _shrink_in_place(self, meta: int, block: int, size: int) -> None:
        header = self.header(meta)
        nxt = header.next
        own = self.block_size(meta)
        next_used = nxt is None or self.header(nxt).is_malloc
        if own - block < METADATA_SIZE and next_used:
            self._set_header(meta, replace(header, size=size))
            return
        split = meta + block
        if next_used:
            self._set_header(split, BlockHeader(own - block, meta, nxt, False))
            if nxt is not None:
                self._relink_prev(nxt, split)
        else:
            after = self.header(nxt).next
            merged = self.block_size(nxt) + own - block
            self._set_header(split, BlockHeader(merged, meta, after, False))
            if after is not None:
                self._relink_prev(after, split)
        self._set_header(meta, BlockHeader(size, header.prev, split, True))


@functools.lru_cache(maxsize=None)
def default_heap() -> Heap:
    """The process-wide heap over the default address space."""
    return Heap()