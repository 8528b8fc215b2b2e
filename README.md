# arenalloc

`arenalloc` is a memory allocator that runs entirely inside a Python process.
It behaves like a classic `malloc` implementation. Requests are grouped into
TINY, SMALL and LARGE arenas, and every block carries a 32-byte header. Free
blocks are found by best fit, and neighbouring free blocks are merged. An
arena that becomes empty is released, unless it is the only one left. The
allocator can also report the layout of every arena and give a hexadecimal
dump of every live block.

Addresses are simulated integers handed out by an `AddressSpace`. Each mapped
region is backed by an anonymous `mmap` buffer. This makes the package useful
for teaching, testing or exploring allocator behaviour without touching real
process memory.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

```python
from arenalloc.heap import Heap, default_heap
from arenalloc.arena import AddressSpace
from arenalloc.display import show_alloc_mem, show_alloc_mem_ex

heap = default_heap()        # one shared heap per process
# or: heap = Heap(AddressSpace(page_size=4096, limit=1 << 20))

a = heap.malloc(10)          # integer address of a 10-byte block
b = heap.calloc(20, 10)      # 200 zeroed bytes
heap.write(a, b"hhhhhhhhhh")
print(heap.read(a, 10))

show_alloc_mem(heap)         # arenas in address order, blocks and a total
show_alloc_mem_ex(heap)      # hexadecimal dump of each live block

a = heap.realloc(a, 4000)    # grows in place when it can, moves otherwise
heap.free(b)
heap.free(a)
```

### Allocation classes

A request's block size is its size plus the header, rounded up to a multiple
of 8 (`arenalloc.arena.align`). The block is then placed by size:

- up to `tiny_limit(page_size)`, it goes in a TINY arena of four pages;
- up to `small_limit(page_size)`, it goes in a SMALL arena of 96 pages;
- anything larger gets a LARGE arena of its own.

`arena_type_for_block` and `arena_size_for_block` tell you which class and
arena size a block would get.

### Return values and errors

- `malloc(0)` returns `None`. So does `calloc` when the product of its
  arguments is zero.
- `realloc(None, size)` behaves like `malloc(size)`.
- `realloc(address, 0)` frees the block and returns `None`.
- A negative size raises `ValueError`.
- `MemoryError` is raised in three cases:
  - a request overflows the 64-bit size range;
  - the address space cannot provide a region;
  - an `AddressSpace` created with `limit=` would go beyond its limit.
- Freeing or reallocating an address that is not a live block raises
  `arenalloc.heap.InvalidFreeError`, which is a `ValueError`.
- `free(None)` does nothing.

### Inspection

- `Heap.arenas()` lists the arenas in the order they were mapped. Each `Arena`
  has a `type`, `size`, `address`, `end`, `contains()` and `view()`.
- `Heap.blocks(arena)` yields `(header_address, BlockHeader)` pairs in order.
- `Heap.header(meta_address)` and `Heap.block_size(meta_address)` describe a
  single block.
- `Heap.arena_of(address)` finds the arena that holds an address.
- `Heap.best_fit(block_size, arena_type)` shows where the next request of that
  size would be placed.
- `BlockHeader.pack()` and `BlockHeader.unpack()` convert a header to and
  from its stored bytes.

### Reports

`arenalloc.display` produces two reports:

- `format_alloc_mem(heap)` lists the arenas by increasing address. Each arena
  shows its live blocks, and the report ends with the total number of bytes
  requested.
- `format_alloc_mem_ex(heap)` lists the arenas in mapping order and gives a
  hex dump of each live block.

`show_alloc_mem` and `show_alloc_mem_ex` write these reports to a file, which
is standard output by default. `hex_dump(address, data)` formats a single
dump. When no heap is given, these functions use `default_heap()`.

### Helpers

- `arenalloc.formatting.format_printf` formats a subset of printf
  conversions: `%c %s %p %d %i %u %x %X %ld %%`.
  - `printf` writes the result to standard output and returns its length.
  - `format_pointer` renders an address as `0x` followed by upper-case hex,
    or as `(nil)`.
  - `format_hex` renders an unsigned 32-bit value in hex.
- `arenalloc.memops` provides `memset`, `bzero`, `memcpy`, `memmove`, `memchr`
  and `memcmp` over byte buffers:
  - `memchr` returns an offset, or `None` when the byte is not found;
  - a length beyond the buffer raises `ValueError`.

## What it does not do

`arenalloc` does not replace the interpreter's own memory allocation, and its
addresses are not real process addresses. There is no command-line program;
the package is used as a library.