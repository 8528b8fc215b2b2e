import io

import pytest

from arenalloc.arena import AddressSpace, ArenaType
from arenalloc.display import (
    format_alloc_mem,
    format_alloc_mem_ex,
    hex_dump,
    show_alloc_mem,
    show_alloc_mem_ex,
)
from arenalloc.heap import Heap, InvalidFreeError


@pytest.fixture
def heap():
    return Heap(AddressSpace(page_size=4096, base=0x10000000))


def _p(address):
    return f"0x{address:X}"


def test_empty_heap_reports_no_allocations(heap):
    assert format_alloc_mem(heap) == "No allocations.\n"
    assert format_alloc_mem_ex(heap) == "No allocations.\n"


def test_hex_dump_short():
    assert hex_dump(0x1000, bytes([0x68, 0x19])) == (
        "\npointer 0x1000 -> 0xFE2\n-------\n68 19\n"
    )


def test_hex_dump_groups_of_four():
    assert hex_dump(0x2000, bytes(range(5))).endswith("00 01 02 03  04\n")


def test_main1_listing_and_dump(heap):
    a = heap.malloc(10)
    b = heap.calloc(20, 10)
    heap.write(a, b"h" * 10)
    heap.write(a + 1, bytes([25]))
    heap.write(b, (10).to_bytes(4, "little"))
    tiny, small = heap.arenas()
    assert tiny.type is ArenaType.TINY and small.type is ArenaType.SMALL
    assert a == tiny.address + 32

    assert format_alloc_mem(heap) == (
        f"TINY : {_p(tiny.address)}\n"
        f"{_p(a)} - {_p(a + 10)} : 10 bytes\n"
        f"SMALL : {_p(small.address)}\n"
        f"{_p(b)} - {_p(b + 200)} : 200 bytes\n"
        "Total : 210 bytes\n"
    )

    b_dump = "  ".join(["0a 00 00 00"] + ["00 00 00 00"] * 49)
    assert format_alloc_mem_ex(heap) == (
        f"TINY : {_p(tiny.address)}\n"
        f"\npointer {_p(a)} -> {_p(a - 32 + 10)}\n-------\n"
        "68 19 68 68  68 68 68 68  68 68\n"
        "\n"
        f"SMALL : {_p(small.address)}\n"
        f"\npointer {_p(b)} -> {_p(b - 32 + 200)}\n-------\n"
        f"{b_dump}\n"
        "\n"
    )

    heap.free(b)
    assert format_alloc_mem(heap) == (
        f"TINY : {_p(tiny.address)}\n"
        f"{_p(a)} - {_p(a + 10)} : 10 bytes\n"
        "Total : 10 bytes\n"
    )

    heap.free(a)
    assert format_alloc_mem(heap) == f"TINY : {_p(tiny.address)}\nTotal : 0 bytes\n"


def test_main2_realloc_to_large(heap):
    a = heap.malloc(10)
    g = heap.realloc(a, 999999999)
    (large,) = heap.arenas()
    assert large.type is ArenaType.LARGE
    assert g == large.address + 32
    assert format_alloc_mem(heap) == (
        f"LARGE : {_p(large.address)}\n"
        f"{_p(g)} - {_p(g + 999999999)} : 999999999 bytes\n"
        "Total : 999999999 bytes\n"
    )
    with pytest.raises(InvalidFreeError):
        heap.free(a)
    heap.free(g)
    assert format_alloc_mem(heap) == (
        f"LARGE : {_p(large.address)}\nTotal : 0 bytes\n"
    )


def test_main4_reuses_freed_block(heap):
    a = heap.malloc(100)
    b = heap.malloc(57)
    (tiny,) = heap.arenas()
    assert format_alloc_mem(heap) == (
        f"TINY : {_p(tiny.address)}\n"
        f"{_p(a)} - {_p(a + 100)} : 100 bytes\n"
        f"{_p(b)} - {_p(b + 57)} : 57 bytes\n"
        "Total : 157 bytes\n"
    )
    heap.free(a)
    a2 = heap.malloc(5)
    assert a2 == a
    assert format_alloc_mem(heap) == (
        f"TINY : {_p(tiny.address)}\n"
        f"{_p(a2)} - {_p(a2 + 5)} : 5 bytes\n"
        f"{_p(b)} - {_p(b + 57)} : 57 bytes\n"
        "Total : 62 bytes\n"
    )
    heap.free(a2)
    heap.free(b)
    assert format_alloc_mem(heap).endswith("Total : 0 bytes\n")


def test_main5_three_size_classes(heap):
    a = heap.malloc(42)
    b = heap.malloc(84)
    c = heap.malloc(3725)
    d = heap.malloc(48847)
    text = format_alloc_mem(heap)
    lines = text.splitlines()
    assert [line.split(" : ")[0] for line in lines if " - " not in line] == [
        "TINY",
        "SMALL",
        "LARGE",
        "Total",
    ]
    assert f"{_p(a)} - {_p(a + 42)} : 42 bytes" in lines
    assert f"{_p(b)} - {_p(b + 84)} : 84 bytes" in lines
    assert f"{_p(c)} - {_p(c + 3725)} : 3725 bytes" in lines
    assert f"{_p(d)} - {_p(d + 48847)} : 48847 bytes" in lines
    assert lines[-1] == "Total : 52698 bytes"
    for address in (a, b, c, d):
        heap.free(address)


def test_listing_sorts_arenas_by_address(heap):
    heap.malloc(10)
    small_ptr = heap.malloc(1000)
    heap.malloc(50000)
    heap.free(small_ptr)
    heap.malloc(1000)
    mapped = [arena.type for arena in heap.arenas()]
    assert mapped == [ArenaType.TINY, ArenaType.LARGE, ArenaType.SMALL]
    headers = [
        line.split(" : ")[0]
        for line in format_alloc_mem(heap).splitlines()
        if line.split(" : ")[0] in {"TINY", "SMALL", "LARGE"}
    ]
    assert headers == ["TINY", "SMALL", "LARGE"]


def test_show_functions_write_to_file(heap):
    a = heap.malloc(4)
    heap.write(a, b"\x01\x02\x03\x04")
    out = io.StringIO()
    show_alloc_mem(heap, out)
    assert out.getvalue() == format_alloc_mem(heap)
    assert out.getvalue().endswith("Total : 4 bytes\n")
    dump = io.StringIO()
    show_alloc_mem_ex(heap, dump)
    assert "01 02 03 04\n" in dump.getvalue()


def test_show_alloc_mem_defaults_to_stdout(heap, capsys):
    show_alloc_mem(heap)
    assert capsys.readouterr().out == "No allocations.\n"