"""Simulated arena-based memory allocator with best-fit placement, coalescing and allocation reports."""

__version__ = "0.1.0"