"""Search ranking and capacity allocation over the storage layer."""

from storehost.engine.allocator import CapacityAllocator
from storehost.engine.search import SearchEngine, build_filter

__all__ = [
    "CapacityAllocator",
    "SearchEngine",
    "build_filter",
]
