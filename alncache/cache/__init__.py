"""Window, index and store machinery behind :class:`AlignmentCache`."""

from alncache.cache.interval_tree import IntervalNode, IntervalTree
from alncache.cache.manager import WindowManager
from alncache.cache.registry import StoreRegistry
from alncache.cache.router import AlignmentCache, CacheState, CacheStats
from alncache.cache.store import RecordStore
from alncache.cache.window import Window, next_window_bounds

__all__ = [
    "AlignmentCache",
    "CacheState",
    "CacheStats",
    "IntervalNode",
    "IntervalTree",
    "RecordStore",
    "StoreRegistry",
    "Window",
    "WindowManager",
    "next_window_bounds",
]
