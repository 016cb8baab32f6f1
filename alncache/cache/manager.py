"""Replacing the cached window: choose new bounds, refetch, reindex."""

from __future__ import annotations

import logging
import time
from contextlib import closing
from typing import Any, Callable, Optional, Tuple

from alncache.cache.interval_tree import IntervalTree
from alncache.cache.registry import StoreRegistry
from alncache.cache.store import RecordStore
from alncache.cache.window import Window, next_window_bounds
from alncache.errors import StoreError
from alncache.records import record_key
from alncache.regions import ContainmentMode
from alncache.source import AlignmentSource, ReadFilter


class WindowManager:
    """Owns the current window together with its interval index and record store.

    A refresh tears the previous store down before the new one is filled, so
    it must not run while a query is still reading from the old store.

    Attributes:
        source: Alignment source the windows are fetched from.
        registry: Registry creating and disposing the per-window record stores.
        window_capacity: Largest span a single window may cover.
        is_valid: Predicate deciding which fetched records are cached.
    """

    def __init__(
        self,
        source: AlignmentSource,
        registry: StoreRegistry,
        window_capacity: int,
        is_valid: Optional[Callable[[Any], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.source = source
        self.registry = registry
        self.window_capacity = window_capacity
        self.is_valid = is_valid if is_valid is not None else ReadFilter()
        self.logger = logger or logging.getLogger(__name__)

        self._window: Optional[Window] = None
        self._index: Optional[IntervalTree] = None
        self._store: Optional[RecordStore] = None

        self.refreshes = 0
        self.records_indexed = 0
        self.records_rejected = 0
        self.write_failures = 0

    @property
    def window(self) -> Optional[Window]:
        return self._window

    @property
    def index(self) -> Optional[IntervalTree]:
        return self._index

    @property
    def store(self) -> Optional[RecordStore]:
        return self._store

    def refresh(
        self, chrom: str, start: int, end: int, mode: ContainmentMode
    ) -> Window:
        """Replace the current window so that it covers ``[start, end)`` on ``chrom``.

        Raises:
            WindowCapacityError: If ``end - start`` exceeds the window capacity.
            Exception: Whatever the source raises while fetching. The cache is
                then left without a window and the next query refreshes again.
        """
        new_start, new_end = next_window_bounds(
            self._window, chrom, start, end, self.window_capacity
        )
        window = Window(chrom, new_start, new_end, mode)
        self.logger.debug(
            f"Updating window for {chrom}:{start}-{end}: {self._window} -> {window}"
        )

        self._discard()
        store = self.registry.create_store()
        index = IntervalTree()

        start_time = time.time()
        try:
            indexed, rejected, failed = self._populate(window, index, store)
        except Exception:
            self.logger.error(f"Failed to fetch records for window {window}", exc_info=True)
            self.registry.dispose(store.name)
            raise
        duration = time.time() - start_time

        self._window = window
        self._index = index
        self._store = store
        self.refreshes += 1
        self.records_indexed += indexed
        self.records_rejected += rejected
        self.write_failures += failed

        self.logger.info(
            f"Cached window {window}: {indexed} records in {len(index)} intervals "
            f"({rejected} rejected, {failed} not stored) in {duration:.3f}s"
        )
        return window

    def _populate(
        self, window: Window, index: IntervalTree, store: RecordStore
    ) -> Tuple[int, int, int]:
        indexed = rejected = failed = 0
        with closing(self.source.query(window.region, window.mode)) as records:
            for record in records:
                if not self.is_valid(record):
                    rejected += 1
                    continue
                key = record_key(record)
                try:
                    store.put(key, record)
                except StoreError as e:
                    self.logger.warning(
                        f"Failure to add {record.reference_start}:{record.reference_end} "
                        f"to store {store.name}: {e}"
                    )
                    failed += 1
                    continue
                index.insert(record.reference_start, record.reference_end, key)
                indexed += 1
        return indexed, rejected, failed

    def _discard(self) -> None:
        store = self._store
        self._window = None
        self._index = None
        self._store = None
        if store is not None:
            self.registry.dispose(store.name)

    def dispose(self) -> None:
        """Drop the current window and release its store."""
        self._discard()
