"""Query entry point: bypass, refresh or serve from the cached window."""

from __future__ import annotations

import dataclasses
import enum
import logging
from contextlib import closing
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from alncache.cache.interval_tree import IntervalNode
from alncache.cache.manager import WindowManager
from alncache.cache.registry import StoreRegistry
from alncache.cache.store import RecordStore
from alncache.cache.window import Window
from alncache.config import CacheConfig
from alncache.errors import CacheDisposedError
from alncache.records import AlignmentGroup
from alncache.regions import ContainmentMode, Region
from alncache.source import AlignmentSource, ReadFilter


class CacheState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISPOSED = "disposed"


@dataclasses.dataclass
class CacheStats:
    queries: int = 0
    hits: int = 0
    refreshes: int = 0
    bypasses: int = 0
    stale_keys: int = 0


class AlignmentCache:
    """Sliding-window cache answering overlap queries against an alignment source.

    Each query is classified when :meth:`query` is called:

    - regions wider than ``window_capacity`` bypass the cache and stream from the source,
    - regions outside the current window, or asked with a different containment
      mode, replace the window first,
    - everything else is answered from the interval index and record store.

    The cache is not safe for concurrent use while a window is being replaced;
    callers sharing one instance between threads must serialise their queries.

    Example:
        >>> with BamAlignmentSource("sample.bam") as source, AlignmentCache(source) as cache:
        ...     for group in cache.query(Region("chr1", 10_000, 10_200)):
        ...         print(group.representative.query_name, group.count)
    """

    def __init__(
        self,
        source: AlignmentSource,
        config: Optional[CacheConfig] = None,
        registry: Optional[StoreRegistry] = None,
        is_valid: Optional[Callable[[Any], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config if config is not None else CacheConfig()
        self.config.validate()
        self.config.ensure_store_directory()
        self.logger = logger or logging.getLogger(__name__)

        self._owns_registry = registry is None
        if registry is None:
            registry = StoreRegistry(
                self.config.store_directory,
                max_in_memory_entries=self.config.max_in_memory_entries,
                max_lifetime_seconds=self.config.max_entry_lifetime_seconds,
                logger=self.logger,
            )
            # caches that are never disposed still release their spool at exit
            registry.register_shutdown()
        self.registry = registry

        if is_valid is None:
            is_valid = ReadFilter.from_dict(self.config.read_filter)
        self.source = source
        self.manager = WindowManager(
            source,
            registry,
            window_capacity=self.config.window_capacity,
            is_valid=is_valid,
            logger=self.logger,
        )
        self.stats = CacheStats()
        self._disposed = False

    @property
    def window_capacity(self) -> int:
        return self.config.window_capacity

    @property
    def window(self) -> Optional[Window]:
        return self.manager.window

    @property
    def state(self) -> CacheState:
        if self._disposed:
            return CacheState.DISPOSED
        if self.manager.window is None:
            return CacheState.UNINITIALIZED
        return CacheState.ACTIVE

    def query(
        self,
        region: Union[Region, str],
        mode: ContainmentMode = ContainmentMode.ANY_OVERLAP,
    ) -> Iterator[AlignmentGroup]:
        """Return a one-shot iterator over the alignment groups of ``region``.

        Args:
            region: Region to query, or a ``chrom:start-end`` string.
            mode: Whether records must lie fully inside the region or only overlap it.

        Raises:
            CacheDisposedError: If the cache was disposed.
        """
        if self._disposed:
            raise CacheDisposedError("Cannot query a disposed AlignmentCache")
        if isinstance(region, str):
            region = Region.parse(region)
        self.stats.queries += 1

        if region.size > self.window_capacity:
            self.stats.bypasses += 1
            self.logger.debug(
                f"Region {region} ({region.size} bp) exceeds window capacity, reading from source"
            )
            return self._stream(region, mode)

        window = self.manager.window
        if window is None or not window.serves(region, mode):
            self.manager.refresh(region.chrom, region.start, region.end, mode)
            self.stats.refreshes += 1
        else:
            self.stats.hits += 1

        nodes = self.manager.index.overlappers(region.start, region.end)
        if mode is ContainmentMode.FULLY_CONTAINED:
            nodes = [node for node in nodes if region.contains(node.start, node.end)]
        return self._groups(nodes, self.manager.store)

    def count(
        self,
        region: Union[Region, str],
        mode: ContainmentMode = ContainmentMode.ANY_OVERLAP,
    ) -> Tuple[int, int]:
        """Number of groups and of alignments returned for ``region``."""
        groups = alignments = 0
        for group in self.query(region, mode):
            groups += 1
            alignments += group.count
        return groups, alignments

    def _stream(self, region: Region, mode: ContainmentMode) -> Iterator[AlignmentGroup]:
        with closing(self.source.query(region, mode)) as records:
            for record in records:
                yield AlignmentGroup.single(record)

    def _groups(
        self, nodes: List[IntervalNode], store: RecordStore
    ) -> Iterator[AlignmentGroup]:
        for node in nodes:
            alignments = []
            for key in node.keys:
                record = store.get(key)
                if record is None:
                    # evicted or expired since the window was filled
                    self.stats.stale_keys += 1
                    self.logger.debug(f"Key {key} no longer in store {store.name}")
                    continue
                alignments.append(record)
            if alignments:
                yield AlignmentGroup(alignments[0], tuple(alignments))

    def dispose(self) -> None:
        """Release the current window. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self.manager.dispose()
        if self._owns_registry:
            self.registry.dispose_all()
        self.logger.debug(f"Disposed cache: {self.stats}")

    def __enter__(self) -> "AlignmentCache":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()
