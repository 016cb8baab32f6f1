"""Capacity and lifetime bounded record store with disk spill-over.

A :class:`RecordStore` keeps the most recently used records in memory. Once
more than ``max_in_memory_entries`` records are held, the least recently used
ones are moved to a :class:`diskcache.Cache` living in a per-store directory.
Every record carries the time it was put; after ``max_lifetime_seconds`` it is
treated as gone whether it sits in memory or on disk.

The store is a best-effort cache. Reads never raise: a missing, expired or
disposed entry simply reads as ``None``.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Hashable, Optional, Tuple

import diskcache

from alncache.errors import StoreError


class RecordStore:
    """Key -> record store with LRU spill to disk and a maximum entry lifetime.

    Attributes:
        name: Unique identifier of this store; also the name of its spool directory.
        directory: Spool directory used once entries are spilled to disk.
        max_in_memory_entries: Number of entries kept in memory before spilling.
        max_lifetime_seconds: Lifetime of an entry, counted from its ``put``.
    """

    def __init__(
        self,
        name: str,
        store_directory: Path | str,
        max_in_memory_entries: int,
        max_lifetime_seconds: float,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.directory = Path(store_directory) / name
        self.logger = logger or logging.getLogger(__name__)
        # everything dispose() touches is set before the limits are checked
        self._lock = threading.RLock()
        self._disposed = False
        self._memory: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._disk: Optional[diskcache.Cache] = None

        if max_in_memory_entries < 1:
            raise ValueError(f"max_in_memory_entries must be positive, got {max_in_memory_entries}")
        if max_lifetime_seconds <= 0:
            raise ValueError(f"max_lifetime_seconds must be positive, got {max_lifetime_seconds}")

        self.max_in_memory_entries = max_in_memory_entries
        self.max_lifetime_seconds = max_lifetime_seconds
        self._clock = clock
        self.spilled = 0
        self.spill_failures = 0

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __len__(self) -> int:
        """Number of entries currently held in memory and on disk (expired ones included)."""
        with self._lock:
            on_disk = len(self._disk) if self._disk is not None else 0
            return len(self._memory) + on_disk

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def put(self, key: Hashable, record: Any) -> None:
        """Store ``record`` under ``key``.

        Raises:
            StoreError: If the store is disposed or the record cannot be stored.
        """
        with self._lock:
            if self._disposed:
                raise StoreError(f"Cannot write {key} to disposed store {self.name}")
            try:
                if self._disk is not None:
                    self._disk.delete(key)
                self._memory[key] = (record, self._clock())
            except Exception as e:
                raise StoreError(f"Failure to add {key} to store {self.name}: {e}") from e
            self._memory.move_to_end(key)
            self._spill()

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the record stored under ``key`` or None if absent, expired or disposed."""
        with self._lock:
            if self._disposed:
                self.logger.debug(f"Read of {key} from disposed store {self.name}")
                return None

            entry = self._memory.get(key)
            if entry is not None:
                record, created = entry
                if self._expired(created):
                    del self._memory[key]
                    return None
                self._memory.move_to_end(key)
                return record

            return self._promote(key)

    def _expired(self, created: float) -> bool:
        return self._clock() - created >= self.max_lifetime_seconds

    def _promote(self, key: Hashable) -> Optional[Any]:
        """Move a disk entry back into memory (swap pattern)."""
        if self._disk is None:
            return None
        try:
            entry = self._disk.get(key, default=None)
        except Exception as e:
            self.logger.warning(f"Failed to read {key} from spool of store {self.name}: {e}")
            return None
        if entry is None:
            return None

        record, created = entry
        try:
            self._disk.delete(key)
        except Exception as e:
            # a stale spool copy is overwritten or expires on its own
            self.logger.warning(f"Failed to remove {key} from spool of store {self.name}: {e}")
        if self._expired(created):
            return None
        self._memory[key] = (record, created)
        self._spill()
        return record

    def _spill(self) -> None:
        """Move least recently used entries to disk until memory is within capacity.

        An entry that cannot be written to disk is dropped; later reads of it
        are ordinary misses.
        """
        while len(self._memory) > self.max_in_memory_entries:
            key, (record, created) = self._memory.popitem(last=False)
            remaining = self.max_lifetime_seconds - (self._clock() - created)
            if remaining <= 0:
                continue
            try:
                self._open_disk().set(key, (record, created), expire=remaining)
            except Exception as e:
                self.spill_failures += 1
                self.logger.warning(f"Failure to spill {key} to store {self.name}: {e}")
                continue
            self.spilled += 1

    def _open_disk(self) -> diskcache.Cache:
        if self._disk is None:
            self.logger.debug(f"Opening spool for store {self.name}: {self.directory}")
            self._disk = diskcache.Cache(str(self.directory))
        return self._disk

    def dispose(self) -> None:
        """Release memory and spool files of this store. Safe to call repeatedly."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._memory.clear()
            disk, self._disk = self._disk, None

        if disk is not None:
            try:
                disk.close()
            except Exception as e:
                self.logger.warning(f"Failure to close spool of store {self.name}: {e}")
        if self.directory.exists():
            try:
                shutil.rmtree(self.directory)
            except OSError as e:
                self.logger.warning(f"Failure to remove spool directory {self.directory}: {e}")
        self.logger.debug(f"Disposed store {self.name}")

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{len(self._memory)} in memory"
        return f"RecordStore({self.name!r}, {state})"
