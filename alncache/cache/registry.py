"""Ownership of record stores across a process.

Every :class:`RecordStore` is created through a :class:`StoreRegistry`, which
hands out identifiers that are unique among all stores it ever created and
keeps the live ones so that they can all be released at shutdown. The host
process registers the teardown exactly once, either with
:meth:`StoreRegistry.register_shutdown` or by using the registry as a context
manager.
"""

from __future__ import annotations

import atexit
import itertools
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from alncache.cache.store import RecordStore


class StoreRegistry:
    """Creates uniquely named record stores and disposes of them.

    Args:
        store_directory: Spool root; each store spills into a subdirectory named after it.
        max_in_memory_entries: In-memory capacity given to every new store.
        max_lifetime_seconds: Entry lifetime given to every new store.
        prefix: Prefix of generated store identifiers.
    """

    def __init__(
        self,
        store_directory: Path | str,
        max_in_memory_entries: int,
        max_lifetime_seconds: float,
        prefix: str = "alncache",
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store_directory = Path(store_directory)
        self.max_in_memory_entries = max_in_memory_entries
        self.max_lifetime_seconds = max_lifetime_seconds
        self.prefix = prefix
        self.logger = logger or logging.getLogger(__name__)

        self._clock = clock
        self._sequence = itertools.count()
        self._live: Dict[str, RecordStore] = {}
        self._created: List[str] = []
        self._lock = threading.Lock()
        self._shutdown_registered = False
        self._closed = False

    @property
    def live_names(self) -> List[str]:
        """Identifiers of stores created and not yet disposed."""
        with self._lock:
            return list(self._live)

    @property
    def created_names(self) -> List[str]:
        """Identifiers of every store this registry ever created, in creation order."""
        with self._lock:
            return list(self._created)

    def _new_name(self) -> str:
        stamp = int(time.time() * 1000)
        while True:
            name = f"{self.prefix}_{stamp}_{os.getpid()}_{next(self._sequence)}"
            if name not in self._created:
                return name

    def create_store(self) -> RecordStore:
        """Create and register a new, empty record store."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot create a store after dispose_all() was called")
            name = self._new_name()
            store = RecordStore(
                name,
                self.store_directory,
                max_in_memory_entries=self.max_in_memory_entries,
                max_lifetime_seconds=self.max_lifetime_seconds,
                clock=self._clock,
                logger=self.logger,
            )
            self._live[name] = store
            self._created.append(name)
        self.logger.debug(f"Created store {name}")
        return store

    def get(self, name: str) -> Optional[RecordStore]:
        with self._lock:
            return self._live.get(name)

    def dispose(self, name: str) -> None:
        """Dispose of one store. Unknown names and failures are logged, never raised."""
        with self._lock:
            store = self._live.pop(name, None)
        if store is None:
            self.logger.debug(f"Store {name} is not live, nothing to dispose")
            return
        try:
            store.dispose()
        except Exception as e:
            self.logger.warning(f"Failure to dispose store {name}: {e}")

    def dispose_all(self) -> None:
        """Dispose of every live store. Later calls are no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            names = list(self._live)
        for name in names:
            self.logger.info(f"Shutting down store {name}")
            self.dispose(name)

    def register_shutdown(self) -> None:
        """Arrange for :meth:`dispose_all` to run at interpreter exit (once)."""
        if self._shutdown_registered:
            return
        atexit.register(self.dispose_all)
        self._shutdown_registered = True

    def __enter__(self) -> "StoreRegistry":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose_all()
