"""Interval index over the records of one cached window.

Overlap search is delegated to :class:`intervaltree.IntervalTree`. Records that
share identical bounds share one indexed interval; their keys are kept in
insertion order so that repeated queries return keys in a stable order.

Intervals are half-open: ``[start, end)``. Zero-length intervals (reads
without reference-consuming operations) cannot live in an
``intervaltree.IntervalTree`` and are kept aside; they overlap a query when
their position lies strictly inside it.
"""

from __future__ import annotations

from typing import Dict, Hashable, Iterator, List, NamedTuple, Optional, Set, Tuple

import intervaltree

Bounds = Tuple[int, int]


class IntervalNode(NamedTuple):
    """One indexed interval and the keys of every record stored on it."""

    start: int
    end: int
    keys: Tuple[Hashable, ...]


class IntervalTree:
    """Interval index mapping ``[start, end)`` to the set of record keys stored there.

    Example:
        >>> tree = IntervalTree()
        >>> tree.insert(100, 200, "read1-100:200")
        >>> tree.insert(100, 200, "read2-100:200")
        >>> tree.insert(150, 400, "read3-150:400")
        >>> [node.keys for node in tree.overlappers(180, 190)]
        [('read1-100:200', 'read2-100:200'), ('read3-150:400',)]
    """

    def __init__(self) -> None:
        self._tree = intervaltree.IntervalTree()
        self._keys: Dict[Bounds, Dict[Hashable, None]] = {}
        self._empty: Set[Bounds] = set()
        self._key_count = 0

    def __len__(self) -> int:
        """Number of distinct intervals in the index."""
        return len(self._keys)

    @property
    def key_count(self) -> int:
        """Number of keys stored across all intervals."""
        return self._key_count

    def insert(self, start: int, end: int, key: Hashable) -> None:
        """Add ``key`` on ``[start, end)``, reusing the interval if the bounds already exist."""
        if end < start:
            raise ValueError(f"Interval end must not be smaller than start: [{start}, {end})")

        bounds = (start, end)
        keys = self._keys.get(bounds)
        if keys is None:
            keys = self._keys[bounds] = {}
            if start == end:
                self._empty.add(bounds)
            else:
                self._tree.addi(start, end, bounds)
        if key not in keys:
            keys[key] = None
            self._key_count += 1

    def _node(self, bounds: Bounds) -> IntervalNode:
        return IntervalNode(bounds[0], bounds[1], tuple(self._keys[bounds]))

    def find(self, start: int, end: int) -> Optional[IntervalNode]:
        """Return the interval with exactly these bounds, if any."""
        if (start, end) not in self._keys:
            return None
        return self._node((start, end))

    def overlappers(self, start: int, end: int) -> List[IntervalNode]:
        """All intervals intersecting ``[start, end)``, ordered by ``(start, end)``."""
        hits = [match.data for match in self._tree.overlap(start, end)]
        hits.extend(b for b in self._empty if b[0] < end and b[1] > start)
        return [self._node(bounds) for bounds in sorted(hits)]

    def __iter__(self) -> Iterator[IntervalNode]:
        for bounds in sorted(self._keys):
            yield self._node(bounds)

    def span(self) -> Optional[Tuple[int, int]]:
        """Smallest start and largest end over all intervals, or None when empty."""
        if not self._keys:
            return None
        return min(b[0] for b in self._keys), max(b[1] for b in self._keys)
