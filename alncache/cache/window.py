"""The cached coordinate window and the policy that picks the next one."""

from __future__ import annotations

import dataclasses
from typing import Optional, Tuple

from alncache.errors import WindowCapacityError
from alncache.regions import ContainmentMode, Region


@dataclasses.dataclass(frozen=True)
class Window:
    """Chromosome span currently held by a cache, and the mode it was fetched with."""

    chrom: str
    start: int
    end: int
    mode: ContainmentMode

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def region(self) -> Region:
        return Region(self.chrom, self.start, self.end)

    def covers(self, region: Region) -> bool:
        """True if ``region`` lies on this window's chromosome and inside its bounds."""
        return (
            region.chrom == self.chrom
            and self.start <= region.start
            and region.end <= self.end
        )

    def serves(self, region: Region, mode: ContainmentMode) -> bool:
        """True if a query for ``region`` with ``mode`` can be answered from this window."""
        return mode == self.mode and self.covers(region)

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end} ({self.mode.value})"


def next_window_bounds(
    current: Optional[Window],
    chrom: str,
    start: int,
    end: int,
    capacity: int,
) -> Tuple[int, int]:
    """Pick the bounds of the window that replaces ``current`` for a request ``[start, end)``.

    Without a current window, or when the chromosome changes, the new window
    is exactly the requested span. On the same chromosome a request running
    past the window end slides it forward to ``[start, start + capacity)``; a
    request starting before the window slides it backward to
    ``[end - capacity, end)``. Otherwise (only a mode change) the bounds are
    kept.

    Raises:
        WindowCapacityError: If the request is larger than ``capacity``.
    """
    if end - start > capacity:
        raise WindowCapacityError(
            f"Requested window {chrom}:{start}-{end} ({end - start} bp) exceeds capacity of {capacity} bp"
        )

    # TODO: extend the window on a chromosome change as well once the
    # scanning callers agree that the first window per chromosome may be wider.
    if current is None or chrom != current.chrom:
        return start, end

    if end > current.end:
        return start, start + capacity
    if start < current.start:
        return end - capacity, end
    return current.start, current.end
