"""Genomic regions and containment modes used by the cache."""

from __future__ import annotations

import dataclasses
import enum
import re
from pathlib import Path
from typing import Iterator

_REGION_RE = re.compile(r"^(?P<chrom>[^:\s]+):(?P<start>[\d,]+)-(?P<end>[\d,]+)$")


class ContainmentMode(enum.Enum):
    """How a record has to relate to a queried region to be returned."""

    FULLY_CONTAINED = "fully_contained"
    ANY_OVERLAP = "any_overlap"

    @classmethod
    def from_flag(cls, fully_contained: bool) -> "ContainmentMode":
        return cls.FULLY_CONTAINED if fully_contained else cls.ANY_OVERLAP


@dataclasses.dataclass(frozen=True)
class Region:
    """A 0-based, half-open interval ``[start, end)`` on one chromosome."""

    chrom: str
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"Region end must not be smaller than start: {self.chrom}:{self.start}-{self.end}"
            )

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, start: int, end: int) -> bool:
        """True if ``[start, end)`` lies completely inside this region."""
        return self.start <= start and end <= self.end

    def overlaps(self, start: int, end: int) -> bool:
        return start < self.end and end > self.start

    @classmethod
    def parse(cls, text: str) -> "Region":
        """Parse ``chr1:1000-2000`` (commas allowed in coordinates)."""
        match = _REGION_RE.match(text.strip())
        if not match:
            raise ValueError(f"Invalid region string: {text!r} (expected chrom:start-end)")
        return cls(
            match.group("chrom"),
            int(match.group("start").replace(",", "")),
            int(match.group("end").replace(",", "")),
        )

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}"


def read_bed_regions(path: Path | str) -> Iterator[Region]:
    """Yield the regions of a BED file (first three columns, 0-based half-open).

    Comment, ``track`` and ``browser`` lines are skipped.
    """
    with open(path, "r") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip() or line.startswith(("#", "track", "browser")):
                continue
            cols = line.rstrip("\n").split("\t")
            if len(cols) < 3:
                raise ValueError(f"{path}:{line_no}: expected at least 3 tab-separated columns")
            try:
                yield Region(cols[0], int(cols[1]), int(cols[2]))
            except ValueError as e:
                raise ValueError(f"{path}:{line_no}: {e}") from e
