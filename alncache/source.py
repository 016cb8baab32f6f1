"""Alignment sources and the validity filter applied while filling a window.

The cache only needs two things from the outside world: a source that can be
queried for the records of a region, and a predicate telling which records
are worth caching. :class:`BamAlignmentSource` provides the former on top of
an indexed BAM/CRAM file through pysam; :class:`ReadFilter` is the default
predicate.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol

import pysam

from alncache.records import AlignmentRecord
from alncache.regions import ContainmentMode, Region
from alncache.utils.validation import ensure_indexed


class AlignmentSource(Protocol):
    """Anything that can stream the records of a region.

    The returned iterator is closed by the caller (``contextlib.closing``) once
    it is no longer needed, so generators are the natural implementation.
    """

    def query(self, region: Region, mode: ContainmentMode) -> Iterator[Any]:
        ...


@dataclasses.dataclass
class ReadFilter:
    """Validity predicate for alignments entering the cache.

    Attributes:
        min_mapping_quality: Reads below this MAPQ are rejected.
        skip_secondary: Reject secondary alignments.
        skip_supplementary: Reject supplementary alignments.
        skip_qcfail: Reject reads failing vendor quality checks.
        skip_duplicates: Reject PCR/optical duplicates.
    """

    min_mapping_quality: int = 0
    skip_secondary: bool = False
    skip_supplementary: bool = False
    skip_qcfail: bool = True
    skip_duplicates: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ReadFilter":
        data = data or {}
        fields = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - fields
        if unknown:
            raise ValueError(f"Unknown read_filter option(s): {', '.join(sorted(unknown))}")
        return cls(**data)

    def __call__(self, record: Any) -> bool:
        if record.is_unmapped or record.reference_end is None:
            return False
        if record.mapping_quality < self.min_mapping_quality:
            return False
        if self.skip_secondary and record.is_secondary:
            return False
        if self.skip_supplementary and record.is_supplementary:
            return False
        if self.skip_qcfail and record.is_qcfail:
            return False
        if self.skip_duplicates and record.is_duplicate:
            return False
        return True


class BamAlignmentSource:
    """Indexed BAM/CRAM file queried by region.

    Records are yielded as :class:`AlignmentRecord` snapshots so that they can
    be pickled into a record store. Regions may start before position 0 (a
    window slid backwards near a chromosome start); such starts are clamped.
    """

    def __init__(
        self,
        path: Path | str,
        reference_filename: Optional[Path | str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = Path(path).expanduser().resolve()
        self.logger = logger or logging.getLogger(__name__)
        ensure_indexed(self.path)

        self.logger.debug(f"Opening alignment file: {self.path}")
        self._alignments = pysam.AlignmentFile(
            str(self.path),
            reference_filename=str(reference_filename) if reference_filename else None,
        )
        self.fetches = 0

    @property
    def header(self) -> pysam.AlignmentHeader:
        return self._alignments.header

    @property
    def references(self) -> tuple:
        return self._alignments.references

    def query(self, region: Region, mode: ContainmentMode) -> Iterator[AlignmentRecord]:
        """Yield records overlapping (or, for FULLY_CONTAINED, inside) ``region``."""
        start = max(0, region.start)
        if region.end <= start:
            return
        if region.chrom not in self._alignments.references:
            self.logger.debug(f"Contig {region.chrom} not present in {self.path.name}")
            return

        self.fetches += 1
        for segment in self._alignments.fetch(
            region.chrom, start, region.end, multiple_iterators=True
        ):
            if mode is ContainmentMode.FULLY_CONTAINED:
                if segment.reference_end is None:
                    continue
                if not region.contains(segment.reference_start, segment.reference_end):
                    continue
            yield AlignmentRecord.from_segment(segment)

    def close(self) -> None:
        self._alignments.close()

    def __enter__(self) -> "BamAlignmentSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
