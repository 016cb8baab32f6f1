"""Alignment records held by the cache and the groups queries return."""

from __future__ import annotations

import dataclasses
from typing import Any, Optional, Tuple

import pysam

# SAM flag bits
FLAG_UNMAPPED = 0x4
FLAG_SECONDARY = 0x100
FLAG_QCFAIL = 0x200
FLAG_DUPLICATE = 0x400
FLAG_SUPPLEMENTARY = 0x800


def record_key(record: Any) -> str:
    """Signature identifying one alignment: ``name-start:end``.

    Works for :class:`AlignmentRecord` and for raw :class:`pysam.AlignedSegment`.
    """
    return f"{record.query_name}-{record.reference_start}:{record.reference_end}"


@dataclasses.dataclass(frozen=True)
class AlignmentRecord:
    """Picklable snapshot of one aligned read.

    ``pysam.AlignedSegment`` objects are bound to the file header they were
    read with, so the cache stores this detached copy instead. The full SAM
    line is kept so the original segment can be rebuilt with
    :meth:`to_segment`.
    """

    query_name: str
    reference_name: Optional[str]
    reference_start: int
    reference_end: Optional[int]
    flag: int
    mapping_quality: int
    cigarstring: Optional[str]
    sam: str

    @classmethod
    def from_segment(cls, segment: pysam.AlignedSegment) -> "AlignmentRecord":
        return cls(
            query_name=segment.query_name,
            reference_name=segment.reference_name,
            reference_start=segment.reference_start,
            reference_end=segment.reference_end,
            flag=segment.flag,
            mapping_quality=segment.mapping_quality,
            cigarstring=segment.cigarstring,
            sam=segment.to_string(),
        )

    def to_segment(self, header: pysam.AlignmentHeader) -> pysam.AlignedSegment:
        return pysam.AlignedSegment.fromstring(self.sam, header)

    @property
    def is_unmapped(self) -> bool:
        return bool(self.flag & FLAG_UNMAPPED)

    @property
    def is_secondary(self) -> bool:
        return bool(self.flag & FLAG_SECONDARY)

    @property
    def is_supplementary(self) -> bool:
        return bool(self.flag & FLAG_SUPPLEMENTARY)

    @property
    def is_qcfail(self) -> bool:
        return bool(self.flag & FLAG_QCFAIL)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.flag & FLAG_DUPLICATE)

    @property
    def key(self) -> str:
        return record_key(self)


@dataclasses.dataclass(frozen=True)
class AlignmentGroup:
    """Alignments sharing one position, with the first of them as representative."""

    representative: Any
    alignments: Tuple[Any, ...]

    @property
    def count(self) -> int:
        return len(self.alignments)

    @property
    def start(self) -> int:
        return self.representative.reference_start

    @property
    def end(self) -> int:
        return self.representative.reference_end

    @classmethod
    def single(cls, record: Any) -> "AlignmentGroup":
        return cls(record, (record,))
