"""Validation utilities for the alncache package.

This module provides functions for validating BAM/CRAM inputs and computing
MD5 checksums of them.
"""

import hashlib
from pathlib import Path
from typing import Optional, Tuple

import pysam

INDEX_SUFFIXES = {
    ".bam": (".bai", ".csi"),
    ".cram": (".crai",),
}


def ensure_indexed(file_path: Path) -> None:
    """Ensure the alignment file has an index file (BAI/CSI for BAM, CRAI for CRAM)."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffixes = INDEX_SUFFIXES.get(path.suffix.lower(), (".bai", ".csi", ".crai"))
    candidates = [Path(str(path) + suffix) for suffix in suffixes]
    # samtools also accepts sample.bai next to sample.bam
    candidates += [path.with_suffix(suffix) for suffix in suffixes]

    if not any(candidate.exists() for candidate in candidates):
        raise RuntimeError(
            f"No index found for {file_path}. Use samtools index to create one."
        )


def validate_bam_header(bam_path: Path) -> Tuple[bool, Optional[str]]:
    """Validate that an alignment file is coordinate sorted and has reference sequences.

    Args:
        bam_path: Path to the BAM/CRAM file

    Returns:
        tuple: (is_valid, error_message)
    """
    try:
        with pysam.AlignmentFile(str(bam_path)) as alignments:
            header = alignments.header.to_dict()
    except (OSError, ValueError) as e:
        return False, f"Error reading alignment header: {e}"

    sort_order = header.get("HD", {}).get("SO")
    if sort_order != "coordinate":
        return False, f"Alignment file must be coordinate sorted (SO:{sort_order})"

    if not header.get("SQ"):
        return False, "No reference sequences (@SQ lines) found in header"

    return True, None


def compute_md5(file_path: Path) -> str:
    """Compute MD5 checksum for a file.

    Args:
        file_path: Path to the file to compute MD5 for

    Returns:
        MD5 checksum as a string
    """
    hash_md5 = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            hash_md5.update(chunk)
    return hash_md5.hexdigest()
