"""Shared pytest fixtures for alncache tests."""

import shutil
import tempfile
from pathlib import Path

import pysam
import pytest

from alncache.cache import AlignmentCache, StoreRegistry
from alncache.config import CacheConfig
from alncache.records import AlignmentRecord
from alncache.regions import ContainmentMode

REPO_ROOT = Path(__file__).resolve().parent.parent

CONTIGS = [("chr1", 100_000), ("chr2", 50_000)]

# (name, chrom, start, length, flag, mapq), sorted by coordinate
BAM_READS = [
    ("r1", "chr1", 100, 50, 0, 60),
    ("r2", "chr1", 120, 50, 0, 60),
    ("dup1", "chr1", 200, 50, 0x400, 60),
    ("sec1", "chr1", 300, 50, 0x100, 0),
    ("r3", "chr1", 900, 100, 0, 60),
    ("r4", "chr1", 1500, 100, 0, 60),
    ("r5", "chr2", 10, 40, 0, 60),
]


def make_record(name, start, end, chrom="chr1", flag=0, mapq=60):
    """Detached alignment record without a backing SAM line."""
    return AlignmentRecord(
        query_name=name,
        reference_name=chrom,
        reference_start=start,
        reference_end=end,
        flag=flag,
        mapping_quality=mapq,
        cigarstring=f"{end - start}M",
        sam="",
    )


class FakeSource:
    """In-memory alignment source recording every query it receives."""

    def __init__(self, records):
        self.records = list(records)
        self.queries = []
        self.error = None

    @property
    def fetches(self):
        return len(self.queries)

    def query(self, region, mode):
        self.queries.append((region, mode))
        for record in self.records:
            if self.error is not None:
                raise self.error
            if record.reference_name != region.chrom:
                continue
            if mode is ContainmentMode.FULLY_CONTAINED:
                if region.contains(record.reference_start, record.reference_end):
                    yield record
            elif region.overlaps(record.reference_start, record.reference_end):
                yield record


def write_bam(path, reads, sort_order="coordinate", index=True):
    header = {
        "HD": {"VN": "1.6", "SO": sort_order},
        "SQ": [{"SN": name, "LN": length} for name, length in CONTIGS],
    }
    with pysam.AlignmentFile(str(path), "wb", header=header) as out:
        for name, chrom, start, length, flag, mapq in reads:
            segment = pysam.AlignedSegment(out.header)
            segment.query_name = name
            segment.reference_name = chrom
            segment.reference_start = start
            segment.cigarstring = f"{length}M"
            segment.query_sequence = "A" * length
            segment.query_qualities = pysam.qualitystring_to_array("I" * length)
            segment.flag = flag
            segment.mapping_quality = mapq
            out.write(segment)
    if index:
        pysam.index(str(path))
    return Path(path)


@pytest.fixture
def bam_file(tmp_path):
    """Small coordinate sorted and indexed BAM file."""
    return write_bam(tmp_path / "reads.bam", BAM_READS)


@pytest.fixture
def cache_config(tmp_path):
    return CacheConfig(
        window_capacity=1000,
        store_directory=tmp_path / "spool",
        max_entry_lifetime_seconds=3600,
        max_in_memory_entries=1000,
    )


@pytest.fixture
def registry(cache_config):
    with StoreRegistry(
        cache_config.store_directory,
        max_in_memory_entries=cache_config.max_in_memory_entries,
        max_lifetime_seconds=cache_config.max_entry_lifetime_seconds,
    ) as registry:
        yield registry


@pytest.fixture
def scan_records():
    """Records spread along chr1 plus one on chr2."""
    return [
        make_record("a", 100, 150),
        make_record("b", 100, 150),
        make_record("c", 140, 400),
        make_record("d", 1000, 1100),
        make_record("e", 1120, 1200),
        make_record("f", 1900, 2000),
        make_record("g", 900, 940),
        make_record("h", 10, 60, chrom="chr2"),
    ]


@pytest.fixture
def fake_source(scan_records):
    return FakeSource(scan_records)


@pytest.fixture
def cache(fake_source, cache_config, registry):
    with AlignmentCache(fake_source, cache_config, registry=registry) as cache:
        yield cache


# This hook is needed to properly track test results
@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    # Execute all other hooks to obtain the report object
    outcome = yield
    rep = outcome.get_result()

    # Set a report attribute for each phase of a call
    setattr(item, f"rep_{rep.when}", rep)


@pytest.fixture
def test_output_dir(request):
    """Provides a path for a directory that doesn't exist yet.
    If the test fails, the directory is NOT removed and a big warning is printed.
    """
    temp_dir = Path(tempfile.mkdtemp(prefix="alncache_test_"))

    # Remove the directory immediately - alncache will create it
    temp_dir.rmdir()

    yield temp_dir

    if hasattr(request.node, "rep_call") and request.node.rep_call.passed:
        if temp_dir.exists():
            shutil.rmtree(temp_dir, ignore_errors=True)
    else:
        if temp_dir.exists():
            banner = "\n" + "=" * 80
            print(
                f"{banner}\n"
                f"TEST FAILED! Temporary directory NOT removed for forensic analysis:\n"
                f"    {temp_dir}\n"
                f"Please clean up manually after investigation.\n"
                f"{banner}\n"
            )
