"""Windowed alignment overlap cache.

alncache answers repeated "which alignments overlap this region" queries
against a coordinate-sorted BAM/CRAM file without rescanning the file for
every query. A sliding coordinate window is fetched once, indexed in an
interval tree and kept in a bounded record store that spills to disk, so
nearby queries issued while scanning a genome are served from memory.
"""

__version__ = "0.1.0"

# Package-wide defaults
DEFAULT_WINDOW_CAPACITY = 100_000
DEFAULT_MAX_ENTRY_LIFETIME_SECONDS = 7200
DEFAULT_MAX_IN_MEMORY_ENTRIES = 300_000
