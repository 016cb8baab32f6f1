"""Alignment Overlap Cache.

Command line front end for scanning many nearby regions of an indexed
BAM/CRAM file through a sliding-window cache.

Commands:
- scan: count the alignments of every region in a BED file (or given with
  --region) and write one row per region as TSV or Parquet
- show-config: print the effective cache configuration as YAML
"""

import argparse
import dataclasses
import sys
from importlib.metadata import version as pkg_version
from pathlib import Path

import yaml

from alncache.cache import AlignmentCache, StoreRegistry
from alncache.config import CacheConfig, load_config
from alncache.outputs import write_region_counts
from alncache.regions import ContainmentMode, Region, read_bed_regions
from alncache.source import BamAlignmentSource
from alncache.utils.logging import log_command, setup_logging
from alncache.utils.validation import compute_md5, validate_bam_header


def _load_config(args: argparse.Namespace) -> CacheConfig:
    config = load_config(args.params) if args.params else CacheConfig()
    if getattr(args, "window_capacity", None) is not None:
        config.window_capacity = args.window_capacity
    if getattr(args, "store_directory", None) is not None:
        # same $VAR and ~ expansion as values read from YAML
        config = dataclasses.replace(config, store_directory=args.store_directory)
    config.validate()
    return config


def _collect_regions(args: argparse.Namespace) -> list:
    regions = [Region.parse(text) for text in args.region or []]
    if args.regions:
        regions.extend(read_bed_regions(args.regions))
    if not regions:
        raise ValueError("No regions given. Use -r/--regions BED and/or --region chrom:start-end")
    return regions


def scan(args: argparse.Namespace, logger) -> Path:
    """Stream every region through one cache and write the per-region counts."""
    config = _load_config(args)
    input_path = Path(args.i)

    is_valid, error = validate_bam_header(input_path)
    if not is_valid:
        sys.exit(f"Invalid input alignments: {error}")
    if args.md5:
        logger.info(f"Input file MD5: {compute_md5(input_path)}")

    regions = _collect_regions(args)
    mode = ContainmentMode.from_flag(args.fully_contained)
    logger.info(
        f"Scanning {len(regions)} regions of {input_path.name} "
        f"(window capacity {config.window_capacity} bp, {mode.value})"
    )

    rows = []
    config.ensure_store_directory()
    with StoreRegistry(
        config.store_directory,
        max_in_memory_entries=config.max_in_memory_entries,
        max_lifetime_seconds=config.max_entry_lifetime_seconds,
        logger=logger,
    ) as registry:
        registry.register_shutdown()
        with BamAlignmentSource(
            input_path, reference_filename=args.reference, logger=logger
        ) as source, AlignmentCache(
            source, config, registry=registry, logger=logger
        ) as cache:
            for region in regions:
                groups, alignments = cache.count(region, mode)
                rows.append(
                    {
                        "chrom": region.chrom,
                        "start": region.start,
                        "end": region.end,
                        "groups": groups,
                        "alignments": alignments,
                    }
                )
            logger.info(
                f"Cache statistics: {cache.stats.queries} queries, {cache.stats.hits} hits, "
                f"{cache.stats.refreshes} refreshes, {cache.stats.bypasses} bypasses, "
                f"{source.fetches} source fetches"
            )

    return write_region_counts(rows, Path(args.output), parquet=args.parquet, logger=logger)


def main() -> None:
    """Main entry point for the alncache command-line interface.

    Parses command-line arguments and executes the appropriate command.
    """
    parser = argparse.ArgumentParser(
        description="Answer many nearby region queries against a BAM/CRAM file through a sliding-window cache.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # Get version, fallback to __init__.py if package not installed
    try:
        version_str = pkg_version("alncache")
    except Exception:
        from alncache import __version__
        version_str = __version__

    parser.add_argument(
        "--version",
        action="version",
        version=version_str,
        help="Show version and exit",
    )

    # Create parent parser for shared arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="(optional) Increase verbosity: -v for INFO, -vv for DEBUG",
    )
    parent_parser.add_argument(
        "-y",
        "--yaml",
        dest="params",
        required=False,
        metavar="YAML",
        help="(optional) Cache configuration YAML (local path or http(s) URL)",
    )
    parent_parser.add_argument(
        "--log",
        dest="log",
        metavar="FILE",
        help="(optional) Also write log messages to this file",
    )

    subparsers = parser.add_subparsers(
        dest="command", required=True, title="Available commands", metavar="command"
    )

    scan_parser = subparsers.add_parser(
        "scan",
        help="Count alignments per region using the window cache",
        parents=[parent_parser],
        description=(
            "Query every region through a sliding-window cache and write one row per region "
            "with the number of alignment groups (distinct positions) and alignments. "
            "Regions should be sorted so that nearby queries reuse the cached window."
        ),
    )
    scan_parser.add_argument(
        "-i",
        "--input",
        dest="i",
        required=True,
        metavar="BAM",
        help="Indexed, coordinate sorted BAM/CRAM file",
    )
    scan_parser.add_argument(
        "-r",
        "--regions",
        dest="regions",
        metavar="BED",
        help="BED file with regions to query",
    )
    scan_parser.add_argument(
        "--region",
        dest="region",
        action="append",
        metavar="CHROM:START-END",
        help="Region to query (0-based, half-open); may be repeated",
    )
    scan_parser.add_argument(
        "-o",
        "--output",
        dest="output",
        default="region_counts.tsv",
        metavar="FILE",
        help="(optional) Output table (default: region_counts.tsv)",
    )
    scan_parser.add_argument(
        "-p",
        "--parquet",
        dest="parquet",
        action="store_true",
        default=False,
        help="(optional) Write the table as Parquet (requires pandas and pyarrow)",
    )
    scan_parser.add_argument(
        "--fully-contained",
        dest="fully_contained",
        action="store_true",
        default=False,
        help="(optional) Only count alignments lying fully inside each region",
    )
    scan_parser.add_argument(
        "-w",
        "--window-capacity",
        dest="window_capacity",
        type=int,
        metavar="BP",
        help="(optional) Override the configured window capacity",
    )
    scan_parser.add_argument(
        "-s",
        "--store-dir",
        dest="store_directory",
        metavar="DIR",
        help="(optional) Override the configured spool directory",
    )
    scan_parser.add_argument(
        "--reference",
        dest="reference",
        metavar="FASTA",
        help="(optional) Reference FASTA, needed for CRAM input",
    )
    scan_parser.add_argument(
        "--md5",
        dest="md5",
        action="store_true",
        default=False,
        help="(optional) Record the MD5 checksum of the input in the log",
    )

    subparsers.add_parser(
        "show-config",
        help="Print the effective configuration",
        parents=[parent_parser],
        description="Print the cache configuration (defaults merged with -y YAML) as YAML.",
    )

    args = parser.parse_args()

    logger = setup_logging(
        verbosity=args.verbose, log_file=Path(args.log) if args.log else None
    )
    log_command(logger)

    try:
        if args.command == "scan":
            output = scan(args, logger)
            print(f"Wrote region counts to {output}")

        elif args.command == "show-config":
            config = _load_config(args)
            print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="")

    except Exception as e:
        # Only log the top-level error without traceback - it will be shown by the raise
        logger.error(f"Error during execution: {e}")
        raise


if __name__ == "__main__":
    main()
