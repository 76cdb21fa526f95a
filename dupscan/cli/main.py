#!/usr/bin/env python3
"""
dupscan - Parallel Duplicate File Finder

Features:
- Parallel hashing with a bounded worker pool
- Multiple hash algorithms (MD5, SHA1, SHA256, SHA512, BLAKE2b, xxHash)
- Content-addressed duplicate index with reclaimable-space statistics
- Per-file failure isolation: partial runs still report full results
- Optional hashing timeout and Ctrl-C cancellation
- Progress tracking
- Export to CSV/JSON
- Single vs multi-thread speedup measurement
"""

import argparse
import csv
import json
import logging
import sys
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from dupscan import __version__
from dupscan.core.config import ScanConfig
from dupscan.core.errors import ConfigurationError
from dupscan.core.grouping import summarize_groups
from dupscan.core.hasher import ALGORITHMS, NON_CRYPTOGRAPHIC
from dupscan.core.models import DuplicateGroup
from dupscan.core.pipeline import DuplicatePipeline, PipelineResult
from dupscan.core.worker_pool import ProgressEvent, default_workers

# ---------------------------
# Logging Configuration
# ---------------------------
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s: %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

# ---------------------------
# Utility Functions
# ---------------------------

def format_size(bytes_val: float) -> str:
    """Format bytes as human readable"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_val < 1024.0:
            return f"{bytes_val:.1f} {unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.1f} PB"


def parse_size(size_str: str) -> int:
    """Parse human-readable size"""
    size_str = size_str.strip().upper()

    # Longer suffixes first so 'B' does not match 'MB'
    multipliers = [
        ('TB', 1024**4),
        ('GB', 1024**3),
        ('MB', 1024**2),
        ('KB', 1024),
        ('B', 1),
    ]

    try:
        for suffix, multiplier in multipliers:
            if size_str.endswith(suffix):
                number = size_str[:-len(suffix)].strip()
                return int(float(number) * multiplier)
        return int(size_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {size_str!r}")


def log_progress(event: ProgressEvent) -> None:
    """Progress callback for the worker pool"""
    parts = [
        f"Files: {event.completed:,}/{event.total:,} ({event.percent:.1f}%)",
        f"Rate: {event.rate:.1f}/s",
        f"Time: {timedelta(seconds=int(event.elapsed))}",
    ]
    if event.bytes_hashed > 0:
        mb_read = event.bytes_hashed / (1024 * 1024)
        mb_rate = mb_read / event.elapsed if event.elapsed > 0 else 0
        parts.append(f"Read: {mb_read:.1f}MB ({mb_rate:.1f}MB/s)")
    if event.failed:
        parts.append(f"Failed: {event.failed:,}")
    logger.info(" | ".join(parts))

# ---------------------------
# Report Generator
# ---------------------------

def generate_report(result: PipelineResult, show_failures: bool = False, top: int = 5) -> None:
    """Print a human-readable summary of a finished run"""
    stats = result.stats

    print("\n" + "="*70)
    print("DUPSCAN REPORT")
    print("="*70)

    if not result.succeeded:
        print(f"\nScan failed: {result.error}")
        return

    statistics = result.statistics
    print(f"\nScan Summary:")
    print(f"  Root: {result.root}")
    print(f"  Duration: {timedelta(seconds=int(stats.get_duration()))}")
    print(f"  Files discovered: {stats.files_discovered:,}")
    print(f"  Files hashed: {result.processed:,}")
    print(f"  Files failed: {result.failed:,}")
    print(f"  Total size: {format_size(statistics.total_bytes)}")

    print(f"\nPhase Timing:")
    for phase, seconds in result.timings.items():
        print(f"  {phase.title()}: {seconds:.2f}s")
    hashing_rate = stats.get_rate("bytes_hashed", phase="hashing") / (1024 * 1024)
    if hashing_rate:
        print(f"  Hashing throughput: {stats.get_rate(phase='hashing'):.1f} files/s, {hashing_rate:.1f} MB/s")

    if result.groups:
        summary = summarize_groups(result.groups)
        print(f"\nDuplicates found: {statistics.duplicate_group_count} sets")
        print(f"Redundant copies: {statistics.duplicate_file_count}")
        print(f"Reclaimable space: {format_size(statistics.duplicate_bytes)}")
        if summary.largest_waste is not None:
            print(f"Largest waste: {format_size(summary.largest_waste.wasted_space)} "
                  f"({summary.largest_waste.count} copies)")

        print("\nTop duplicate sets:")
        for i, group in enumerate(result.groups[:top]):
            print(f"\n{i+1}. {group.count} copies of {format_size(group.size)} file")
            print(f"   Hash: {group.digest[:16]}...")
            print(f"   Wasted: {format_size(group.wasted_space)}")
            for j, path in enumerate(group.paths[:3]):
                print(f"   [{j+1}] {path}")
            if group.count > 3:
                print(f"   ... and {group.count - 3} more")
    else:
        print("\nNo duplicates found!")

    if result.failures:
        print(f"\nFiles not hashed: {result.failed}")
        for kind, count in sorted(stats.failures_by_kind.items(), key=lambda x: x[1], reverse=True):
            print(f"  {kind.replace('_', ' ').title()}: {count:,}")
        if show_failures:
            for failure in result.failures:
                print(f"  [{failure.kind}] {failure.path}: {failure.message}")

# ---------------------------
# Export
# ---------------------------

def export_csv(groups: List[DuplicateGroup], output_path: str) -> None:
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(["Hash", "Size (bytes)", "Count", "Wasted (bytes)", "Paths"])
        for group in groups:
            writer.writerow([
                group.digest,
                group.size,
                group.count,
                group.wasted_space,
                "; ".join(group.paths),
            ])


def export_json(result: PipelineResult, output_path: str, algorithm: str) -> None:
    statistics = result.statistics
    data = {
        "scan_info": {
            "version": __version__,
            "date": datetime.now().isoformat(),
            "root": result.root,
            "algorithm": algorithm,
            "files_hashed": result.processed,
            "files_failed": result.failed,
            "duplicate_sets": statistics.duplicate_group_count,
            "duplicate_files": statistics.duplicate_file_count,
            "reclaimable_bytes": statistics.duplicate_bytes,
            "timings": result.timings,
        },
        "duplicates": [
            {
                "hash": group.digest,
                "size": group.size,
                "count": group.count,
                "paths": group.paths,
            }
            for group in result.groups
        ],
        "failures": [
            {"path": f.path, "kind": f.kind, "message": f.message}
            for f in result.failures
        ],
    }
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)

# ---------------------------
# CLI Interface
# ---------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="dupscan - Parallel Duplicate File Finder",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("path", nargs="?", default=".", help="Directory to scan")

    # Hashing
    parser.add_argument(
        "--algorithm",
        choices=sorted(ALGORITHMS),
        default="md5",
        help=f"Hash algorithm ({', '.join(sorted(NON_CRYPTOGRAPHIC))} are faster but non-cryptographic)"
    )
    parser.add_argument("--chunk-size", type=parse_size, default="8KB", help="Read buffer size")
    parser.add_argument("--retry-attempts", type=int, default=3, help="Attempts per file on I/O errors")

    # Performance
    parser.add_argument("--workers", type=int, help=f"Worker threads (default: {default_workers()})")
    parser.add_argument("--timeout", type=float, help="Give up on hashing after this many seconds")
    parser.add_argument("--compare-performance", action="store_true",
                        help="Also time 1 worker against --workers and report the speedup")

    # Filters
    parser.add_argument("--min-size", type=parse_size, default="0B", help="Minimum file size")
    parser.add_argument("--max-size", type=parse_size, help="Maximum file size")
    parser.add_argument("--include", nargs="+", help="Include only paths containing these patterns")
    parser.add_argument("--exclude-dir", nargs="+", help="Additional dirs to exclude")
    parser.add_argument("--exclude-ext", nargs="+", help="Extensions to exclude")
    parser.add_argument("--follow-symlinks", action="store_true", help="Follow symbolic links")
    parser.add_argument("--max-depth", type=int, help="Maximum directory depth below the root")
    parser.add_argument("--scan-hidden", action="store_true", help="Scan hidden files")

    # Output
    parser.add_argument("--export", choices=["csv", "json"], help="Export format")
    parser.add_argument("--export-path", help="Export file path")
    parser.add_argument("--show-failures", action="store_true", help="List every file that failed to hash")
    parser.add_argument("--quiet", "-q", action="store_true", help="Quiet mode")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def build_config(args: argparse.Namespace) -> ScanConfig:
    config = ScanConfig(
        root=args.path,
        hash_algorithm=args.algorithm,
        chunk_size=args.chunk_size,
        retry_attempts=args.retry_attempts,
        workers=args.workers if args.workers is not None else default_workers(),
        timeout=args.timeout,
        follow_symlinks=args.follow_symlinks,
        max_depth=args.max_depth,
        min_size=args.min_size,
        max_size=args.max_size,
        scan_hidden=args.scan_hidden,
        include_patterns=args.include or [],
    )
    if args.exclude_dir:
        config.excluded_dirs.update(args.exclude_dir)
    if args.exclude_ext:
        config.excluded_extensions.update(args.exclude_ext)
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set logging level
    if args.quiet:
        logging.getLogger("dupscan").setLevel(logging.WARNING)
    elif args.verbose:
        logging.getLogger("dupscan").setLevel(logging.DEBUG)
    else:
        logging.getLogger("dupscan").setLevel(logging.INFO)

    try:
        config = build_config(args)
        pipeline = DuplicatePipeline(config, progress_callback=None if args.quiet else log_progress)
    except ConfigurationError as e:
        parser.error(str(e))

    if not args.quiet:
        print(f"dupscan v{__version__}")
        print("="*70)

    cancel_event = threading.Event()
    try:
        result = pipeline.run(cancel_event=cancel_event)

        if not args.quiet:
            generate_report(result, show_failures=args.show_failures)

        if not result.succeeded:
            return EXIT_FAILED

        if args.export:
            output_path = args.export_path or f"duplicates.{args.export}"
            if args.export == "csv":
                export_csv(result.groups, output_path)
            else:
                export_json(result, output_path, config.hash_algorithm)
            logger.info(f"Results exported to: {output_path}")

        if args.compare_performance:
            tasks = pipeline.scanner.scan(config.root)
            comparison = pipeline.compare_performance(tasks)
            if not args.quiet:
                print(f"\nPerformance ({comparison.files:,} files):")
                print(f"  1 worker: {comparison.single_thread_seconds:.2f}s")
                print(f"  {comparison.workers} workers: {comparison.multi_thread_seconds:.2f}s")
                print(f"  Speedup: {comparison.speedup:.2f}x ({comparison.efficiency:.1f}% efficiency)")

        return EXIT_OK

    except KeyboardInterrupt:
        cancel_event.set()
        print("\nScan interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
