"""
CLI utility for cache directory management.

Usage:
    python scripts/hdc_cache.py --stats
    python scripts/hdc_cache.py --purge --vacuum
    python scripts/hdc_cache.py --reconcile --min-age 3600 --cache-dir /tmp/hdc
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from hybrid_cache import DiskCache
from hybrid_cache.config.settings import default_cache_dir


def format_bytes(bytes_val: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_val < 1024:
            return f"{bytes_val:.1f} {unit}"
        bytes_val /= 1024
    return f"{bytes_val:.1f} TB"


def format_time(ts: float) -> str:
    """Format unix timestamp as human-readable string."""
    if ts == 0:
        return "never"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def show_stats(cache: DiskCache) -> int:
    """
    Display cache statistics.

    Args:
        cache: Open DiskCache
    """
    stats = cache.stats()

    print(f"📊 Cache Statistics: {cache.path}\n")
    print(f"{'Records':<20} {stats['count']:>12,}")
    print(f"{'  inline':<20} {stats['inline_count']:>12,} {format_bytes(stats['inline_bytes']):>12}")
    print(f"{'  blob':<20} {stats['blob_count']:>12,}")
    print(f"{'Blob files on disk':<20} {stats['blob_files']:>12,} {format_bytes(stats['blob_bytes']):>12}")
    print(f"{'Oldest expiry':<20} {format_time(stats['oldest_expires_at']):>25}")
    print(f"{'Newest expiry':<20} {format_time(stats['newest_expires_at']):>25}")
    print()
    return 0


def main():
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Manage a hybrid disk cache (view stats, purge, reconcile)"
    )
    parser.add_argument("--stats", action="store_true", help="Show cache statistics")
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Delete records expired for longer than the grace period",
    )
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="Delete blob files no record references",
    )
    parser.add_argument("--vacuum", action="store_true", help="Reclaim index space")
    parser.add_argument(
        "--tbd",
        type=float,
        default=None,
        help="Grace period in seconds used by --purge (default: 3600)",
    )
    parser.add_argument(
        "--min-age",
        type=float,
        default=None,
        help="Minimum orphan age in seconds for --reconcile (default: grace period)",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=default_cache_dir(),
        help=f"Cache directory (default: {default_cache_dir()})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Require at least one action
    if not (args.stats or args.purge or args.reconcile or args.vacuum):
        parser.print_help()
        print("\n❌ Error: Must specify --stats, --purge, --reconcile or --vacuum")
        sys.exit(1)

    if not (args.cache_dir / "cache.db").exists():
        print(f"❌ Cache database not found: {args.cache_dir / 'cache.db'}")
        sys.exit(1)

    with DiskCache(path=args.cache_dir, tbd=args.tbd) as cache:
        if args.purge:
            count = cache.purge()
            print(f"🗑️  {count:,} expired records purged")

        if args.reconcile:
            count = cache.reconcile(min_age=args.min_age)
            print(f"🧹 {count:,} orphan blob files removed")

        if args.vacuum:
            print("🔧 Vacuuming index...")
            cache.vacuum()
            print("   ✓ Done")

        if args.stats:
            show_stats(cache)

    sys.exit(0)


if __name__ == "__main__":
    main()
