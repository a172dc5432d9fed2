# src/main.py — v2
"""CLI entry point — stats, prune, lookup, evict commands on a cache file.

Usage:
    answercache stats <cache_file>
    answercache prune <cache_file> [--max-age-days N] [--min-accesses N]
    answercache lookup <cache_file> <question> [--context TAG]
    answercache evict <cache_file> [--target N]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from answercache.config.settings import ConfigurationError, load_settings
from answercache.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    args.settings = settings
    _setup_logging(settings, args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="answercache",
        description=f"answercache v{__version__} — Chat answer cache maintenance",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- stats ---
    p_stats = subparsers.add_parser("stats", help="Show cache statistics")
    p_stats.add_argument("cache_file", type=Path, help="Path to cache JSON file")
    p_stats.set_defaults(func=_cmd_stats)

    # --- prune ---
    p_prune = subparsers.add_parser(
        "prune", help="Remove old, rarely used entries",
    )
    p_prune.add_argument("cache_file", type=Path, help="Path to cache JSON file")
    p_prune.add_argument(
        "--max-age-days", type=float, default=None,
        help="Minimum age of pruned entries (default: PRUNE_MAX_AGE_DAYS)",
    )
    p_prune.add_argument(
        "--min-accesses", type=int, default=None,
        help="Entries with fewer hits are pruned (default: PRUNE_MIN_ACCESSES)",
    )
    p_prune.set_defaults(func=_cmd_prune)

    # --- lookup ---
    p_lookup = subparsers.add_parser("lookup", help="Look up a question")
    p_lookup.add_argument("cache_file", type=Path, help="Path to cache JSON file")
    p_lookup.add_argument("question", help="Question text")
    p_lookup.add_argument(
        "--context", default=None, help="Context tag to narrow the match",
    )
    p_lookup.set_defaults(func=_cmd_lookup)

    # --- evict ---
    p_evict = subparsers.add_parser(
        "evict", help="Evict least recently used entries",
    )
    p_evict.add_argument("cache_file", type=Path, help="Path to cache JSON file")
    p_evict.add_argument(
        "--target", type=int, default=None,
        help="Entries to keep (default: CACHE_TARGET_SIZE)",
    )
    p_evict.set_defaults(func=_cmd_evict)

    return parser


def _open_cache(cache_file: Path, settings):
    """Load the cache at ``cache_file`` without starting maintenance."""
    from answercache.cache.cache_factory import create_response_cache

    cache = create_response_cache(settings, cache_file=cache_file)
    cache.load()
    return cache


async def _cmd_stats(args: argparse.Namespace) -> int:
    """Display statistics for a cache file."""
    cache_file: Path = args.cache_file
    if not cache_file.is_file():
        logger.error("Cache file not found: %s", cache_file)
        return 1

    stats = _open_cache(cache_file, args.settings).get_stats()

    print(f"\nStatistics for {cache_file}:")
    print(f"  Entries:         {stats.entry_count}")
    print(f"  Total accesses:  {stats.total_accesses}")
    print(f"  Avg accesses:    {stats.average_accesses_per_entry:.1f}")
    print(f"  Stale entries:   {stats.stale_entries}")
    if stats.entry_count:
        print(
            f"  Most accessed:   {stats.most_accessed_question!r} "
            f"({stats.most_accessed_count})"
        )
        print(f"  Oldest entry:    {stats.oldest_entry:%Y-%m-%d %H:%M}")
        print(f"  Newest entry:    {stats.newest_entry:%Y-%m-%d %H:%M}")
    return 0


async def _cmd_prune(args: argparse.Namespace) -> int:
    """Prune aged, rarely used entries and save."""
    cache_file: Path = args.cache_file
    if not cache_file.is_file():
        logger.error("Cache file not found: %s", cache_file)
        return 1

    cache = _open_cache(cache_file, args.settings)
    removed = cache.prune_stale(args.max_age_days, args.min_accesses)
    await cache.close()

    print(f"Pruned {removed} entries, {cache.size} remain")
    return 0


async def _cmd_lookup(args: argparse.Namespace) -> int:
    """Look up one question. Exit code 2 on a miss."""
    cache_file: Path = args.cache_file
    if not cache_file.is_file():
        logger.error("Cache file not found: %s", cache_file)
        return 1

    cache = _open_cache(cache_file, args.settings)
    result = cache.find_in_cache(args.question, args.context)
    if result is None:
        print("Miss")
        return 2

    print(f"Hit ({result.hit_level}, score {result.similarity_score:.2f}):")
    print(f"  Question: {result.question}")
    print(f"  Answer:   {result.answer}")
    if result.needs_refresh:
        print("  (stale: refresh recommended)")
    return 0


async def _cmd_evict(args: argparse.Namespace) -> int:
    """Evict down to a target size and save."""
    cache_file: Path = args.cache_file
    if not cache_file.is_file():
        logger.error("Cache file not found: %s", cache_file)
        return 1

    cache = _open_cache(cache_file, args.settings)
    removed = cache.evict(args.target)
    await cache.close()

    print(f"Evicted {removed} entries, {cache.size} remain")
    return 0


def _setup_logging(settings, verbose: bool) -> None:
    """Configure logging for CLI usage; -v forces DEBUG."""
    from answercache.logging.logger import setup_logging_from_settings

    setup_logging_from_settings(settings, level="DEBUG" if verbose else None)


if __name__ == "__main__":
    sys.exit(main())
