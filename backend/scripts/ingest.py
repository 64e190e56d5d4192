#!/usr/bin/env python3
"""
CLI tool for data ingestion.

Usage (from the backend/ directory):
    # Fetch and dedup all sources without storing anything
    python -m scripts.ingest fetch --verbose

    # Show source configuration
    python -m scripts.ingest stats

    # Run one full cycle against the configured database
    python -m scripts.ingest cycle

    # Run the retention sweep
    python -m scripts.ingest sweep
"""

import argparse
import asyncio
import json
import logging
import sys

from newswire.config import get_settings
from newswire.jobs.ingestion_cycle import run_ingestion_cycle
from newswire.jobs.retention import run_retention_sweep
from newswire.services.data_ingestion import DedupEngine, SourceAggregator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def create_aggregator() -> SourceAggregator:
    """Create source aggregator from settings."""
    return SourceAggregator.from_settings(get_settings())


async def cmd_fetch(args):
    """Fetch and dedup articles without persisting them."""
    aggregator = create_aggregator()

    print("Fetching articles from all sources...")
    batch = await aggregator.fetch_all()
    deduped = DedupEngine(get_settings().similarity_threshold).deduplicate(batch.articles)

    # Print results
    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for result in batch.results:
        print(result)

    print("-" * 60)
    print(f"Admitted: {len(batch.articles)} (rejected {batch.rejected})")
    print(f"Exact duplicates: {deduped.exact_duplicates}")
    print(f"Near duplicates: {deduped.near_duplicates}")
    print(f"Unique articles: {len(deduped.articles)}")

    # Output articles if requested
    if args.output:
        output_data = [article.model_dump(mode="json") for article in deduped.articles]

        with open(args.output, "w") as f:
            json.dump(output_data, f, indent=2)

        print(f"\nArticles saved to: {args.output}")

    # Preview articles if verbose
    if args.verbose:
        print("\n" + "=" * 60)
        print("SAMPLE ARTICLES")
        print("=" * 60)

        for article in deduped.articles[:10]:
            print(f"\n[{article.source_name}] {article.title}")
            print(f"  URL: {article.url}")
            print(f"  Date: {article.published_at}")
            print(f"  Topic: {article.topic.value}")

    return 1 if batch.all_sources_failed else 0


async def cmd_stats(args):
    """Show source statistics."""
    aggregator = create_aggregator()
    stats = aggregator.get_source_stats()

    print("\n" + "=" * 50)
    print("SOURCE CONFIGURATION")
    print("=" * 50)
    print(f"Total sources: {stats['total_sources']}")
    print()

    for source in stats["sources"]:
        print(f"  {source['name']}")
        print(f"    Type: {source['type']}")
        print(f"    Endpoints: {', '.join(source['endpoints'])}")
        print()

    return 0


async def cmd_cycle(args):
    """Run one ingestion cycle and store the results."""
    stats = await run_ingestion_cycle(args.database_url)
    print(json.dumps(stats.to_dict(), indent=2))
    return 0 if stats.success else 1


async def cmd_sweep(args):
    """Deactivate articles past the retention window."""
    count = await run_retention_sweep(args.database_url)
    print(f"Deactivated {count} articles")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Newswire - Data Ingestion CLI"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch and dedup without storing")
    fetch_parser.add_argument(
        "--output", "-o",
        help="Output file for articles (JSON)"
    )
    fetch_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show article previews"
    )

    # Stats command
    subparsers.add_parser("stats", help="Show source statistics")

    # Cycle and sweep commands
    for name, help_text in (("cycle", "Run one full ingestion cycle"), ("sweep", "Run the retention sweep")):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument(
            "--database-url",
            help="Database URL (default: from settings)"
        )

    return parser


COMMANDS = {
    "fetch": cmd_fetch,
    "stats": cmd_stats,
    "cycle": cmd_cycle,
    "sweep": cmd_sweep,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return asyncio.run(COMMANDS[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
