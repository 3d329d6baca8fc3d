#!/usr/bin/env python3
"""
May Highs Analysis

Downloads the region boundary, finds stations, fetches daily maximum
temperatures from CIMIS and NCEI, and charts the hottest May day per year.

Usage:
    python scripts/run_may_highs.py [--config PATH] [--region NAME] [--month N]

Options:
    --config PATH        YAML settings (default: config/pipeline.yaml in the
                         working directory, then in the checkout)
    --region NAME        Region name in the boundary file
    --month N            Target month (default: 5)
    --output-dir PATH    Where charts and tables are written
    --workers N          Parallel station fetches (default: 1)
    --exclude-closed     Skip closed stations
    --list-regions       Print available region names and exit
    --log-level LEVEL    Logging level (default: LOG_LEVEL or INFO)

Credentials are read from .env: SYNOPTIC_TOKEN, CIMIS_APP_KEY, NCEI_TOKEN.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from common.errors import MayHighsError  # noqa: E402
from common.logging_config import configure_logging  # noqa: E402
from pipeline.config import load_config  # noqa: E402
from pipeline.runner import run_pipeline  # noqa: E402
from region.loader import list_regions  # noqa: E402

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Historical monthly high temperatures for a metropolitan region"
    )
    parser.add_argument('--config', type=Path, default=None, help='YAML settings file')
    parser.add_argument('--region', default=None, help='Region name in the boundary file')
    parser.add_argument('--month', type=int, default=None, help='Target month, 1-12 (default: 5)')
    parser.add_argument('--output-dir', type=Path, default=None, help='Output directory')
    parser.add_argument('--workers', type=int, default=None, help='Parallel station fetches')
    parser.add_argument('--exclude-closed', action='store_true', help='Skip closed stations')
    parser.add_argument('--list-regions', action='store_true', help='List region names and exit')
    parser.add_argument('--log-level', default=None, help='Logging level')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)

        overrides = {}
        if args.region:
            overrides['region'] = config.region.model_copy(update={'name': args.region})
        if args.month is not None:
            if not 1 <= args.month <= 12:
                logger.error("--month must be between 1 and 12")
                return 1
            overrides['aggregate'] = config.aggregate.model_copy(update={'month': args.month})
        if args.workers is not None:
            if args.workers < 1:
                logger.error("--workers must be at least 1")
                return 1
            overrides['fetch'] = config.fetch.model_copy(update={'max_workers': args.workers})
        if args.exclude_closed:
            overrides['stations'] = config.stations.model_copy(update={'include_closed': False})
        if args.output_dir:
            overrides['output_dir'] = args.output_dir
        config = config.model_copy(update=overrides)

        if args.list_regions:
            for name in list_regions(config.region.source, config.region.name_field):
                print(name)
            return 0

        result = run_pipeline(config)

    except MayHighsError as e:
        logger.error(f"Run failed: {e}")
        return 1

    summary = result.fetch_summary
    if summary.failed_stations:
        logger.warning(
            f"Completed with {summary.failed_stations} station failures "
            f"({summary.success_rate:.1f}% success rate)"
        )

    print(f"\n{result.region.name}: annual mean of station maxima, month {result.extremes.month}")
    for record in result.extremes.records():
        print(f"  {record.year}  {record.mean_value:>3d}  ({record.station_count} stations)")
    for name, path in result.artifacts.items():
        print(f"  {name}: {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
