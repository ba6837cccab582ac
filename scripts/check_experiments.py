#!/usr/bin/env python3
"""Run one A/B experiment significance check.

Meant to be invoked by cron every 6 hours:

    0 */6 * * * python scripts/check_experiments.py

Usage:
    python scripts/check_experiments.py [--db PATH] [--max-retries N] [-v]

Prints the pass summary as JSON and exits 0, even when individual
experiments failed (those are logged).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from abfunnel.config import get_settings  # noqa: E402
from abfunnel.db.session import get_db_session, init_db  # noqa: E402
from abfunnel.worker.scheduler import ExperimentScheduler  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Evaluate running A/B experiments once.")
    parser.add_argument("--db", type=Path, default=settings.db_path, help="SQLite database path")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=settings.scheduler_max_retries,
        help="Attempts per experiment on transient database errors",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=settings.scheduler_retry_delay,
        help="Seconds before the first retry (doubles each attempt)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    init_db(args.db)
    with get_db_session(args.db) as session:
        scheduler = ExperimentScheduler(
            session,
            max_retries=args.max_retries,
            retry_base_delay=args.retry_delay,
        )
        summary = scheduler.run()

    print(summary.model_dump_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
