"""
Delete product images in the media store that no catalog row references.

Runs once with --once, otherwise loops with a jittered interval so it can be
left running next to the API.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shopit.config import get_settings
from shopit.dependencies import build_resources
from shopit.errors import ShopError
from shopit.reconcile import run_sweep

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Orphaned product image cleanup")
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=3600,
        help="Seconds between sweeps",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=60,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report orphans without deleting them",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    resources = build_resources(settings)
    try:
        while True:
            try:
                report = run_sweep(
                    resources.catalog,
                    resources.media,
                    settings.media_folder,
                    dry_run=args.dry_run,
                )
                if args.once:
                    return 1 if report.failed else 0
            except ShopError as exc:
                logger.error("Sweep failed: %s", exc.message)
                if args.once:
                    return 1

            sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
            logger.info("Sleeping for %.1fs", sleep_for)
            time.sleep(sleep_for)
    finally:
        resources.close()


if __name__ == "__main__":
    raise SystemExit(main())
