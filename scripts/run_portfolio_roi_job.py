#!/usr/bin/env python3
"""
Portfolio ROI Job Runner.

Recomputes the NAV series and dashboard metrics of every dirty portfolio
(needs_recompute=True). Safe to run from several schedulers at once: only
the run holding the job lock does any work, the others exit with
"skipped: locked".

Usage:
    python scripts/run_portfolio_roi_job.py

    # One portfolio, even if it is not dirty
    python scripts/run_portfolio_roi_job.py --portfolio t1 --include-clean

    # Forced window
    python scripts/run_portfolio_roi_job.py --start-date 2026-01-01 --end-date 2026-03-31

    # Create tables first (fresh database)
    python scripts/run_portfolio_roi_job.py --init-db

Environment:
    DATABASE_URL must be set (or in .env / .streamlit/secrets.toml)
    COINGECKO_API_KEY optional (demo key raises rate limits)

Scheduling:
    Cron example (hourly):
        15 * * * * cd /path/to/roi-engine && python scripts/run_portfolio_roi_job.py --trigger cron
"""

import argparse
import json
import logging
import os
import sys
import tomllib
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

load_dotenv()


# Load secrets from .streamlit/secrets.toml if not already in environment
def _load_secrets():
    """Load secrets from .streamlit/secrets.toml into environment variables."""
    secrets_path = project_root / ".streamlit" / "secrets.toml"
    if secrets_path.exists():
        with open(secrets_path, "rb") as f:
            secrets = tomllib.load(f)

        for key, value in secrets.items():
            if key not in os.environ and isinstance(value, str):
                os.environ[key] = value


_load_secrets()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)
logger = logging.getLogger(__name__)


def _parse_date(value: str):
    return datetime.strptime(value, "%Y-%m-%d").date()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Recompute portfolio ROI (NAV series and dashboard metrics)"
    )
    parser.add_argument(
        "--portfolio",
        type=str,
        help="Specific portfolio key to recompute (default: all dirty portfolios)",
    )
    parser.add_argument(
        "--start-date",
        type=_parse_date,
        help="Force the window start (YYYY-MM-DD); NAV rebases to 100 there",
    )
    parser.add_argument(
        "--end-date",
        type=_parse_date,
        help="Force the window end (YYYY-MM-DD, default: today UTC)",
    )
    parser.add_argument(
        "--include-clean",
        action="store_true",
        help="Also recompute portfolios that are not marked dirty",
    )
    parser.add_argument(
        "--trigger",
        type=str,
        default="manual",
        help="Recorded in the job lock (e.g. cron, manual, admin)",
    )
    parser.add_argument(
        "--requested-by",
        type=str,
        help="Lock holder name (default: hostname:pid)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before running",
    )

    args = parser.parse_args()

    if args.start_date and args.end_date and args.start_date > args.end_date:
        parser.error("--start-date must not be after --end-date")

    # Imported after secrets are loaded so config picks them up
    from RoiEngine_core.db import init_db
    from RoiEngine_core.tracking.roi_job import run_portfolio_roi_job

    if args.init_db:
        init_db()

    result = run_portfolio_roi_job(
        portfolio_key=args.portfolio,
        force_start_date=args.start_date,
        force_end_date=args.end_date,
        include_clean=args.include_clean,
        trigger=args.trigger,
        requested_by=args.requested_by,
    )

    print(json.dumps(result.to_dict()))
    for outcome in result.portfolios:
        if not outcome.succeeded:
            logger.warning(
                f"{outcome.portfolio_key}: {outcome.error_code or 'ERROR'} - {outcome.error}"
            )

    # Exit code based on results
    if result.failed > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
