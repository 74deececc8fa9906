#!/usr/bin/env python3
"""
Scheduled report poller.

Generates every report whose next generation time has arrived, on a fixed
interval. Each poll is one dispatch batch; a failing report is logged and
retried on the next poll, and a failing poll does not stop the poller.

Usage:
    python scripts/process_due_reports.py              # Poll forever
    python scripts/process_due_reports.py --once       # Single batch, then exit
    python scripts/process_due_reports.py --interval 30
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from feedback_analytics.config import get_settings
from feedback_analytics.poller import run_once, serve
from feedback_analytics.utils.logging import configure_logging


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Generate scheduled reports that are due")
    parser.add_argument("--once", action="store_true", help="Run a single batch and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.report_poll_interval_seconds,
        help="Seconds between polls (default from REPORT_POLL_INTERVAL_SECONDS)",
    )
    args = parser.parse_args()

    configure_logging()

    if args.once:
        failed = run_once()
        sys.exit(1 if failed else 0)

    serve(args.interval)


if __name__ == "__main__":
    main()
