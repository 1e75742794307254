"""Entry point for running schedulefeed as a module.

Usage: python -m schedulefeed RECORDS.json [-o OUT.ics] [--env-file .env] [--verbose]

Exit status: 0 on success, 1 when records were skipped, 2 when the input
cannot be loaded, 3 when the calendar cannot be encoded.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pytz

from schedulefeed.config.settings import load_feed_config
from schedulefeed.core.generator import generate_feed
from schedulefeed.exceptions.errors import FeedError

logger = logging.getLogger("schedulefeed")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="schedulefeed",
        description="Generate an iCalendar feed from schedule records.",
    )
    parser.add_argument("records", help="JSON file holding a list of schedule records ('-' for stdin)")
    parser.add_argument("-o", "--output", help="Write the feed here instead of stdout")
    parser.add_argument("--env-file", help="Optional .env file with SCHEDULEFEED_* settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _load_records(source: str) -> list:
    if source == "-":
        payload = json.load(sys.stdin)
    else:
        with open(source, "r", encoding="utf-8") as f:
            payload = json.load(f)
    if isinstance(payload, dict):
        return [payload]
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of records, got {type(payload).__name__}")
    return payload


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line."""
    args = _parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    try:
        config = load_feed_config(args.env_file)
        records = _load_records(args.records)
    except (OSError, ValueError) as e:
        logger.error("Could not load input: %s", e)
        return 2

    try:
        ics_text, warnings = generate_feed(records, None, datetime.now(pytz.utc), config)
    except FeedError as e:
        logger.error("Could not generate the calendar: %s", e)
        return 3

    data = ics_text.encode("utf-8")
    if args.output:
        Path(args.output).write_bytes(data)
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.flush()

    if warnings:
        logger.error("%d record(s) could not be included in the calendar", len(warnings))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
