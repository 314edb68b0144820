"""GovWatch command line runner.

Runs a scrape, imports an uploaded record file, writes the operator console
script, or initialises the database. Exit codes: 0 success, 1 failure,
2 partial success (some targets or inserts failed).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import GovWatchConfig
from .console_script import write_console_script
from .database import ProcurementDatabase
from .logging_config import setup_logging
from .ministry_matching import MinistryMatcher
from .models import GovWatchError
from .normalizer import RecordNormalizer
from .pipeline import ScrapePipeline
from .upload import import_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GovWatch MY - procurement archive scraper and record importer"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML configuration (default: config/govwatch.yaml)",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to GovWatch database (default: database/govwatch.db)",
    )
    parser.add_argument(
        "--diagnostics-dir",
        type=Path,
        help="Directory for per-run diagnostics (cleared on every scrape)",
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--import",
        dest="import_path",
        type=Path,
        metavar="FILE",
        help="Import records from a JSON upload instead of scraping",
    )
    action.add_argument(
        "--console-script",
        type=Path,
        metavar="PATH",
        help="Write the browser console extraction script to PATH and exit",
    )
    action.add_argument(
        "--init-db",
        action="store_true",
        help="Initialise the database schema and exit",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scrape and normalize without persisting",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Write logs to this file (default: logs/govwatch.log)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output summary as JSON",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the GovWatch runner."""
    args = build_parser().parse_args(argv)

    logger = setup_logging(
        log_file=args.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    if args.console_script:
        target = write_console_script(args.console_script)
        logger.info(f"Console script written to {target}")
        return 0

    try:
        config = GovWatchConfig(args.config)
        db_path = args.db_path or config.database_path

        if args.init_db:
            db = ProcurementDatabase(db_path=db_path, auto_initialize=False)
            db.initialize()
            logger.info(f"Initialised GovWatch database at {db.db_path}")
            return 0

        db = ProcurementDatabase(db_path=db_path)
        matcher = MinistryMatcher() if config.canonicalize_ministries else None
        normalizer = RecordNormalizer(ministry_matcher=matcher)

        if args.import_path:
            upload_summary = import_file(args.import_path, db, normalizer=normalizer)
            if args.json:
                print(json.dumps(upload_summary.to_dict(), indent=2))
            return 2 if upload_summary.persistence.failed_count else 0

        if args.headed:
            config.browser.headless = False

        pipeline = ScrapePipeline(
            config,
            db,
            normalizer=normalizer,
            diagnostics_dir=args.diagnostics_dir,
        )
        summary = pipeline.run_sync(dry_run=args.dry_run)

        if args.json:
            print(json.dumps(summary.to_dict(), indent=2))
        else:
            logger.info(summary.message)
            if summary.failed_targets:
                logger.warning(f"Failed targets: {', '.join(summary.failed_targets)}")
            if summary.errors:
                logger.error(f"Errors: {len(summary.errors)}")
        return summary.exit_code()

    except GovWatchError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:
        logger.exception(f"Fatal error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
