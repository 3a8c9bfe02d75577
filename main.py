import argparse
import asyncio
import json
import sys

from config.logging_config import log, setup_logging
from config.settings import load_settings
from core.pipeline import ACTIONS, SOURCES
from scheduler import run_source, start_scheduler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Luxury listing ingestion pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one source now")
    run.add_argument("source", choices=SOURCES, help="Source adapter to run")
    run.add_argument("--action", choices=ACTIONS, default="sync", help="sync = scrape and upsert, map = list URLs only")
    run.add_argument("--fetch-details", action="store_true", help="Follow item detail pages (sothebys_items)")
    run.add_argument("--limit", type=int, default=0, help="Max URLs/items to process, 0 = no limit")

    sub.add_parser("schedule", help="Run all property sources every 24 hours")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings()
    setup_logging(settings)

    if args.command == "run":
        log.info(f"Running {args.source} manually...")
        response = asyncio.run(
            run_source(settings, args.source, action=args.action, fetch_details=args.fetch_details, limit=args.limit)
        )
        print(json.dumps(response.model_dump(exclude_none=True), indent=2))
        return 0 if response.success else 1
    elif args.command == "schedule":
        start_scheduler(settings)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        log.info("Stopping...")
        sys.exit(0)
    except Exception as e:
        log.critical(f"Unhandled exception: {e}")
        sys.exit(1)
