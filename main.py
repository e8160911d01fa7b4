from settings import Settings
from orchestrator import IndexCleaner
from errors import RetirementError
import argparse
import urllib3
import time
import os
import sys
from typing import List, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | <level>{level: <8}</level> | {name}:{function}:{line} - {message}"


def log_level_for(verbose: int, debug: bool, default: Optional[str] = None) -> str:
    if verbose >= 2:
        return "TRACE"
    if verbose == 1 or debug:
        return "DEBUG"
    return (default or os.getenv("LOG_LEVEL", "INFO")).upper()


def configure_logging(level: str) -> None:
    # Logs go to stderr, this tool has no stdout payload
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Snapshot and delete indices older than the retention period. Flags override environment variables.")

    choices = {
        "retire-now",
        "list-outdated",
        "start-retirement"
    }

    parser.add_argument('-action', required=True, choices=choices, help="What do you want me to do?")
    parser.add_argument('-a', '--address', required=False, help="Cluster address, or use ELASTICSEARCH_ADDRESS env")
    parser.add_argument('-r', '--repository', required=False, help="Snapshot repository, or use ELASTICSEARCH_REPOSITORY env")
    parser.add_argument('-f', '--index-filter', required=False, help="Comma separated index patterns, e.g. \"logstash-*,kong-*\", or use ELASTICSEARCH_INDEX_FILTER env")
    parser.add_argument('-k', '--keep-days', required=False, type=int, help="How many days to keep the indices, or use KEEP_DAYS env (default 15)")
    parser.add_argument('--fail-on-snapshot-error', action='store_true', default=None, help="Abort when a snapshot keeps reporting FAILED or PARTIAL instead of polling forever")
    parser.add_argument('-v', '--verbose', action='count', default=0, help="Verbose mode (-v, -vv)")
    parser.add_argument('-d', '--debug', action='store_true', help="Activate debug logging")
    return parser


def retire_now(cleaner: IndexCleaner) -> None:
    logger.info("Starting retirement of outdated indices")
    outcomes = cleaner.retire_outdated_indices()
    logger.info(f"Retirement completed, {len(outcomes)} indices retired")


def list_outdated(cleaner: IndexCleaner) -> None:
    outdated = cleaner.list_outdated_indices()
    logger.info(f"{len(outdated)} indices would be retired")
    for index_name in outdated:
        logger.info(f"  - {index_name}")


def retirement_job(cleaner: IndexCleaner) -> None:
    """Scheduled run; a failure is logged and the next run goes ahead as planned"""
    try:
        retire_now(cleaner)
    except RetirementError as e:
        logger.error(f"Scheduled retirement failed: {e}")


def start_retirement(cleaner: IndexCleaner, hour: int) -> None:
    scheduler = BackgroundScheduler(executors={'default': ThreadPoolExecutor(1)})

    logger.info(f"Scheduling retirement for daily execution at {hour:02d}:00")
    scheduler.add_job(retirement_job, "cron", hour=hour, minute=0, args=[cleaner], max_instances=1)

    scheduler.start()
    logger.info("Retirement scheduler started successfully")
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received shutdown signal, stopping scheduler")
        scheduler.shutdown()
        logger.info("Scheduler shutdown completed")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(log_level_for(args.verbose, args.debug))
    logger.info("Index cleaner started")

    try:
        settings = Settings.from_sources(
            url=args.address,
            repository=args.repository,
            index_filter=args.index_filter,
            keep_days=args.keep_days,
            fail_on_snapshot_error=args.fail_on_snapshot_error,
        )
    except RetirementError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"URL: {settings.url}, repository: {settings.repository}, index filter: {settings.index_filter}, keep days: {settings.keep_days}")
    if not settings.verify_certs:
        #Pesky self signed certs
        urllib3.disable_warnings()

    cleaner = IndexCleaner(settings)
    action: str = args.action
    try:
        if action == "retire-now":
            retire_now(cleaner)
        elif action == "list-outdated":
            list_outdated(cleaner)
        elif action == "start-retirement":
            start_retirement(cleaner, settings.retirement_hour)
    except RetirementError as e:
        logger.error(f"Retirement run failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
