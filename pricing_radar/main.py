#!/usr/bin/env python3
"""
Main entry point for the Pricing Radar worker.

Without arguments it runs the monitoring pipeline, either one cycle and exit
(RUN_MODE=once, suitable for an external cron) or as a long-running daemon
with a daily schedule and an optional liveness endpoint (RUN_MODE=daemon).

The add / remove / list subcommands manage registered monitors.

All collaborators (store, fetcher, classifier client, notifier) are built
once here and injected into the orchestrator.
"""

import argparse
import sys
from typing import List, Optional

from pricing_radar.classify import ChangeClassifier, GeminiClient
from pricing_radar.config import RUN_MODE_DAEMON, MonitorConfig, load_config
from pricing_radar.fetch import PageFetcher
from pricing_radar.monitor import CheckOutcome, MonitorOrchestrator
from pricing_radar.notify import EmailNotifier
from pricing_radar.store import JsonStore, MonitorLimitError, StoreError
from pricing_radar.trigger import DailyTrigger, start_health_server
from pricing_radar.utils import get_logger, setup_logging


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ENV_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pricing-radar",
        description="Watch competitor pricing pages and email meaningful changes.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the monitoring pipeline (default).")

    add_parser = subparsers.add_parser("add", help="Register a competitor pricing page.")
    add_parser.add_argument("name", help="Competitor name.")
    add_parser.add_argument("url", help="Pricing page URL.")
    add_parser.add_argument("email", help="Alert recipient.")

    remove_parser = subparsers.add_parser("remove", help="Delete a monitor and its history.")
    remove_parser.add_argument("monitor_id", help="Monitor id.")

    subparsers.add_parser("list", help="List registered monitors.")

    return parser


def build_orchestrator(config: MonitorConfig) -> MonitorOrchestrator:
    """
    Construct the orchestrator and its collaborators from configuration.

    Raises:
        ValueError: If the classifier key or SMTP settings are missing.
    """
    if not config.gemini_api_key:
        raise ValueError("Required environment variable 'GEMINI_API_KEY' is not set")

    # Validated before any HTTP session is opened
    notifier = EmailNotifier(config.smtp, dry_run=config.dry_run)

    store = JsonStore(config.data_path)
    fetcher = PageFetcher(timeout=config.fetch_timeout, max_chars=config.max_page_chars)
    client = GeminiClient(api_key=config.gemini_api_key, model=config.gemini_model)
    classifier = ChangeClassifier(
        client,
        confidence_threshold=config.confidence_threshold,
        max_context_chars=config.diff_context_chars,
    )

    return MonitorOrchestrator(
        store=store,
        fetcher=fetcher,
        classifier=classifier,
        notifier=notifier,
        config=config,
    )


def run_pipeline(config: MonitorConfig) -> int:
    """
    Run the monitoring pipeline once or on a daily schedule.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger = get_logger("main")

    try:
        orchestrator = build_orchestrator(config)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_ENV_ERROR

    if config.dry_run:
        logger.info("Running in DRY RUN mode - emails will only be logged")
    else:
        logger.info("Verifying email connection...")
        if not orchestrator.notifier.check_connection():
            logger.warning("Email connection check failed, alert emails may fail")

    try:
        if config.run_mode == RUN_MODE_DAEMON:
            if config.health_port:
                start_health_server(config.health_port)

            trigger = DailyTrigger(
                orchestrator.run_cycle,
                hour=config.schedule_hour,
                minute=config.schedule_minute,
                run_on_start=config.run_on_start,
            )
            trigger.run_forever()
            return EXIT_SUCCESS

        summary = orchestrator.run_cycle()
    finally:
        orchestrator.fetcher.close()

    if summary.total and summary.count(CheckOutcome.ERROR) == summary.total:
        logger.error("Every monitor failed to process")
        return EXIT_FAILURE

    return EXIT_SUCCESS


def _run_command(args: argparse.Namespace, config: MonitorConfig) -> int:
    logger = get_logger("main")
    store = JsonStore(config.data_path)

    if args.command == "add":
        try:
            target = store.add_target(args.name, args.url, args.email)
        except (ValueError, MonitorLimitError) as e:
            logger.error(f"Could not add monitor: {e}")
            return EXIT_FAILURE
        print(target.id)
        return EXIT_SUCCESS

    if args.command == "remove":
        if not store.remove_target(args.monitor_id):
            logger.error(f"Monitor not found: {args.monitor_id}")
            return EXIT_FAILURE
        return EXIT_SUCCESS

    for target in store.list_targets():
        status = "active" if target.is_active else "inactive"
        checked = target.last_checked_at.isoformat() if target.last_checked_at else "never"
        print(f"{target.id}  {status:<8}  {target.name}  {target.url}  {target.user_email}  last checked: {checked}")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Pricing Radar worker.

    Sets up logging and dispatches to the pipeline or a management command.

    Returns:
        Exit code for the process.
    """
    args = _build_parser().parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        setup_logging()
        get_logger("main").error(f"Configuration error: {e}")
        return EXIT_ENV_ERROR

    setup_logging(config.log_level)
    logger = get_logger("main")

    try:
        if args.command in ("add", "remove", "list"):
            return _run_command(args, config)
        return run_pipeline(config)

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_FAILURE

    except StoreError as e:
        logger.error(f"Store error: {e}")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception(f"Unexpected error in pipeline: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
