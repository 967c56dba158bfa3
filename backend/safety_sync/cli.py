"""
Command-line entry point for the Lytx safety event sync.

Meant to be run by cron / Task Scheduler; with no arguments it performs one
sync pass and exits:

    safety-sync                      # incremental sync from the checkpoint
    safety-sync sync --days-back 7   # daily sweep over the last week
    safety-sync check                # API key + database readiness
    safety-sync status               # recent runs and health verdict
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from safety_sync.config import Settings, get_settings
from safety_sync.database import check_db_ready, create_engine_from_settings, create_session_factory
from safety_sync.services.ingestion import SafetyEventIngestionService
from safety_sync.services.lytx_client import LytxClient, LytxClientError
from safety_sync.services.sync_status import get_sync_health

logger = logging.getLogger("safety_sync")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def configure_logging(settings: Settings) -> None:
    """Log to stderr, and to ``log_file`` when configured."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


async def run_sync(settings: Settings, days_back: int | None = None) -> int:
    """One sync pass. Returns the process exit code."""
    try:
        client = LytxClient.from_settings(settings)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    engine = create_engine_from_settings(settings)
    try:
        service = SafetyEventIngestionService(settings, client, create_session_factory(engine))
        result = await service.run(days_back=days_back)
    except LytxClientError as e:
        logger.error(f"Sync aborted, Lytx API unavailable: {e}")
        return EXIT_FATAL
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Sync aborted, database unavailable: {e}")
        return EXIT_FATAL
    finally:
        await engine.dispose()

    logger.info(f"processed={result.processed} failed={result.failed}")
    return EXIT_OK


async def run_check(settings: Settings) -> int:
    """Verify the API key and the database schema."""
    try:
        client = LytxClient.from_settings(settings)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    ok, message = await client.test_connection()
    if ok:
        logger.info(f"Lytx API: {message}")
    else:
        logger.error(f"Lytx API: {message}")

    engine = create_engine_from_settings(settings)
    try:
        await check_db_ready(engine)
        logger.info("Database ready")
    except (SQLAlchemyError, OSError, RuntimeError) as e:
        logger.error(f"Database not ready: {e}")
        ok = False
    finally:
        await engine.dispose()

    return EXIT_OK if ok else EXIT_FATAL


async def run_status(settings: Settings) -> int:
    """Print recent runs and the health verdict."""
    engine = create_engine_from_settings(settings)
    try:
        health = await get_sync_health(create_session_factory(engine))
    finally:
        await engine.dispose()

    print(f"Status: {health.status}")
    print(f"Events stored: {health.record_count:,}")
    print(f"Checkpoint: {health.checkpoint or 'none'}")
    print(f"Last successful sync: {health.last_successful_sync or 'never'}")
    print(f"Failed runs (24h): {health.failed_runs_last_24h}")
    for error in health.errors:
        print(f"  error: {error}")

    if health.recent_runs:
        print("Recent runs:")
    for run in health.recent_runs:
        print(
            f"  {run.started_at:%Y-%m-%d %H:%M:%S}  {run.status:<10} "
            f"processed={run.records_processed} failed={run.records_failed}"
        )

    return EXIT_OK if health.status != "unhealthy" else EXIT_FATAL


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="safety-sync",
        description="Sync Lytx safety events into the fleet database.",
    )
    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Run one sync pass (default)")
    sync_parser.add_argument(
        "--days-back",
        type=int,
        default=None,
        help="Re-sync this many days instead of resuming from the checkpoint",
    )

    subparsers.add_parser("check", help="Check API key and database schema")
    subparsers.add_parser("status", help="Show recent runs and sync health")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(settings)

    if args.command == "check":
        return asyncio.run(run_check(settings))
    if args.command == "status":
        return asyncio.run(run_status(settings))

    return asyncio.run(run_sync(settings, days_back=getattr(args, "days_back", None)))


if __name__ == "__main__":
    sys.exit(main())
