"""CLI command for failing generation jobs orphaned in pending or processing.

A job whose process died before or during its background task stays active
forever. This command marks every such job failed once it has made no
progress for longer than the threshold.

Usage:
    python -m animegen.cli.sweep_jobs [OPTIONS]

Examples:
    # Use JOB_STALE_AFTER_SECONDS from the environment
    python -m animegen.cli.sweep_jobs

    # Custom threshold and batch size
    python -m animegen.cli.sweep_jobs --stale-after 900 --limit 500
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from animegen.core import timezone  # noqa: F401
from animegen.core.config import Settings, configure_logging
from animegen.core.database import setup_db_session
from animegen.uow import create_uow_factory
from animegen.workers.generation_job_worker import sweep_stale_jobs

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Fail generation jobs stuck in pending or processing",
        epilog="A job is stale when it made no progress for --stale-after seconds",
    )

    parser.add_argument(
        "--stale-after",
        type=int,
        help="Seconds without progress (default: JOB_STALE_AFTER_SECONDS)",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of jobs to fail (default: 100)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    stale_after = args.stale_after or settings.job_stale_after_seconds
    logger.info("cli.started", stale_after_seconds=stale_after, limit=args.limit)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        failed = await sweep_stale_jobs(uow_factory, stale_after, limit=args.limit)
    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    print(f"Stale jobs marked failed: {failed}")
    logger.info("cli.success", failed=failed)
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
