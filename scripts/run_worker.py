#!/usr/bin/env python3
"""
Standalone worker process.

Runs the worker pool for a subset of queues against the configured broker.
Use with BROKER_URL=redis://... and RUN_WORKERS_IN_API=false for the
multi-process deployment (API enqueues, this process executes).

Usage:
    python scripts/run_worker.py
    python scripts/run_worker.py --queues resume-processing,job-matching
    python scripts/run_worker.py --concurrency email-notifications=4 --concurrency analytics=1

Signals:
    SIGINT / SIGTERM stop reservations and drain in-flight jobs
    (WORKER_DRAIN_TIMEOUT_SECONDS, override with --drain-timeout).
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.application.tasks import DispatchSettings
from src.application.tasks.dispatch_config import parse_concurrency
from src.domain.shared.exceptions import DomainException
from src.infrastructure.container import create_container

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run background job workers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # All registered queues with default concurrency
  python scripts/run_worker.py

  # Only resume processing and matching
  python scripts/run_worker.py --queues resume-processing,job-matching

  # Four email workers
  python scripts/run_worker.py --queues email-notifications --concurrency email-notifications=4
        """,
    )
    parser.add_argument(
        "--queues",
        type=str,
        default=None,
        help="Comma-separated queue names (default: all registered queues)",
    )
    parser.add_argument(
        "--concurrency",
        action="append",
        default=[],
        metavar="QUEUE=N",
        help="Per-queue worker count, repeatable (overrides WORKER_CONCURRENCY)",
    )
    parser.add_argument(
        "--drain-timeout",
        type=float,
        default=None,
        help="Seconds to wait for in-flight jobs on shutdown",
    )
    return parser.parse_args(argv)


def build_settings(args) -> DispatchSettings:
    """
    Merge CLI overrides into settings read from the environment.

    Raises:
        ValueError: Malformed --concurrency entry or invalid env value
    """
    settings = DispatchSettings.from_env()
    overrides = dict(settings.worker_concurrency_per_queue)
    overrides.update(parse_concurrency(",".join(args.concurrency)))

    changes = {"worker_concurrency_per_queue": overrides}
    if args.drain_timeout is not None:
        changes["drain_timeout_seconds"] = args.drain_timeout
    return dataclasses.replace(settings, **changes)


async def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    queues = [q.strip() for q in args.queues.split(",") if q.strip()] if args.queues else None

    try:
        container = await create_container(settings)
        await container.start_workers(queues)
    except (DomainException, ValueError, RuntimeError) as e:
        logger.error(f"Worker startup failed: {e}")
        return 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        f"Worker process ready (broker={container.broker_kind}, "
        f"queues={', '.join(container.pool.queues)}); press Ctrl+C to stop"
    )
    await stop.wait()

    logger.info("Shutdown signal received, draining workers")
    await container.aclose()
    logger.info("Worker process stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
