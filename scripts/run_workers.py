#!/usr/bin/env python3
"""Entrypoint for the phase dispatch and cleanup workers.

Usage:
    # Dispatch due notifications and run housekeeping once
    python scripts/run_workers.py --once

    # Only the dispatch worker, once
    python scripts/run_workers.py --once --only dispatch

    # Continuous loop (Ctrl+C or SIGTERM to stop)
    python scripts/run_workers.py --loop

    # Log notifications instead of calling the push gateway
    python scripts/run_workers.py --loop --simulate

Environment variables:
    WORKER_BATCH_SIZE: Items per batch (default: 50)
    DISPATCH_POLL_INTERVAL_SECONDS: Seconds between dispatch polls (default: 5)
    CLEANUP_INTERVAL_SECONDS: Seconds between cleanup runs (default: 86400)
    PUSH_GATEWAY_URL: Push gateway endpoint (simulated delivery when unset)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pomodoro.notifications import LoggingNotificationSender
from pomodoro.workers import RunnerResult, WorkerRunner, configure_worker_logging

WORKER_NAMES = {
    "dispatch": "PhaseDispatchWorker",
    "cleanup": "CleanupWorker",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the Pomodoro phase notification workers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--once", action="store_true", help="Run the workers once and exit")
    mode.add_argument("--loop", action="store_true", help="Run workers on their intervals")

    parser.add_argument(
        "--only",
        choices=sorted(WORKER_NAMES),
        default=None,
        help="Run a single worker instead of both",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between schedule checks (default: shortest worker interval)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Stop the loop after this many ticks",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Items per batch")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Log notifications instead of sending them",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="DEBUG logging")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="WARNING logging")
    return parser


def print_summary(result: RunnerResult) -> None:
    print("\n--- Worker Run Summary ---")
    print(f"Workers run: {result.workers_run}")
    print(f"Total processed: {result.total_processed}")
    print(f"Total failed: {result.total_failed}")

    for err in result.errors:
        print(f"  ! {err}")

    for name, worker_result in result.worker_results.items():
        print(f"\n{name} [{worker_result.status.value}]")
        print(f"  Processed: {worker_result.processed_count}")
        print(f"  Skipped: {worker_result.skipped_count}")
        print(f"  Failed: {worker_result.failed_count}")
        if worker_result.metadata:
            print(f"  Details: {worker_result.metadata}")


def main() -> int:
    args = build_parser().parse_args()

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    configure_worker_logging(level)
    logger = logging.getLogger("run_workers")

    sender = LoggingNotificationSender() if args.simulate else None
    runner = WorkerRunner(batch_size=args.batch_size, sender=sender)
    if args.only:
        wanted = WORKER_NAMES[args.only]
        runner = WorkerRunner(
            workers=[e for e in runner.workers if e.worker.worker_name == wanted],
        )

    try:
        if args.once:
            result = runner.run_once()
            print_summary(result)
            return 1 if result.errors or result.total_failed else 0

        runner.run_loop(tick_seconds=args.interval, max_iterations=args.max_iterations)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker runner failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
