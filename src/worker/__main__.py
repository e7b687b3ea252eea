#!/usr/bin/env python3
"""
Long-running worker that processes image transform jobs from the queue.

Run:
    python -m worker --pool-size 4

SIGINT/SIGTERM stop the pool after the in-flight jobs finish.
"""

import argparse
import signal
import sys
from types import FrameType

from aws_lambda_powertools import Logger

from core.config import get_settings
from core.infrastructure.aws.sqs_job_queue import SQSJobQueue
from core.jobs.processor import JobProcessor
from core.jobs.worker_pool import WorkerPool
from core.utils.constants import SQS_WAIT_TIME_SECONDS

logger = Logger(service="image-worker", UTC=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process image transform jobs")

    parser.add_argument(
        "--pool-size",
        type=int,
        default=None,
        help="Number of worker threads (default: WORKER_POOL_SIZE)",
    )
    parser.add_argument(
        "--wait-seconds",
        type=int,
        default=SQS_WAIT_TIME_SECONDS,
        help="Queue long-poll duration",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()

    size = args.pool_size or settings.worker_pool_size
    queue = SQSJobQueue(settings=settings)
    pool = WorkerPool(
        JobProcessor(settings=settings, queue=queue),
        queue,
        size,
        wait_seconds=args.wait_seconds,
    )

    def _shutdown(signum: int, _frame: FrameType | None) -> None:
        logger.info("Shutdown requested", extra={"signal": signal.Signals(signum).name})
        pool.request_stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info("Starting image worker", extra={"pool_size": size})
    pool.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
