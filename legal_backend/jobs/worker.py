"""
RQ Worker
=========

Runs OCR/transcription poll jobs queued by the API.

    python -m legal_backend.jobs.worker
    python -m legal_backend.jobs.worker --queues high --burst
"""

import argparse
import logging
from typing import List, Optional

from rq import Worker

from .queue import ALL_QUEUES, redis_connection

logger = logging.getLogger(__name__)

WORKER_TTL = 420
MONITORING_INTERVAL = 5


def start_worker(queues: Optional[List[str]] = None, burst: bool = False, log_level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    queues = queues or list(ALL_QUEUES)
    worker = Worker(
        queues,
        connection=redis_connection(),
        worker_ttl=WORKER_TTL,
        job_monitoring_interval=MONITORING_INTERVAL,
    )

    logger.info(f"Poll worker listening on {', '.join(queues)}{' (burst)' if burst else ''}")
    worker.work(burst=burst)


def main():
    parser = argparse.ArgumentParser(description="Case.dev poll worker for the legal workspace backend")
    parser.add_argument("--queues", "-q", nargs="+", choices=ALL_QUEUES, default=list(ALL_QUEUES))
    parser.add_argument("--burst", "-b", action="store_true", help="Exit once the queues are empty")
    parser.add_argument("--log-level", "-l", default="INFO")

    args = parser.parse_args()
    start_worker(queues=args.queues, burst=args.burst, log_level=args.log_level)


if __name__ == "__main__":
    main()
