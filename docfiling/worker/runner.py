"""
Worker entry point.
Run with: python -m docfiling.worker.runner [queue ...]

With no arguments the worker listens on both the batch and export queues,
batch first so bulk uploads are not starved by large exports.
"""

import sys
from typing import Optional

import structlog
from redis import Redis
from rq import Worker

from docfiling.config import settings
from docfiling.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def known_queues() -> list[str]:
    return [settings.BULK_QUEUE_NAME, settings.EXPORT_QUEUE_NAME]


def select_queues(requested: list[str]) -> list[str]:
    """Validate queue names from the command line, keeping their order."""
    if not requested:
        return known_queues()
    unknown = [q for q in requested if q not in known_queues()]
    if unknown:
        raise SystemExit(f"Unknown queue(s): {', '.join(unknown)}. Known: {', '.join(known_queues())}")
    return list(dict.fromkeys(requested))


def main(argv: Optional[list[str]] = None):
    """Start the RQ worker."""
    setup_logging(component="worker")
    queues = select_queues(sys.argv[1:] if argv is None else argv)

    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker(
        queues=queues,
        connection=conn,
        name=f"docfiling-worker-{settings.APP_VERSION}-{'-'.join(queues)}",
    )

    logger.info("worker_starting", queues=queues, job_timeout=settings.JOB_TIMEOUT_SECONDS)
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    main()
