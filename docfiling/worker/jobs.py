"""
RQ job functions for background batch processing and training exports.
These are the entry points that the worker calls.
"""

import structlog
from redis import Redis
from rq import Queue

from docfiling.config import settings

logger = structlog.get_logger(__name__)


def get_queue(name: str) -> Queue:
    """Get a job queue by name."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(name, connection=conn)


def _enqueue(queue_name: str, func, target_id: str) -> str:
    q = get_queue(queue_name)
    job = q.enqueue(
        func,
        target_id,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
        result_ttl=86400,  # Keep results for 24 hours
        failure_ttl=604800,  # Keep failures for 7 days
    )
    logger.info("job_enqueued", queue=queue_name, target_id=target_id, job_id=job.id)
    return job.id


def enqueue_batch_processing(batch_id: str) -> str:
    """Enqueue a background drain of a batch's pending items. Returns the job ID."""
    return _enqueue(settings.BULK_QUEUE_NAME, process_batch_job, batch_id)


def enqueue_export_generation(export_id: str) -> str:
    """Enqueue training export generation. Returns the job ID."""
    return _enqueue(settings.EXPORT_QUEUE_NAME, generate_export_job, export_id)


# ── Job functions (run inside the RQ worker process) ────────

def process_batch_job(batch_id: str) -> dict:
    """Process every pending item of a background batch."""
    import asyncio

    logger.info("job_started", job="process_batch", batch_id=batch_id)

    try:
        result = asyncio.run(_process_batch_async(batch_id))
        logger.info("job_completed", job="process_batch", batch_id=batch_id, **result)
        return result
    except Exception as e:
        logger.error("job_failed", job="process_batch", batch_id=batch_id, error=str(e))
        raise


def generate_export_job(export_id: str) -> dict:
    """Build the JSONL artifact for a training export."""
    import asyncio

    logger.info("job_started", job="generate_export", export_id=export_id)

    try:
        result = asyncio.run(_generate_export_async(export_id))
        logger.info("job_completed", job="generate_export", export_id=export_id, status=result["status"])
        return result
    except Exception as e:
        logger.error("job_failed", job="generate_export", export_id=export_id, error=str(e))
        raise


async def _process_batch_async(batch_id: str) -> dict:
    from docfiling.dependencies import (
        get_blob_storage,
        get_bulk_repository,
        get_classifier,
        get_duplicate_checker,
        get_item_pipeline,
    )
    from docfiling.models.database import close_db
    from docfiling.pipeline.bulk_processor import drain_batch

    pipeline = get_item_pipeline(
        get_bulk_repository(), get_classifier(), get_duplicate_checker(), get_blob_storage()
    )
    try:
        summary = await drain_batch(pipeline, batch_id)
    finally:
        await close_db()
    return summary.model_dump()


async def _generate_export_async(export_id: str) -> dict:
    from docfiling.dependencies import (
        get_artifact_store,
        get_correction_repository,
        get_export_repository,
    )
    from docfiling.feedback.training_export import TrainingExportService
    from docfiling.models.database import close_db

    service = TrainingExportService(
        get_export_repository(), get_correction_repository(), get_artifact_store()
    )
    try:
        export = await service.generate(export_id)
    finally:
        await close_db()
    return {
        "status": export.status.value,
        "total_examples": export.stats.total_examples,
        "error": export.error,
    }
