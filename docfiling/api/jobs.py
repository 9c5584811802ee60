"""
/api/v1/jobs endpoints.
Queue statistics and job status for batch processing and export generation.
Only the two configured queues are exposed.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job
from rq.worker import Worker

from docfiling.config import settings
from docfiling.dependencies import verify_api_key
from docfiling.schemas.jobs import JobStatus, QueueStats

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])

def _get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL)


def _queue_target(queue_name: str) -> str:
    if queue_name == settings.BULK_QUEUE_NAME:
        return "batch"
    if queue_name == settings.EXPORT_QUEUE_NAME:
        return "training_export"
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown queue: {queue_name}")


@router.get("/queues/{queue_name}/stats", response_model=QueueStats)
async def queue_stats(queue_name: str):
    """Current registry counts and worker count for one queue."""
    _queue_target(queue_name)
    try:
        q = Queue(queue_name, connection=_get_redis())
        return QueueStats(
            queue_name=queue_name,
            queued=len(q),
            started=q.started_job_registry.count,
            finished=q.finished_job_registry.count,
            failed=q.failed_job_registry.count,
            deferred=q.deferred_job_registry.count,
            workers=len(Worker.all(queue=q)),
        )
    except RedisError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Queue unavailable: {e}")


@router.get("/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str):
    """Status of a batch or export job, with the id of the record it acts on."""
    try:
        job = Job.fetch(job_id, connection=_get_redis())
    except NoSuchJobError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job not found: {job_id}")
    except RedisError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Queue unavailable: {e}")

    if job.origin not in (settings.BULK_QUEUE_NAME, settings.EXPORT_QUEUE_NAME):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job not found: {job_id}")

    return JobStatus(
        job_id=job_id,
        queue_name=job.origin,
        target_type=_queue_target(job.origin),
        target_id=job.args[0] if job.args else "",
        status=job.get_status(),
        enqueued_at=job.enqueued_at,
        started_at=job.started_at,
        ended_at=job.ended_at,
        error_message=job.exc_info.splitlines()[-1] if job.exc_info else None,
        result=job.return_value() if job.is_finished else None,
    )
