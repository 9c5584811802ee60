"""
Pydantic schemas for the /api/v1/jobs endpoints.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class QueueStats(BaseModel):
    queue_name: str
    queued: int = 0
    started: int = 0
    finished: int = 0
    failed: int = 0
    deferred: int = 0
    workers: int = 0


class JobStatus(BaseModel):
    job_id: str
    queue_name: str
    target_type: str
    target_id: str
    status: str
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Any] = None
