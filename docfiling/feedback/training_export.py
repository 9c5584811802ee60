"""
Training export jobs: corrections -> fine-tuning examples.

create_export() records a pending job and hands its id to a scheduler
(the RQ queue in production). generate() runs in the worker, writes the
JSONL artifact and settles the job as completed or error. The job record is
the durable outcome; no artifact survives a failed run.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from docfiling.clock import utcnow
from docfiling.errors import NotFoundError
from docfiling.models.enums import ExportStatus
from docfiling.observability.metrics import export_examples_total, export_jobs_total
from docfiling.pipeline.state_machine import ensure_transition
from docfiling.pipeline.training_formats import (
    build_export_stats,
    filter_corrections,
    format_training_example,
    to_jsonl,
)
from docfiling.repositories.base import CorrectionRepository, ExportRepository
from docfiling.schemas.exports import (
    CreateExportRequest,
    ExportDetail,
    ExportStats,
    TrainingExportRecord,
)
from docfiling.storage.artifact_store import ArtifactStore
from docfiling.storage.paths import export_artifact_path

logger = structlog.get_logger(__name__)

# Receives the export id, returns a job id (or None when run inline)
ExportScheduler = Callable[[str], Optional[str]]


class TrainingExportService:
    def __init__(
        self,
        exports: ExportRepository,
        corrections: CorrectionRepository,
        store: ArtifactStore,
        scheduler: Optional[ExportScheduler] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.exports = exports
        self.corrections = corrections
        self.store = store
        self.scheduler = scheduler
        self.clock = clock

    async def create_export(self, request: CreateExportRequest) -> TrainingExportRecord:
        export = TrainingExportRecord(
            id=str(uuid.uuid4()),
            export_name=request.export_name,
            exported_by=request.exported_by,
            exported_at=self.clock(),
            criteria=request.criteria,
            stats=ExportStats(),
            export_format=request.format,
            status=ExportStatus.PENDING,
        )
        await self.exports.insert(export)
        logger.info("export_created", export_id=export.id, format=export.export_format.value)

        if self.scheduler is not None:
            try:
                job_id = self.scheduler(export.id)
            except Exception as e:
                logger.error("export_schedule_failed", export_id=export.id, error=str(e))
                return await self._fail(export.id, f"could not schedule generation: {e}")
            logger.info("export_scheduled", export_id=export.id, job_id=job_id)

        return export

    async def generate(self, export_id: str) -> TrainingExportRecord:
        """
        Build and write the artifact. Never raises for generation problems:
        they land in the job's error field. NotFoundError and illegal status
        moves still raise, since there is no job to record them on.
        """
        export = await self.exports.get(export_id)
        if export is None:
            raise NotFoundError("training_export", export_id)
        ensure_transition(export.status, ExportStatus.GENERATING)
        await self.exports.update(export_id, status=ExportStatus.GENERATING)
        logger.info("export_generating", export_id=export_id)

        artifact_path = export_artifact_path(export_id)
        written = False
        try:
            selected = filter_corrections(await self.corrections.list_all(), export.criteria)
            examples = [format_training_example(c, export.export_format) for c in selected]
            stats = build_export_stats(selected)

            self.store.save_text(artifact_path, to_jsonl(examples))
            written = True
            completed = await self.exports.update(
                export_id,
                status=ExportStatus.COMPLETED,
                stats=stats,
                artifact_path=artifact_path,
                error=None,
            )
        except Exception as e:
            logger.error("export_failed", export_id=export_id, error=str(e), exc_info=True)
            if written:
                self.store.delete(artifact_path)
            return await self._fail(export_id, str(e) or type(e).__name__)

        export_jobs_total.labels(status=ExportStatus.COMPLETED.value).inc()
        export_examples_total.labels(format=export.export_format.value).inc(stats.total_examples)
        logger.info("export_completed", export_id=export_id, examples=stats.total_examples)
        return completed

    async def _fail(self, export_id: str, message: str) -> TrainingExportRecord:
        export_jobs_total.labels(status=ExportStatus.ERROR.value).inc()
        return await self.exports.update(
            export_id,
            status=ExportStatus.ERROR,
            error=message,
            artifact_path=None,
        )

    async def get_export(self, export_id: str) -> Optional[ExportDetail]:
        """The job, plus a download path when its artifact is on disk."""
        export = await self.exports.get(export_id)
        if export is None:
            return None
        download_path = None
        if export.artifact_path and self.store.exists(export.artifact_path):
            download_path = str(self.store.full_path(export.artifact_path))
        return ExportDetail(**export.model_dump(), download_path=download_path)

    async def list_exports(self, user_id: str) -> list[TrainingExportRecord]:
        return await self.exports.list_by_user(user_id)

    def read_artifact(self, export: TrainingExportRecord) -> str:
        if not export.artifact_path:
            raise FileNotFoundError(f"Export {export.id} has no artifact")
        return self.store.load_text(export.artifact_path)
