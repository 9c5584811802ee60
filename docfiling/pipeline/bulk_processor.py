"""
Bulk upload processing.

ItemAnalysisPipeline runs one item through upload, classification,
duplicate check, naming and persistence. BulkQueueProcessor drives it over
an in-process FIFO queue for one batch (foreground mode). drain_batch()
drives it over the batch's pending items in the store (background mode,
run from an RQ job).

Items are processed strictly one at a time. A failing item is marked
error and the batch moves on; only abort() stops a run early, and it waits
for the in-flight item to finish.
"""

import asyncio
import time
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from docfiling.clock import utcnow
from docfiling.config import settings
from docfiling.errors import BatchStateError, ItemNotRunnableError, NotFoundError
from docfiling.models.enums import BatchStatus, ItemStatus, ProcessingMode
from docfiling.observability.metrics import (
    bulk_batches_active,
    bulk_item_duration_seconds,
    bulk_items_processed_total,
)
from docfiling.pipeline.document_naming import (
    INITIAL_VERSION,
    generate_document_name,
    shortcode_from_client_name,
)
from docfiling.pipeline.intelligence import build_extracted_data, build_extracted_intelligence
from docfiling.pipeline.state_machine import (
    aggregate_batch_status,
    can_transition,
    ensure_transition,
)
from docfiling.repositories.base import BulkRepository
from docfiling.schemas.bulk import (
    BatchInfo,
    ClassifierDocument,
    ItemRecord,
    ProcessingSummary,
    UploadedFile,
)
from docfiling.schemas.classification import ChecklistSuggestion
from docfiling.services.base import (
    BlobStorage,
    ClassificationService,
    DuplicateCheckService,
    ServiceError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

FALLBACK_LABEL = "Other"

ProgressCallback = Callable[[int, int, str], None]
ErrorCallback = Callable[[str, str], None]
CompleteCallback = Callable[[ProcessingSummary], None]


def batch_shortcode(batch: BatchInfo) -> str:
    """Project shortcode if known, else one derived from the client name."""
    return batch.project_shortcode or shortcode_from_client_name(batch.client_name)


def checklist_suggestions(matches: Optional[list[Any]]) -> list[ChecklistSuggestion]:
    """Keep well-formed checklist matches from the classifier, drop the rest."""
    suggestions = []
    for match in matches or []:
        if not isinstance(match, dict):
            continue
        item_id = match.get("itemId") or match.get("item_id")
        item_name = match.get("itemName") or match.get("item_name")
        if not item_id or not item_name:
            continue
        try:
            confidence = min(max(float(match.get("confidence", 0.0)), 0.0), 1.0)
        except (TypeError, ValueError):
            confidence = 0.0
        suggestions.append(
            ChecklistSuggestion(
                item_id=str(item_id),
                item_name=str(item_name),
                category=match.get("category"),
                confidence=confidence,
                reasoning=match.get("reasoning"),
            )
        )
    return suggestions


def auto_select_checklist(suggestions: list[ChecklistSuggestion]) -> list[str]:
    """Pre-select only the single best suggestion, and only if it is confident enough."""
    if not suggestions:
        return []
    best = max(suggestions, key=lambda s: s.confidence)
    if best.confidence >= settings.CHECKLIST_AUTOSELECT_THRESHOLD:
        return [best.item_id]
    return []


class ItemAnalysisPipeline:
    """Per-item steps shared by foreground and background processing."""

    def __init__(
        self,
        repo: BulkRepository,
        classifier: ClassificationService,
        duplicates: DuplicateCheckService,
        blobs: BlobStorage,
        clock: Callable[[], datetime] = utcnow,
        call_timeout: Optional[float] = None,
    ):
        self.repo = repo
        self.classifier = classifier
        self.duplicates = duplicates
        self.blobs = blobs
        self.clock = clock
        self.call_timeout = call_timeout or settings.EXTERNAL_CALL_TIMEOUT_SECONDS

    async def _call(self, service_name: str, operation: str, call: Awaitable[T]) -> T:
        """Bound one external call so a hung service cannot stall the batch."""
        try:
            return await asyncio.wait_for(call, timeout=self.call_timeout)
        except asyncio.TimeoutError as e:
            raise ServiceError(
                service_name, "TIMEOUT", f"{operation} exceeded {self.call_timeout:g}s"
            ) from e

    async def _load_item(self, item_id: str) -> ItemRecord:
        item = await self.repo.get_item(item_id)
        if item is None:
            raise NotFoundError("item", item_id)
        return item

    async def run(self, item_id: str, batch: BatchInfo, file: Optional[UploadedFile] = None) -> ItemRecord:
        """
        Process one item and return it in ready_for_review. Raises on any
        failure; the caller decides how to record it.

        Without a file the bytes are fetched from blob storage using the
        item's storage id (background mode, where files were uploaded up front).
        """
        item = await self._load_item(item_id)
        if not can_transition(item.status, ItemStatus.PROCESSING):
            raise ItemNotRunnableError(item_id, item.status.value)
        item = await self.repo.update_item(
            item_id, status=ItemStatus.PROCESSING, error=None, updated_at=self.clock()
        )

        # 1. Bytes in blob storage
        storage_id = item.file_storage_id
        if file is None:
            if not storage_id:
                raise BatchStateError(f"item {item_id} has no file and no stored upload")
            content = await self._call(
                self.blobs.service_name, "download", self.blobs.download(storage_id)
            )
            file = UploadedFile(name=item.file_name, content=content, content_type=item.file_type)
        elif not storage_id:
            storage_id = await self._call(self.blobs.service_name, "upload", self.blobs.upload(file))

        # 2. Classification
        document = await self._call(
            self.classifier.service_name, "classify", self.classifier.classify(file, batch)
        )

        # 3. Duplicate check, only meaningful within a client
        is_duplicate = False
        duplicate_of = None
        if batch.client_id:
            result = await self._call(
                self.duplicates.service_name,
                "check",
                self.duplicates.check(item.file_name, batch.client_id, batch.project_id),
            )
            if result.is_duplicate and result.existing_documents:
                is_duplicate = True
                duplicate_of = result.existing_documents[0].id

        # 4. Naming: duplicates wait for a human to pick minor/significant
        changes = self._analysis_changes(document, batch, is_duplicate)
        changes.update(
            file_storage_id=storage_id,
            is_duplicate=is_duplicate,
            duplicate_of_document_id=duplicate_of,
        )

        # 5. Persist
        updated = await self.repo.update_item(
            item_id,
            status=ItemStatus.READY_FOR_REVIEW,
            updated_at=self.clock(),
            **changes,
        )
        logger.info(
            "bulk_item_analyzed",
            item_id=item_id,
            batch_id=batch.batch_id,
            file_type=updated.file_type_detected,
            category=updated.category,
            confidence=updated.confidence,
            is_duplicate=is_duplicate,
        )
        return updated

    def _analysis_changes(
        self,
        document: ClassifierDocument,
        batch: BatchInfo,
        is_duplicate: bool,
    ) -> dict[str, Any]:
        category = document.category or FALLBACK_LABEL
        confidence = document.confidence
        if confidence is None:
            confidence = settings.DEFAULT_DOCUMENT_CONFIDENCE
        confidence = min(max(confidence, 0.0), 1.0)

        code = document.generated_document_code
        version = None
        if not is_duplicate:
            version = INITIAL_VERSION
            if not code:
                code = generate_document_name(
                    batch_shortcode(batch),
                    category,
                    batch.is_internal,
                    batch.uploader_initials,
                    INITIAL_VERSION,
                    self.clock(),
                )

        intelligence = build_extracted_intelligence(document.intelligence_fields)
        extracted_data = document.extracted_data
        if intelligence is not None and intelligence.fields:
            extracted_data = build_extracted_data(intelligence.fields)

        suggestions = checklist_suggestions(document.checklist_matches)

        return {
            "summary": document.summary or "",
            "file_type_detected": document.file_type or FALLBACK_LABEL,
            "category": category,
            "target_folder": document.suggested_folder,
            "confidence": confidence,
            "generated_document_code": code,
            "version": version,
            "suggested_checklist_items": suggestions or None,
            "checklist_item_ids": auto_select_checklist(suggestions) or None,
            "extracted_intelligence": intelligence,
            "extracted_data": extracted_data,
            "document_analysis": document.document_analysis,
            "classification_reasoning": document.classification_reasoning,
        }

    async def mark_failed(self, item_id: str, message: str) -> None:
        """Record an item failure. Never raises: a broken item must not stop the batch."""
        try:
            item = await self.repo.get_item(item_id)
            if item is None:
                logger.warning("bulk_item_missing", item_id=item_id)
                return
            if not can_transition(item.status, ItemStatus.ERROR):
                logger.warning("bulk_item_error_not_recorded", item_id=item_id, status=item.status.value)
                return
            await self.repo.update_item(
                item_id, status=ItemStatus.ERROR, error=message, updated_at=self.clock()
            )
        except Exception as e:
            logger.error("bulk_item_error_record_failed", item_id=item_id, error=str(e))


def _error_message(error: Exception) -> str:
    return str(error) or type(error).__name__


class BulkQueueProcessor:
    """
    Foreground processor for one batch. add_item() and abort() are the only
    ways to change what a run does; process_queue() drains FIFO.
    """

    def __init__(
        self,
        pipeline: ItemAnalysisPipeline,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ):
        self.pipeline = pipeline
        self.repo = pipeline.repo
        self.on_progress = on_progress
        self.on_error = on_error
        self.on_complete = on_complete
        self.batch_info: Optional[BatchInfo] = None
        self._queue: deque[tuple[str, UploadedFile]] = deque()
        self._processing = False
        self._aborted = False
        self._counted = (0, 0)

    def set_batch_info(self, batch_info: BatchInfo) -> None:
        self.batch_info = batch_info

    def add_item(self, item_id: str, file: UploadedFile) -> None:
        self._queue.append((item_id, file))

    def abort(self) -> None:
        """Stop after the in-flight item. Remaining items stay queued."""
        self._aborted = True

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def process_queue(self) -> ProcessingSummary:
        summary = ProcessingSummary()
        if self._processing or not self._queue or self.batch_info is None:
            return summary

        batch_id = self.batch_info.batch_id
        self._processing = True
        self._aborted = False
        bulk_batches_active.inc()
        log = logger.bind(batch_id=batch_id)

        try:
            batch = await self.repo.get_batch(batch_id)
            if batch is None:
                raise NotFoundError("batch", batch_id)
            # Counters carry on from earlier runs of the same batch
            self._counted = (batch.processed_files, batch.error_files)

            await self._set_batch_status(batch_id, BatchStatus.PROCESSING, summary)
            log.info("bulk_processing_started", queued=len(self._queue))

            while self._queue and not self._aborted:
                item_id, file = self._queue.popleft()
                start = time.monotonic()
                try:
                    await self.pipeline.run(item_id, self.batch_info, file)
                    summary.processed += 1
                    bulk_items_processed_total.labels(outcome="success").inc()
                except ItemNotRunnableError as e:
                    log.warning("bulk_item_skipped", item_id=item_id, status=e.status)
                except Exception as e:
                    message = _error_message(e)
                    summary.errors += 1
                    bulk_items_processed_total.labels(outcome="error").inc()
                    log.warning("bulk_item_failed", item_id=item_id, file_name=file.name, error=message)
                    await self.pipeline.mark_failed(item_id, message)
                    if self.on_error:
                        self.on_error(item_id, message)
                finally:
                    bulk_item_duration_seconds.labels(mode=ProcessingMode.FOREGROUND.value).observe(
                        time.monotonic() - start
                    )

                done = summary.processed + summary.errors
                if self.on_progress:
                    self.on_progress(done, done + len(self._queue), item_id)
                await self._set_batch_status(batch_id, BatchStatus.PROCESSING, summary)

            if not self._queue:
                await self._set_batch_status(batch_id, BatchStatus.REVIEW, summary, finished=True)
                log.info("bulk_processing_complete", processed=summary.processed, errors=summary.errors)
                if self.on_complete:
                    self.on_complete(summary)
            else:
                log.info("bulk_processing_aborted", remaining=len(self._queue))
        finally:
            self._processing = False
            bulk_batches_active.dec()

        return summary

    async def _set_batch_status(
        self,
        batch_id: str,
        status: BatchStatus,
        summary: ProcessingSummary,
        finished: bool = False,
    ) -> None:
        batch = await self.repo.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("batch", batch_id)
        ensure_transition(batch.status, status)

        now = self.pipeline.clock()
        changes: dict[str, Any] = {
            "status": status,
            "processed_files": self._counted[0] + summary.processed,
            "error_files": self._counted[1] + summary.errors,
            "updated_at": now,
        }
        if batch.started_processing_at is None:
            changes["started_processing_at"] = now
        if finished:
            changes["completed_processing_at"] = now
        await self.repo.update_batch(batch_id, **changes)


async def drain_batch(
    pipeline: ItemAnalysisPipeline,
    batch_id: str,
    batch_info: Optional[BatchInfo] = None,
) -> ProcessingSummary:
    """
    Background mode: process every pending item of a stored batch, oldest
    first, then settle the batch status from its items.
    """
    repo = pipeline.repo
    batch = await repo.get_batch(batch_id)
    if batch is None:
        raise NotFoundError("batch", batch_id)
    if batch.status != BatchStatus.PROCESSING:
        raise BatchStateError(f"batch {batch_id} is {batch.status.value}, expected processing")

    info = batch_info or BatchInfo.from_batch(batch)
    summary = ProcessingSummary()
    log = logger.bind(batch_id=batch_id)
    log.info("bulk_background_started")
    bulk_batches_active.inc()

    try:
        while True:
            item = await repo.next_pending_item(batch_id)
            if item is None:
                break

            start = time.monotonic()
            failed = False
            try:
                await pipeline.run(item.id, info)
                summary.processed += 1
                bulk_items_processed_total.labels(outcome="success").inc()
            except Exception as e:
                failed = True
                message = _error_message(e)
                summary.errors += 1
                bulk_items_processed_total.labels(outcome="error").inc()
                log.warning("bulk_item_failed", item_id=item.id, file_name=item.file_name, error=message)
                await pipeline.mark_failed(item.id, message)
            finally:
                bulk_item_duration_seconds.labels(mode=ProcessingMode.BACKGROUND.value).observe(
                    time.monotonic() - start
                )

            current = await repo.get_batch(batch_id)
            await repo.update_batch(
                batch_id,
                processed_files=current.processed_files + (0 if failed else 1),
                error_files=current.error_files + (1 if failed else 0),
                updated_at=pipeline.clock(),
            )

            reloaded = await repo.get_item(item.id)
            if reloaded is not None and reloaded.status == ItemStatus.PENDING:
                # Could not be moved out of pending; stop instead of looping on it
                log.error("bulk_item_stuck_pending", item_id=item.id)
                break

        items = await repo.list_items(batch_id)
        final = aggregate_batch_status(i.status for i in items)
        if final != BatchStatus.PROCESSING:
            now = pipeline.clock()
            await repo.update_batch(
                batch_id, status=final, completed_processing_at=now, updated_at=now
            )
        log.info(
            "bulk_background_complete",
            processed=summary.processed,
            errors=summary.errors,
            status=final.value,
        )
    finally:
        bulk_batches_active.dec()

    return summary
