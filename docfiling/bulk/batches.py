"""
Bulk upload batch lifecycle: creation, items, reviewer edits, version
resolution for duplicates and filing into documents.

Filing is where the feedback loop closes. Fields the reviewer changed away
from the AI's original values become a FilingCorrection.
"""

import math
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from docfiling.clock import utcnow
from docfiling.config import settings
from docfiling.errors import BatchStateError, FilingError, NotFoundError
from docfiling.feedback.corrections import CorrectionService, infer_client_type
from docfiling.models.enums import (
    BatchScope,
    BatchStatus,
    CorrectableField,
    ItemStatus,
    ProcessingMode,
    VersionType,
)
from docfiling.pipeline.bulk_processor import batch_shortcode
from docfiling.pipeline.document_naming import (
    INITIAL_VERSION,
    generate_document_name,
    get_document_base_pattern,
    get_user_initials,
    next_version,
)
from docfiling.pipeline.state_machine import aggregate_batch_status, ensure_transition
from docfiling.repositories.base import BulkRepository
from docfiling.schemas.bulk import (
    BackgroundStartResponse,
    BatchInfo,
    BatchRecord,
    BatchStats,
    CreateBatchRequest,
    DocumentRecord,
    FileItemResponse,
    ItemRecord,
    SetVersionTypeResponse,
    UpdateItemDetailsRequest,
)
from docfiling.schemas.classification import (
    FIELD_ATTRIBUTES,
    AIPrediction,
    ChecklistSelection,
    UserCorrection,
)
from docfiling.schemas.feedback import CaptureCorrectionRequest

logger = structlog.get_logger(__name__)

# Receives the batch id, returns a job id
BatchScheduler = Callable[[str], Optional[str]]

# Reviewer-editable item attribute -> correctable field (see FIELD_ATTRIBUTES for the
# matching attribute on UserCorrection)
_EDITABLE_FIELDS = {
    "file_type_detected": CorrectableField.FILE_TYPE,
    "category": CorrectableField.CATEGORY,
    "target_folder": CorrectableField.TARGET_FOLDER,
    "is_internal": CorrectableField.IS_INTERNAL,
}

_CHECKLIST_EDIT = "checklist_items"


def _original_key(attr: str) -> str:
    return f"original_{attr}"


class BatchService:
    def __init__(
        self,
        repo: BulkRepository,
        corrections: CorrectionService,
        scheduler: Optional[BatchScheduler] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.corrections = corrections
        self.scheduler = scheduler
        self.clock = clock

    # ── Batches ──────────────────────────────────────────────

    async def create_batch(self, request: CreateBatchRequest) -> BatchRecord:
        if request.scope == BatchScope.CLIENT and not request.client_id:
            raise FilingError("Client scope requires a client_id", "ERR_INVALID_BATCH")

        now = self.clock()
        batch = BatchRecord(
            id=str(uuid.uuid4()),
            scope=request.scope,
            client_id=request.client_id,
            client_name=request.client_name,
            client_type=request.client_type or infer_client_type(request.client_name),
            project_id=request.project_id,
            project_name=request.project_name,
            project_shortcode=request.project_shortcode,
            internal_folder_id=request.internal_folder_id,
            internal_folder_name=request.internal_folder_name,
            personal_folder_id=request.personal_folder_id,
            personal_folder_name=request.personal_folder_name,
            is_internal=request.is_internal,
            instructions=request.instructions,
            uploader_initials=get_user_initials(request.uploader_name),
            user_id=request.user_id,
            processing_mode=request.processing_mode,
            status=BatchStatus.UPLOADING,
            total_files=request.total_files,
            created_at=now,
            updated_at=now,
        )
        await self.repo.create_batch(batch)
        logger.info(
            "batch_created",
            batch_id=batch.id,
            scope=batch.scope.value,
            total_files=batch.total_files,
            mode=batch.processing_mode.value,
        )
        return batch

    async def get_batch(self, batch_id: str) -> BatchRecord:
        batch = await self.repo.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("batch", batch_id)
        return batch

    async def batch_info(self, batch_id: str, **extra: Any) -> BatchInfo:
        return BatchInfo.from_batch(await self.get_batch(batch_id), **extra)

    async def get_item(self, item_id: str) -> ItemRecord:
        item = await self.repo.get_item(item_id)
        if item is None:
            raise NotFoundError("item", item_id)
        return item

    async def list_items(self, batch_id: str, status: Optional[ItemStatus] = None) -> list[ItemRecord]:
        await self.get_batch(batch_id)
        return await self.repo.list_items(batch_id, status=status)

    async def add_item(
        self,
        batch_id: str,
        file_name: str,
        file_size: int,
        file_type: str,
        file_storage_id: Optional[str] = None,
    ) -> ItemRecord:
        """New pending item. It inherits the batch's internal flag."""
        batch = await self.get_batch(batch_id)
        if batch.status == BatchStatus.COMPLETED:
            raise BatchStateError(f"batch {batch_id} is completed")

        now = self.clock()
        item = ItemRecord(
            id=str(uuid.uuid4()),
            batch_id=batch_id,
            file_name=file_name,
            file_size=file_size,
            file_type=file_type,
            file_storage_id=file_storage_id,
            status=ItemStatus.PENDING,
            is_internal=batch.is_internal,
            created_at=now,
            updated_at=now,
        )
        await self.repo.create_item(item)
        logger.info("batch_item_added", batch_id=batch_id, item_id=item.id, file_name=file_name)
        return item

    async def get_batch_stats(self, batch_id: str) -> BatchStats:
        batch = await self.get_batch(batch_id)
        items = await self.repo.list_items(batch_id)

        counts = {status.value: 0 for status in ItemStatus}
        for item in items:
            counts[item.status.value] += 1
        duplicates = [i for i in items if i.is_duplicate]

        return BatchStats(
            batch=batch,
            items=len(items),
            status_counts=counts,
            duplicates_count=len(duplicates),
            unresolved_duplicates=sum(1 for i in duplicates if i.version_type is None),
        )

    async def start_background_processing(self, batch_id: str) -> BackgroundStartResponse:
        """
        Hand an uploaded batch to the worker. Only batches still in
        uploading can start; the estimate is a flat per-file figure.
        """
        batch = await self.get_batch(batch_id)
        if batch.status != BatchStatus.UPLOADING:
            raise BatchStateError(
                f"batch {batch_id} is {batch.status.value}; background processing needs uploading"
            )

        items = await self.repo.list_items(batch_id)
        file_count = max(batch.total_files, len(items))
        seconds = file_count * settings.ESTIMATED_SECONDS_PER_FILE
        now = self.clock()
        estimated = now + timedelta(seconds=seconds)

        await self.repo.update_batch(
            batch_id,
            processing_mode=ProcessingMode.BACKGROUND,
            status=BatchStatus.PROCESSING,
            started_processing_at=now,
            estimated_completion_time=estimated,
            updated_at=now,
        )

        job_id = self.scheduler(batch_id) if self.scheduler else None
        logger.info("batch_background_started", batch_id=batch_id, files=file_count, job_id=job_id)
        return BackgroundStartResponse(
            batch_id=batch_id,
            estimated_completion_time=estimated,
            estimated_minutes=math.ceil(seconds / 60),
            job_id=job_id,
        )

    # ── Review ───────────────────────────────────────────────

    async def update_item_details(self, item_id: str, request: UpdateItemDetailsRequest) -> ItemRecord:
        """
        Apply reviewer edits. The AI's value for each edited field is kept
        in user_edits the first time that field changes, so filing compares
        the original prediction with the final choice.
        """
        item = await self.get_item(item_id)
        if item.status == ItemStatus.FILED:
            raise BatchStateError(f"item {item_id} is already filed")

        updates = request.model_dump(exclude_unset=True, exclude_none=True)
        edits = dict(item.user_edits)

        for attr in _EDITABLE_FIELDS:
            if attr in updates and updates[attr] != getattr(item, attr):
                edits[attr] = True
                edits.setdefault(_original_key(attr), getattr(item, attr))

        if "checklist_item_ids" in updates:
            edits[_CHECKLIST_EDIT] = True
            if _original_key("checklist_item_ids") not in edits:
                edits[_original_key("checklist_item_ids")] = list(item.checklist_item_ids or [])
                edits["original_suggested_checklist_items"] = [
                    s.model_dump() for s in item.suggested_checklist_items or []
                ]

        updated = await self.repo.update_item(
            item_id, user_edits=edits, updated_at=self.clock(), **updates
        )
        logger.info("batch_item_edited", item_id=item_id, fields=sorted(updates))
        return updated

    async def set_version_type(self, item_id: str, version_type: VersionType) -> SetVersionTypeResponse:
        """
        Resolve a duplicate as a minor or significant new version. The version
        is bumped from the highest one already filed in the duplicate's family.
        """
        item = await self.get_item(item_id)
        if item.status == ItemStatus.FILED:
            raise BatchStateError(f"item {item_id} is already filed")
        batch = await self.get_batch(item.batch_id)

        existing_versions = await self._family_versions(item)
        version = next_version(existing_versions, version_type == VersionType.SIGNIFICANT)

        code = item.generated_document_code
        if item.category:
            code = generate_document_name(
                batch_shortcode(BatchInfo.from_batch(batch)),
                item.category,
                item.is_internal,
                batch.uploader_initials,
                version,
                self.clock(),
            )

        await self.repo.update_item(
            item_id,
            version_type=version_type,
            version=version,
            generated_document_code=code,
            updated_at=self.clock(),
        )
        logger.info("batch_item_versioned", item_id=item_id, version=version, version_type=version_type.value)
        return SetVersionTypeResponse(item_id=item_id, version=version, generated_document_code=code)

    async def _family_versions(self, item: ItemRecord) -> list[str]:
        if not item.duplicate_of_document_id:
            return []
        original = await self.repo.get_document(item.duplicate_of_document_id)
        if original is None:
            return []

        versions = [original.version]
        base = get_document_base_pattern(original.document_code or "")
        if base:
            family = await self.repo.find_documents(client_id=original.client_id, code_prefix=f"{base}-")
            versions.extend(doc.version for doc in family)
        return versions

    # ── Filing ───────────────────────────────────────────────

    async def file_item(
        self,
        item_id: str,
        uploader_initials: Optional[str] = None,
    ) -> FileItemResponse:
        item = await self.get_item(item_id)
        if item.status == ItemStatus.FILED:
            raise BatchStateError(f"item {item_id} is already filed")
        ensure_transition(item.status, ItemStatus.FILED)
        if not item.file_type_detected or not item.category:
            raise BatchStateError(f"item {item_id} is missing analysis results")
        if item.is_duplicate and item.version_type is None:
            raise BatchStateError(
                "Duplicate detected - select a version type (minor/significant) before filing"
            )

        batch = await self.get_batch(item.batch_id)
        now = self.clock()

        folder_id = item.target_folder
        folder_type: Optional[str] = "project" if batch.project_id else "client"
        if batch.scope == BatchScope.INTERNAL:
            folder_id, folder_type = batch.internal_folder_id or item.target_folder, None
        elif batch.scope == BatchScope.PERSONAL:
            folder_id, folder_type = batch.personal_folder_id or item.target_folder, None

        document = DocumentRecord(
            id=str(uuid.uuid4()),
            file_name=item.file_name,
            file_size=item.file_size,
            file_type=item.file_type,
            file_storage_id=item.file_storage_id,
            summary=item.summary or "",
            file_type_detected=item.file_type_detected,
            category=item.category,
            confidence=item.confidence if item.confidence is not None else settings.DEFAULT_DOCUMENT_CONFIDENCE,
            client_id=batch.client_id,
            client_name=batch.client_name,
            project_id=batch.project_id,
            project_name=batch.project_name,
            document_code=item.generated_document_code,
            folder_id=folder_id,
            folder_type=folder_type,
            is_internal=item.is_internal,
            version=item.version or INITIAL_VERSION,
            uploader_initials=(uploader_initials or batch.uploader_initials).upper()[:3],
            previous_version_id=item.duplicate_of_document_id,
            extracted_data=item.extracted_data,
            document_analysis=item.document_analysis,
            classification_reasoning=item.classification_reasoning,
            scope=batch.scope,
            owner_id=batch.user_id if batch.scope == BatchScope.PERSONAL else None,
            uploaded_at=now,
        )
        await self.repo.create_document(document)
        await self.repo.update_item(item_id, status=ItemStatus.FILED, document_id=document.id, updated_at=now)
        await self._settle_batch(batch)

        correction_id = None
        request = self._correction_request(item, batch)
        if request is not None:
            correction = await self.corrections.capture(request)
            correction_id = correction.id

        logger.info(
            "batch_item_filed",
            item_id=item_id,
            document_id=document.id,
            document_code=document.document_code,
            correction_id=correction_id,
        )
        return FileItemResponse(item_id=item_id, document_id=document.id, correction_id=correction_id)

    async def _settle_batch(self, batch: BatchRecord) -> None:
        items = await self.repo.list_items(batch.id)
        status = aggregate_batch_status(i.status for i in items)
        if status in (BatchStatus.COMPLETED, BatchStatus.PARTIAL) and len(items) < batch.total_files:
            # Files still to be uploaded
            status = BatchStatus.REVIEW
        if batch.status in (BatchStatus.UPLOADING, BatchStatus.PROCESSING):
            # A processor owns the status until it finishes draining
            status = batch.status
        if status != batch.status:
            ensure_transition(batch.status, status)

        changes: dict[str, Any] = {
            "status": status,
            "filed_files": sum(1 for i in items if i.status == ItemStatus.FILED),
            "updated_at": self.clock(),
        }
        if status in (BatchStatus.COMPLETED, BatchStatus.PARTIAL):
            changes["completed_processing_at"] = changes["updated_at"]
        await self.repo.update_batch(batch.id, **changes)

    def _correction_request(self, item: ItemRecord, batch: BatchRecord) -> Optional[CaptureCorrectionRequest]:
        """What the AI said versus what was filed, or None when nothing was overridden."""
        edits = item.user_edits
        if not any(edits.get(attr) for attr in [*_EDITABLE_FIELDS, _CHECKLIST_EDIT]):
            return None

        def original(attr: str) -> Any:
            key = _original_key(attr)
            return edits[key] if key in edits else getattr(item, attr)

        original_suggestions = edits.get("original_suggested_checklist_items")
        prediction = AIPrediction(
            file_type=original("file_type_detected") or "",
            category=original("category") or "",
            target_folder=original("target_folder") or "",
            confidence=item.confidence or 0.0,
            is_internal=original("is_internal"),
            suggested_checklist_items=original_suggestions if edits.get(_CHECKLIST_EDIT) else None,
        )

        correction: dict[str, Any] = {}
        fields: list[CorrectableField] = []
        for attr, field in _EDITABLE_FIELDS.items():
            final = getattr(item, attr)
            if edits.get(attr) and final is not None and original(attr) != final:
                correction[FIELD_ATTRIBUTES[field]] = final
                fields.append(field)

        if edits.get(_CHECKLIST_EDIT):
            before = set(edits.get(_original_key("checklist_item_ids")) or [])
            after = list(item.checklist_item_ids or [])
            if before != set(after):
                names = {s["item_id"]: s["item_name"] for s in original_suggestions or []}
                names.update({s.item_id: s.item_name for s in item.suggested_checklist_items or []})
                correction["checklist_items"] = [
                    ChecklistSelection(item_id=i, item_name=names.get(i, i)) for i in after
                ]
                fields.append(CorrectableField.CHECKLIST_ITEMS)

        if not fields:
            return None

        analysis = item.document_analysis or {}
        keywords = analysis.get("keyTerms") if isinstance(analysis.get("keyTerms"), list) else []
        return CaptureCorrectionRequest(
            source_item_id=item.id,
            file_name=item.file_name,
            content_summary=item.summary or "",
            client_type=batch.client_type or infer_client_type(batch.client_name),
            ai_prediction=prediction,
            user_correction=UserCorrection(**correction),
            corrected_fields=fields,
            corrected_by=batch.user_id,
            document_keywords=[str(k) for k in keywords],
            ai_reasoning=item.classification_reasoning,
        )
