"""
/api/v1/batches endpoints.
Bulk upload lifecycle: create a batch, add files, process them in the
foreground or hand them to the worker, review and file each item.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from docfiling.api.errors import to_http_exception
from docfiling.bulk.batches import BatchService
from docfiling.config import settings
from docfiling.dependencies import (
    get_batch_service,
    get_blob_storage,
    get_item_pipeline,
    verify_api_key,
)
from docfiling.errors import FilingError
from docfiling.models.enums import BatchStatus, ItemStatus
from docfiling.pipeline.bulk_processor import BulkQueueProcessor, ItemAnalysisPipeline
from docfiling.schemas.bulk import (
    BackgroundStartResponse,
    BatchRecord,
    BatchStats,
    CreateBatchRequest,
    FileItemResponse,
    ItemRecord,
    ProcessingSummary,
    SetVersionTypeRequest,
    SetVersionTypeResponse,
    UpdateItemDetailsRequest,
    UploadedFile,
)
from docfiling.services.base import BlobStorage, ServiceError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/batches", tags=["batches"], dependencies=[Depends(verify_api_key)])


async def _read_upload(file: UploadFile) -> UploadedFile:
    """Read and validate one uploaded file."""
    content = await file.read()
    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large: {len(content)} bytes. Max: {max_bytes} bytes",
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file uploaded")
    return UploadedFile(
        name=file.filename or "document",
        content=content,
        content_type=file.content_type or "application/octet-stream",
    )


# ── Batches ──────────────────────────────────────────────────

@router.post("", response_model=BatchRecord, status_code=status.HTTP_201_CREATED)
async def create_batch(
    request: CreateBatchRequest,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.create_batch(request)
    except FilingError as e:
        raise to_http_exception(e)


@router.get("/{batch_id}", response_model=BatchStats)
async def get_batch_stats(
    batch_id: str,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.get_batch_stats(batch_id)
    except FilingError as e:
        raise to_http_exception(e)


@router.get("/{batch_id}/items", response_model=list[ItemRecord])
async def list_items(
    batch_id: str,
    item_status: Optional[ItemStatus] = Query(None, alias="status"),
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.list_items(batch_id, status=item_status)
    except FilingError as e:
        raise to_http_exception(e)


@router.post("/{batch_id}/items", response_model=ItemRecord, status_code=status.HTTP_201_CREATED)
async def add_item(
    batch_id: str,
    file: UploadFile = File(...),
    service: BatchService = Depends(get_batch_service),
    blobs: BlobStorage = Depends(get_blob_storage),
):
    """Upload a file to blob storage and register it as a pending item."""
    uploaded = await _read_upload(file)
    try:
        await service.get_batch(batch_id)
        storage_id = await blobs.upload(uploaded)
        return await service.add_item(
            batch_id,
            uploaded.name,
            len(uploaded.content),
            uploaded.content_type,
            file_storage_id=storage_id,
        )
    except (FilingError, ServiceError) as e:
        raise to_http_exception(e)


@router.post("/{batch_id}/process", response_model=ProcessingSummary)
async def process_batch(
    batch_id: str,
    files: list[UploadFile] = File(...),
    service: BatchService = Depends(get_batch_service),
    pipeline: ItemAnalysisPipeline = Depends(get_item_pipeline),
):
    """
    Foreground run: register the files as items and process them in order
    before responding. Per-item failures are recorded on the items.
    """
    uploads = [await _read_upload(f) for f in files]
    try:
        batch = await service.get_batch(batch_id)
        if batch.status not in (BatchStatus.UPLOADING, BatchStatus.REVIEW, BatchStatus.PARTIAL):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Batch is {batch.status.value}",
            )

        processor = BulkQueueProcessor(pipeline)
        processor.set_batch_info(await service.batch_info(batch_id))
        for uploaded in uploads:
            item = await service.add_item(
                batch_id, uploaded.name, len(uploaded.content), uploaded.content_type
            )
            processor.add_item(item.id, uploaded)
        return await processor.process_queue()
    except FilingError as e:
        raise to_http_exception(e)


@router.post("/{batch_id}/background", response_model=BackgroundStartResponse)
async def start_background_processing(
    batch_id: str,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.start_background_processing(batch_id)
    except FilingError as e:
        raise to_http_exception(e)


# ── Items ────────────────────────────────────────────────────

@router.get("/items/{item_id}", response_model=ItemRecord)
async def get_item(
    item_id: str,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.get_item(item_id)
    except FilingError as e:
        raise to_http_exception(e)


@router.patch("/items/{item_id}", response_model=ItemRecord)
async def update_item_details(
    item_id: str,
    request: UpdateItemDetailsRequest,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.update_item_details(item_id, request)
    except FilingError as e:
        raise to_http_exception(e)


@router.post("/items/{item_id}/version", response_model=SetVersionTypeResponse)
async def set_version_type(
    item_id: str,
    request: SetVersionTypeRequest,
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.set_version_type(item_id, request.version_type)
    except FilingError as e:
        raise to_http_exception(e)


@router.post("/items/{item_id}/file", response_model=FileItemResponse)
async def file_item(
    item_id: str,
    uploader_initials: Optional[str] = Query(None, max_length=4),
    service: BatchService = Depends(get_batch_service),
):
    try:
        return await service.file_item(item_id, uploader_initials=uploader_initials)
    except FilingError as e:
        raise to_http_exception(e)
