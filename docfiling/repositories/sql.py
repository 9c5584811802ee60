"""
SQLAlchemy repositories (production).
Each call opens its own session from the injected factory and commits
before returning, so every method is one short transaction.
"""

from enum import Enum
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docfiling.errors import NotFoundError, SearchUnavailableError
from docfiling.models.enums import CorrectableField, ItemStatus
from docfiling.models.tables import (
    BulkUploadBatch,
    BulkUploadItem,
    ClassificationCacheEntry,
    Document,
    FilingCorrection,
    TrainingExport,
)
from docfiling.pipeline.fingerprint import search_terms
from docfiling.repositories.base import (
    BulkRepository,
    CacheRepository,
    CorrectionRepository,
    ExportRepository,
)
from docfiling.schemas.bulk import BatchRecord, DocumentRecord, ItemRecord
from docfiling.schemas.exports import TrainingExportRecord
from docfiling.schemas.feedback import CacheEntryRecord, FilingCorrectionRecord

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=BaseModel)

# Predicted / corrected columns per correctable field
_PREDICTED_COLUMNS = {
    CorrectableField.FILE_TYPE: (FilingCorrection.predicted_file_type, FilingCorrection.corrected_file_type),
    CorrectableField.CATEGORY: (FilingCorrection.predicted_category, FilingCorrection.corrected_category),
    CorrectableField.TARGET_FOLDER: (
        FilingCorrection.predicted_target_folder,
        FilingCorrection.corrected_target_folder,
    ),
}


def _column_value(value: Any) -> Any:
    """Convert a record attribute into something the column type accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (BaseModel, dict, list, tuple)):
        return to_jsonable_python(value)
    return value


def _columns(record: BaseModel) -> dict[str, Any]:
    return {name: _column_value(getattr(record, name)) for name in type(record).model_fields}


async def _patch_row(session: AsyncSession, table, entity: str, row_id: str, changes: dict[str, Any]):
    row = await session.get(table, row_id)
    if row is None:
        raise NotFoundError(entity, row_id)
    for key, value in changes.items():
        setattr(row, key, _column_value(value))
    await session.commit()
    await session.refresh(row)
    return row


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory


class SqlCacheRepository(_SqlRepository, CacheRepository):
    async def get(self, entry_id: str) -> Optional[CacheEntryRecord]:
        async with self._session_factory() as session:
            row = await session.get(ClassificationCacheEntry, entry_id)
            return CacheEntryRecord.model_validate(row) if row else None

    async def list_for_hash(self, content_hash: str) -> list[CacheEntryRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClassificationCacheEntry)
                .where(ClassificationCacheEntry.content_hash == content_hash)
                .order_by(desc(ClassificationCacheEntry.created_at))
            )
            return [CacheEntryRecord.model_validate(r) for r in result.scalars().all()]

    async def list_all(self, client_type: Optional[str] = None) -> list[CacheEntryRecord]:
        query = select(ClassificationCacheEntry).order_by(desc(ClassificationCacheEntry.created_at))
        if client_type is not None:
            query = query.where(ClassificationCacheEntry.client_type == client_type)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [CacheEntryRecord.model_validate(r) for r in result.scalars().all()]

    async def insert(self, entry: CacheEntryRecord) -> CacheEntryRecord:
        async with self._session_factory() as session:
            session.add(ClassificationCacheEntry(**_columns(entry)))
            await session.commit()
        return entry

    async def update(self, entry_id: str, **changes: Any) -> CacheEntryRecord:
        async with self._session_factory() as session:
            row = await _patch_row(session, ClassificationCacheEntry, "cache_entry", entry_id, changes)
            return CacheEntryRecord.model_validate(row)


class SqlCorrectionRepository(_SqlRepository, CorrectionRepository):
    async def insert(self, correction: FilingCorrectionRecord) -> FilingCorrectionRecord:
        values = _columns(correction)
        values.update(
            predicted_file_type=correction.ai_prediction.file_type,
            predicted_category=correction.ai_prediction.category,
            predicted_target_folder=correction.ai_prediction.target_folder,
            corrected_file_type=correction.user_correction.file_type,
            corrected_category=correction.user_correction.category,
            corrected_target_folder=correction.user_correction.target_folder,
        )
        async with self._session_factory() as session:
            session.add(FilingCorrection(**values))
            await session.commit()
        return correction

    async def get(self, correction_id: str) -> Optional[FilingCorrectionRecord]:
        async with self._session_factory() as session:
            row = await session.get(FilingCorrection, correction_id)
            return FilingCorrectionRecord.model_validate(row) if row else None

    async def list_all(self) -> list[FilingCorrectionRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FilingCorrection).order_by(desc(FilingCorrection.created_at))
            )
            return [FilingCorrectionRecord.model_validate(r) for r in result.scalars().all()]

    async def list_by_predicted(
        self,
        field: CorrectableField,
        value: str,
        limit: int,
        corrected_value: Optional[str] = None,
    ) -> list[FilingCorrectionRecord]:
        predicted_col, corrected_col = _PREDICTED_COLUMNS[field]
        query = select(FilingCorrection).where(predicted_col == value)
        if corrected_value is not None:
            query = query.where(corrected_col == corrected_value)
        query = query.order_by(desc(FilingCorrection.created_at)).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [FilingCorrectionRecord.model_validate(r) for r in result.scalars().all()]

    async def search_by_filename(self, normalized_name: str, limit: int) -> list[FilingCorrectionRecord]:
        terms = search_terms(normalized_name)
        if not terms:
            return []

        document = func.to_tsvector("simple", FilingCorrection.file_name_normalized)
        query = func.to_tsquery("simple", " | ".join(terms))

        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    select(FilingCorrection)
                    .where(document.op("@@")(query))
                    .order_by(desc(func.ts_rank(document, query)), desc(FilingCorrection.created_at))
                    .limit(limit)
                )
            except DBAPIError as e:
                await session.rollback()
                logger.warning("correction_search_failed", error=str(e))
                raise SearchUnavailableError(str(e)) from e
            return [FilingCorrectionRecord.model_validate(r) for r in result.scalars().all()]

    async def delete_for_item(self, source_item_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(FilingCorrection).where(FilingCorrection.source_item_id == source_item_id)
            )
            await session.commit()
            return result.rowcount or 0


class SqlExportRepository(_SqlRepository, ExportRepository):
    async def insert(self, export: TrainingExportRecord) -> TrainingExportRecord:
        async with self._session_factory() as session:
            session.add(TrainingExport(**_columns(export)))
            await session.commit()
        return export

    async def get(self, export_id: str) -> Optional[TrainingExportRecord]:
        async with self._session_factory() as session:
            row = await session.get(TrainingExport, export_id)
            return TrainingExportRecord.model_validate(row) if row else None

    async def update(self, export_id: str, **changes: Any) -> TrainingExportRecord:
        async with self._session_factory() as session:
            row = await _patch_row(session, TrainingExport, "training_export", export_id, changes)
            return TrainingExportRecord.model_validate(row)

    async def list_by_user(self, exported_by: str) -> list[TrainingExportRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TrainingExport)
                .where(TrainingExport.exported_by == exported_by)
                .order_by(desc(TrainingExport.exported_at))
            )
            return [TrainingExportRecord.model_validate(r) for r in result.scalars().all()]


class SqlBulkRepository(_SqlRepository, BulkRepository):
    # ── Batches ──────────────────────────────────────────────

    async def create_batch(self, batch: BatchRecord) -> BatchRecord:
        async with self._session_factory() as session:
            session.add(BulkUploadBatch(**_columns(batch)))
            await session.commit()
        return batch

    async def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        async with self._session_factory() as session:
            row = await session.get(BulkUploadBatch, batch_id)
            return BatchRecord.model_validate(row) if row else None

    async def update_batch(self, batch_id: str, **changes: Any) -> BatchRecord:
        async with self._session_factory() as session:
            row = await _patch_row(session, BulkUploadBatch, "batch", batch_id, changes)
            return BatchRecord.model_validate(row)

    # ── Items ────────────────────────────────────────────────

    async def create_item(self, item: ItemRecord) -> ItemRecord:
        async with self._session_factory() as session:
            seq = await session.scalar(
                select(func.coalesce(func.max(BulkUploadItem.seq), 0)).where(
                    BulkUploadItem.batch_id == item.batch_id
                )
            )
            session.add(BulkUploadItem(seq=(seq or 0) + 1, **_columns(item)))
            await session.commit()
        return item

    async def get_item(self, item_id: str) -> Optional[ItemRecord]:
        async with self._session_factory() as session:
            row = await session.get(BulkUploadItem, item_id)
            return ItemRecord.model_validate(row) if row else None

    async def update_item(self, item_id: str, **changes: Any) -> ItemRecord:
        async with self._session_factory() as session:
            row = await _patch_row(session, BulkUploadItem, "item", item_id, changes)
            return ItemRecord.model_validate(row)

    async def list_items(self, batch_id: str, status: Optional[ItemStatus] = None) -> list[ItemRecord]:
        query = select(BulkUploadItem).where(BulkUploadItem.batch_id == batch_id)
        if status is not None:
            query = query.where(BulkUploadItem.status == status.value)
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(BulkUploadItem.seq))
            return [ItemRecord.model_validate(r) for r in result.scalars().all()]

    async def next_pending_item(self, batch_id: str) -> Optional[ItemRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BulkUploadItem)
                .where(
                    BulkUploadItem.batch_id == batch_id,
                    BulkUploadItem.status == ItemStatus.PENDING.value,
                )
                .order_by(BulkUploadItem.seq)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return ItemRecord.model_validate(row) if row else None

    # ── Documents ────────────────────────────────────────────

    async def create_document(self, document: DocumentRecord) -> DocumentRecord:
        async with self._session_factory() as session:
            session.add(Document(**_columns(document)))
            await session.commit()
        return document

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        async with self._session_factory() as session:
            row = await session.get(Document, document_id)
            return DocumentRecord.model_validate(row) if row else None

    async def find_documents(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        file_name: Optional[str] = None,
        code_prefix: Optional[str] = None,
    ) -> list[DocumentRecord]:
        query = select(Document)
        if client_id is not None:
            query = query.where(Document.client_id == client_id)
        if project_id is not None:
            query = query.where(Document.project_id == project_id)
        if file_name is not None:
            query = query.where(Document.file_name == file_name)
        if code_prefix is not None:
            query = query.where(Document.document_code.startswith(code_prefix, autoescape=True))

        async with self._session_factory() as session:
            result = await session.execute(query.order_by(desc(Document.uploaded_at)))
            return [DocumentRecord.model_validate(r) for r in result.scalars().all()]
