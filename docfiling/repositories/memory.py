"""
In-memory repositories.
Used by the test suite and for local runs without Postgres. Records are
copied on the way in and out so callers never share mutable state with the
store. Insertion order stands in for created_at ordering.
"""

from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from docfiling.errors import NotFoundError, SearchUnavailableError
from docfiling.models.enums import CorrectableField, ItemStatus
from docfiling.pipeline.fingerprint import search_terms
from docfiling.repositories.base import (
    BulkRepository,
    CacheRepository,
    CorrectionRepository,
    ExportRepository,
)
from docfiling.schemas.bulk import BatchRecord, DocumentRecord, ItemRecord
from docfiling.schemas.classification import FIELD_ATTRIBUTES
from docfiling.schemas.exports import TrainingExportRecord
from docfiling.schemas.feedback import CacheEntryRecord, FilingCorrectionRecord

R = TypeVar("R", bound=BaseModel)


def _copy(record: R) -> R:
    return record.model_copy(deep=True)


def _patch(store: dict[str, R], entity: str, record_id: str, changes: dict[str, Any]) -> R:
    current = store.get(record_id)
    if current is None:
        raise NotFoundError(entity, record_id)
    updated = current.model_copy(update=changes, deep=True)
    store[record_id] = updated
    return _copy(updated)


def _tokens(normalized_name: str) -> set[str]:
    return set(search_terms(normalized_name))


class InMemoryCacheRepository(CacheRepository):
    def __init__(self):
        self.entries: dict[str, CacheEntryRecord] = {}
        self.fail_updates = False

    async def get(self, entry_id: str) -> Optional[CacheEntryRecord]:
        entry = self.entries.get(entry_id)
        return _copy(entry) if entry else None

    async def list_for_hash(self, content_hash: str) -> list[CacheEntryRecord]:
        return [_copy(e) for e in reversed(self.entries.values()) if e.content_hash == content_hash]

    async def list_all(self, client_type: Optional[str] = None) -> list[CacheEntryRecord]:
        return [
            _copy(e)
            for e in reversed(self.entries.values())
            if client_type is None or e.client_type == client_type
        ]

    async def insert(self, entry: CacheEntryRecord) -> CacheEntryRecord:
        self.entries[entry.id] = _copy(entry)
        return _copy(entry)

    async def update(self, entry_id: str, **changes: Any) -> CacheEntryRecord:
        if self.fail_updates:
            raise RuntimeError("cache store unavailable")
        return _patch(self.entries, "cache_entry", entry_id, changes)


class InMemoryCorrectionRepository(CorrectionRepository):
    def __init__(self):
        self.corrections: dict[str, FilingCorrectionRecord] = {}
        self.search_available = True

    async def insert(self, correction: FilingCorrectionRecord) -> FilingCorrectionRecord:
        self.corrections[correction.id] = _copy(correction)
        return _copy(correction)

    async def get(self, correction_id: str) -> Optional[FilingCorrectionRecord]:
        correction = self.corrections.get(correction_id)
        return _copy(correction) if correction else None

    async def list_all(self) -> list[FilingCorrectionRecord]:
        return [_copy(c) for c in reversed(self.corrections.values())]

    async def list_by_predicted(
        self,
        field: CorrectableField,
        value: str,
        limit: int,
        corrected_value: Optional[str] = None,
    ) -> list[FilingCorrectionRecord]:
        attr = FIELD_ATTRIBUTES[field]
        matches = []
        for c in reversed(self.corrections.values()):
            if getattr(c.ai_prediction, attr) != value:
                continue
            if corrected_value is not None and getattr(c.user_correction, attr) != corrected_value:
                continue
            matches.append(_copy(c))
            if len(matches) >= limit:
                break
        return matches

    async def search_by_filename(self, normalized_name: str, limit: int) -> list[FilingCorrectionRecord]:
        if not self.search_available:
            raise SearchUnavailableError()
        wanted = _tokens(normalized_name)
        if not wanted:
            return []
        scored = []
        for seq, c in enumerate(self.corrections.values()):
            overlap = len(wanted & _tokens(c.file_name_normalized))
            if overlap:
                scored.append((overlap, seq, c))
        scored.sort(key=lambda s: (s[0], s[1]), reverse=True)
        return [_copy(c) for _, _, c in scored[:limit]]

    async def delete_for_item(self, source_item_id: str) -> int:
        doomed = [cid for cid, c in self.corrections.items() if c.source_item_id == source_item_id]
        for cid in doomed:
            del self.corrections[cid]
        return len(doomed)


class InMemoryExportRepository(ExportRepository):
    def __init__(self):
        self.exports: dict[str, TrainingExportRecord] = {}

    async def insert(self, export: TrainingExportRecord) -> TrainingExportRecord:
        self.exports[export.id] = _copy(export)
        return _copy(export)

    async def get(self, export_id: str) -> Optional[TrainingExportRecord]:
        export = self.exports.get(export_id)
        return _copy(export) if export else None

    async def update(self, export_id: str, **changes: Any) -> TrainingExportRecord:
        return _patch(self.exports, "training_export", export_id, changes)

    async def list_by_user(self, exported_by: str) -> list[TrainingExportRecord]:
        return [_copy(e) for e in reversed(self.exports.values()) if e.exported_by == exported_by]


class InMemoryBulkRepository(BulkRepository):
    def __init__(self):
        self.batches: dict[str, BatchRecord] = {}
        self.items: dict[str, ItemRecord] = {}
        self.documents: dict[str, DocumentRecord] = {}

    async def create_batch(self, batch: BatchRecord) -> BatchRecord:
        self.batches[batch.id] = _copy(batch)
        return _copy(batch)

    async def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        batch = self.batches.get(batch_id)
        return _copy(batch) if batch else None

    async def update_batch(self, batch_id: str, **changes: Any) -> BatchRecord:
        return _patch(self.batches, "batch", batch_id, changes)

    async def create_item(self, item: ItemRecord) -> ItemRecord:
        self.items[item.id] = _copy(item)
        return _copy(item)

    async def get_item(self, item_id: str) -> Optional[ItemRecord]:
        item = self.items.get(item_id)
        return _copy(item) if item else None

    async def update_item(self, item_id: str, **changes: Any) -> ItemRecord:
        return _patch(self.items, "item", item_id, changes)

    async def list_items(self, batch_id: str, status: Optional[ItemStatus] = None) -> list[ItemRecord]:
        return [
            _copy(i)
            for i in self.items.values()
            if i.batch_id == batch_id and (status is None or i.status == status)
        ]

    async def next_pending_item(self, batch_id: str) -> Optional[ItemRecord]:
        for item in self.items.values():
            if item.batch_id == batch_id and item.status == ItemStatus.PENDING:
                return _copy(item)
        return None

    async def create_document(self, document: DocumentRecord) -> DocumentRecord:
        self.documents[document.id] = _copy(document)
        return _copy(document)

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        document = self.documents.get(document_id)
        return _copy(document) if document else None

    async def find_documents(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        file_name: Optional[str] = None,
        code_prefix: Optional[str] = None,
    ) -> list[DocumentRecord]:
        found = []
        for doc in reversed(self.documents.values()):
            if client_id is not None and doc.client_id != client_id:
                continue
            if project_id is not None and doc.project_id != project_id:
                continue
            if file_name is not None and doc.file_name != file_name:
                continue
            if code_prefix is not None and not (doc.document_code or "").startswith(code_prefix):
                continue
            found.append(_copy(doc))
        return found
