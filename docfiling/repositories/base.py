"""
Repository interfaces over the underlying store.

Services depend only on these classes. Two implementations exist:
SQLAlchemy (production) and in-memory (tests and local runs). Every method
returns pydantic records, never ORM rows, and mutations of missing records
raise NotFoundError.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from docfiling.models.enums import CorrectableField, ItemStatus
from docfiling.schemas.bulk import BatchRecord, DocumentRecord, ItemRecord
from docfiling.schemas.exports import TrainingExportRecord
from docfiling.schemas.feedback import CacheEntryRecord, FilingCorrectionRecord


class CacheRepository(ABC):
    """Classification cache entries keyed by content hash."""

    @abstractmethod
    async def get(self, entry_id: str) -> Optional[CacheEntryRecord]:
        ...

    @abstractmethod
    async def list_for_hash(self, content_hash: str) -> list[CacheEntryRecord]:
        """All entries for a hash, valid or not, newest first."""
        ...

    @abstractmethod
    async def list_all(self, client_type: Optional[str] = None) -> list[CacheEntryRecord]:
        """All entries, optionally restricted to one client type."""
        ...

    @abstractmethod
    async def insert(self, entry: CacheEntryRecord) -> CacheEntryRecord:
        ...

    @abstractmethod
    async def update(self, entry_id: str, **changes: Any) -> CacheEntryRecord:
        """Patch fields on one entry. Raises NotFoundError."""
        ...


class CorrectionRepository(ABC):
    """Append-only store of filing corrections."""

    @abstractmethod
    async def insert(self, correction: FilingCorrectionRecord) -> FilingCorrectionRecord:
        ...

    @abstractmethod
    async def get(self, correction_id: str) -> Optional[FilingCorrectionRecord]:
        ...

    @abstractmethod
    async def list_all(self) -> list[FilingCorrectionRecord]:
        """Every correction, newest first."""
        ...

    @abstractmethod
    async def list_by_predicted(
        self,
        field: CorrectableField,
        value: str,
        limit: int,
        corrected_value: Optional[str] = None,
    ) -> list[FilingCorrectionRecord]:
        """
        Corrections whose AI prediction for field equals value, newest first.
        With corrected_value, only those the reviewer changed to that value.
        """
        ...

    @abstractmethod
    async def search_by_filename(self, normalized_name: str, limit: int) -> list[FilingCorrectionRecord]:
        """
        Fuzzy lookup on the normalised filename.
        Raises SearchUnavailableError when the index cannot answer.
        """
        ...

    @abstractmethod
    async def delete_for_item(self, source_item_id: str) -> int:
        """Remove corrections captured from one bulk item. Returns count deleted."""
        ...


class ExportRepository(ABC):
    """Training export job records."""

    @abstractmethod
    async def insert(self, export: TrainingExportRecord) -> TrainingExportRecord:
        ...

    @abstractmethod
    async def get(self, export_id: str) -> Optional[TrainingExportRecord]:
        ...

    @abstractmethod
    async def update(self, export_id: str, **changes: Any) -> TrainingExportRecord:
        """Raises NotFoundError."""
        ...

    @abstractmethod
    async def list_by_user(self, exported_by: str) -> list[TrainingExportRecord]:
        """A user's exports, newest first."""
        ...


class BulkRepository(ABC):
    """Bulk upload batches, their items and the documents they file."""

    # ── Batches ──────────────────────────────────────────────

    @abstractmethod
    async def create_batch(self, batch: BatchRecord) -> BatchRecord:
        ...

    @abstractmethod
    async def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        ...

    @abstractmethod
    async def update_batch(self, batch_id: str, **changes: Any) -> BatchRecord:
        """Raises NotFoundError."""
        ...

    # ── Items ────────────────────────────────────────────────

    @abstractmethod
    async def create_item(self, item: ItemRecord) -> ItemRecord:
        ...

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[ItemRecord]:
        ...

    @abstractmethod
    async def update_item(self, item_id: str, **changes: Any) -> ItemRecord:
        """Raises NotFoundError."""
        ...

    @abstractmethod
    async def list_items(self, batch_id: str, status: Optional[ItemStatus] = None) -> list[ItemRecord]:
        """Items of a batch in insertion order."""
        ...

    @abstractmethod
    async def next_pending_item(self, batch_id: str) -> Optional[ItemRecord]:
        """Oldest pending item of a batch, or None."""
        ...

    # ── Documents ────────────────────────────────────────────

    @abstractmethod
    async def create_document(self, document: DocumentRecord) -> DocumentRecord:
        ...

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        ...

    @abstractmethod
    async def find_documents(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        file_name: Optional[str] = None,
        code_prefix: Optional[str] = None,
    ) -> list[DocumentRecord]:
        """Filed documents matching every given filter, newest first."""
        ...
