"""
Bulk upload schemas: batch/item/document records, external service payloads
and API request/response bodies.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docfiling.models.enums import (
    BatchScope,
    BatchStatus,
    ItemStatus,
    MatchType,
    ProcessingMode,
    ValueType,
    VersionType,
)
from docfiling.schemas.classification import ChecklistSuggestion


# ── Records ──────────────────────────────────────────────────

class BatchRecord(BaseModel):
    id: str
    scope: BatchScope = BatchScope.CLIENT
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_type: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    project_shortcode: Optional[str] = None
    internal_folder_id: Optional[str] = None
    internal_folder_name: Optional[str] = None
    personal_folder_id: Optional[str] = None
    personal_folder_name: Optional[str] = None
    is_internal: bool = False
    instructions: Optional[str] = None
    uploader_initials: str = "XX"
    user_id: str
    processing_mode: ProcessingMode = ProcessingMode.FOREGROUND
    status: BatchStatus = BatchStatus.UPLOADING
    total_files: int = 0
    processed_files: int = 0
    error_files: int = 0
    filed_files: int = 0
    estimated_completion_time: Optional[datetime] = None
    started_processing_at: Optional[datetime] = None
    completed_processing_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IntelligenceField(BaseModel):
    """A sanitised extracted field. value matches value_type."""
    field_path: str
    label: str
    category: str = "general"
    value: Union[str, float, bool, list, None] = None
    value_type: ValueType = ValueType.TEXT
    is_canonical: bool = False
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    source_text: Optional[str] = None
    original_label: Optional[str] = None
    matched_alias: Optional[str] = None


class ExtractedIntelligence(BaseModel):
    fields: list[IntelligenceField] = []
    insights: Optional[dict[str, Any]] = None


class ItemRecord(BaseModel):
    id: str
    batch_id: str
    file_name: str
    file_size: int = 0
    file_type: str = "application/octet-stream"
    file_storage_id: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    is_internal: bool = False
    error: Optional[str] = None

    summary: Optional[str] = None
    file_type_detected: Optional[str] = None
    category: Optional[str] = None
    target_folder: Optional[str] = None
    confidence: Optional[float] = None
    generated_document_code: Optional[str] = None
    version: Optional[str] = None
    version_type: Optional[VersionType] = None
    is_duplicate: bool = False
    duplicate_of_document_id: Optional[str] = None
    suggested_checklist_items: Optional[list[ChecklistSuggestion]] = None
    checklist_item_ids: Optional[list[str]] = None
    extracted_intelligence: Optional[ExtractedIntelligence] = None
    extracted_data: Optional[dict[str, Any]] = None
    document_analysis: Optional[dict[str, Any]] = None
    classification_reasoning: Optional[str] = None
    user_edits: dict[str, Any] = Field(default_factory=dict)
    document_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentRecord(BaseModel):
    """A filed document."""
    id: str
    file_name: str
    file_size: int = 0
    file_type: str = "application/octet-stream"
    file_storage_id: Optional[str] = None
    summary: str = ""
    file_type_detected: str
    category: str
    confidence: float = 0.0
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    document_code: Optional[str] = None
    folder_id: Optional[str] = None
    folder_type: Optional[str] = None
    is_internal: bool = False
    version: str = "V1.0"
    uploader_initials: Optional[str] = None
    previous_version_id: Optional[str] = None
    extracted_data: Optional[dict[str, Any]] = None
    document_analysis: Optional[dict[str, Any]] = None
    classification_reasoning: Optional[str] = None
    scope: BatchScope = BatchScope.CLIENT
    owner_id: Optional[str] = None
    uploaded_at: datetime

    model_config = {"from_attributes": True}


# ── Processor inputs ─────────────────────────────────────────

class UploadedFile(BaseModel):
    """Raw file handed to the bulk processor."""
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class BatchInfo(BaseModel):
    """Batch-scoped context sent with every classification request."""
    batch_id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_type: Optional[str] = None
    project_id: Optional[str] = None
    project_shortcode: Optional[str] = None
    is_internal: bool = False
    instructions: Optional[str] = None
    uploader_initials: str = "XX"
    checklist_items: list[dict[str, Any]] = []
    available_folders: list[str] = []

    @classmethod
    def from_batch(cls, batch: BatchRecord, **extra) -> "BatchInfo":
        return cls(
            batch_id=batch.id,
            client_id=batch.client_id,
            client_name=batch.client_name,
            client_type=batch.client_type,
            project_id=batch.project_id,
            project_shortcode=batch.project_shortcode,
            is_internal=batch.is_internal,
            instructions=batch.instructions,
            uploader_initials=batch.uploader_initials,
            **extra,
        )


class ProcessingSummary(BaseModel):
    processed: int = 0
    errors: int = 0


# ── External service payloads ────────────────────────────────
# Upstream output is sanitised on the way in: a malformed field falls back
# to empty instead of failing the whole response.

def _text_or_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _float_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


class ClassifierDocument(BaseModel):
    """One document in the classification service response (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: Optional[str] = None
    file_type: Optional[str] = Field(default=None, alias="fileType")
    category: Optional[str] = None
    confidence: Optional[float] = None
    suggested_folder: Optional[str] = Field(default=None, alias="suggestedFolder")
    type_abbreviation: Optional[str] = Field(default=None, alias="typeAbbreviation")
    generated_document_code: Optional[str] = Field(default=None, alias="generatedDocumentCode")
    checklist_matches: Optional[list[Any]] = Field(default=None, alias="checklistMatches")
    intelligence_fields: Optional[list[Any]] = Field(default=None, alias="intelligenceFields")
    extracted_data: Optional[dict[str, Any]] = Field(default=None, alias="extractedData")
    document_analysis: Optional[dict[str, Any]] = Field(default=None, alias="documentAnalysis")
    classification_reasoning: Optional[str] = Field(default=None, alias="classificationReasoning")

    @field_validator(
        "summary",
        "file_type",
        "category",
        "suggested_folder",
        "type_abbreviation",
        "generated_document_code",
        "classification_reasoning",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> Optional[float]:
        return _float_or_none(value)

    @field_validator("checklist_matches", "intelligence_fields", mode="before")
    @classmethod
    def _list(cls, value: Any) -> Optional[list[Any]]:
        return value if isinstance(value, list) else None

    @field_validator("extracted_data", "document_analysis", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Optional[dict[str, Any]]:
        if not isinstance(value, dict):
            return None
        return {str(k): v for k, v in value.items()}


class ClassifierResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = False
    documents: list[ClassifierDocument] = []
    errors: list[Any] = []
    is_mock: bool = Field(default=False, alias="isMock")

    @field_validator("documents", mode="before")
    @classmethod
    def _documents(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [d for d in value if isinstance(d, dict)]

    @field_validator("errors", mode="before")
    @classmethod
    def _errors(cls, value: Any) -> list[Any]:
        return value if isinstance(value, list) else []


class ExistingDocumentRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    document_code: Optional[str] = Field(default=None, alias="documentCode")
    version: Optional[str] = None
    uploaded_at: Optional[datetime] = Field(default=None, alias="uploadedAt")
    match_type: MatchType = Field(default=MatchType.EXACT, alias="matchType")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)

    @field_validator("file_name", "document_code", "version", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)

    @field_validator("uploaded_at", mode="before")
    @classmethod
    def _uploaded_at(cls, value: Any) -> Any:
        return value if isinstance(value, (str, datetime)) else None

    @field_validator("match_type", mode="before")
    @classmethod
    def _match_type(cls, value: Any) -> MatchType:
        # Anything the service does not call exact is treated as a near match
        try:
            return MatchType(str(value).lower())
        except ValueError:
            return MatchType.SIMILAR


class DuplicateCheckResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_duplicate: bool = Field(default=False, alias="isDuplicate")
    has_exact_match: bool = Field(default=False, alias="hasExactMatch")
    has_similar_match: bool = Field(default=False, alias="hasSimilarMatch")
    existing_documents: list[ExistingDocumentRef] = Field(default_factory=list, alias="existingDocuments")

    @field_validator("existing_documents", mode="before")
    @classmethod
    def _existing_documents(cls, value: Any) -> list[Any]:
        # A reference without an id cannot be linked to, so it is dropped
        if not isinstance(value, list):
            return []
        return [
            d for d in value
            if isinstance(d, dict) and _text_or_none(d.get("_id", d.get("id")))
        ]


# ── API bodies ───────────────────────────────────────────────

class CreateBatchRequest(BaseModel):
    scope: BatchScope = BatchScope.CLIENT
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_type: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    project_shortcode: Optional[str] = None
    internal_folder_id: Optional[str] = None
    internal_folder_name: Optional[str] = None
    personal_folder_id: Optional[str] = None
    personal_folder_name: Optional[str] = None
    is_internal: bool = False
    instructions: Optional[str] = None
    uploader_name: Optional[str] = None
    user_id: str
    total_files: int = Field(ge=0)
    processing_mode: ProcessingMode = ProcessingMode.FOREGROUND


class UpdateItemDetailsRequest(BaseModel):
    file_type_detected: Optional[str] = None
    category: Optional[str] = None
    is_internal: Optional[bool] = None
    target_folder: Optional[str] = None
    generated_document_code: Optional[str] = None
    version_type: Optional[VersionType] = None
    checklist_item_ids: Optional[list[str]] = None


class SetVersionTypeRequest(BaseModel):
    version_type: VersionType


class SetVersionTypeResponse(BaseModel):
    item_id: str
    version: str
    generated_document_code: Optional[str] = None


class FileItemResponse(BaseModel):
    item_id: str
    document_id: str
    correction_id: Optional[str] = None


class BatchStats(BaseModel):
    batch: BatchRecord
    items: int
    status_counts: dict[str, int]
    duplicates_count: int
    unresolved_duplicates: int


class BackgroundStartResponse(BaseModel):
    batch_id: str
    estimated_completion_time: datetime
    estimated_minutes: int
    job_id: Optional[str] = None
