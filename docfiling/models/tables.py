"""
SQLAlchemy ORM models.
Column names mirror the pydantic record fields so rows validate straight
into records with model_validate(row).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docfiling.models.database import Base


JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _id_column() -> Mapped[str]:
    return mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid_str)


# ────────────────────────────────────────────────────────────
# CLASSIFICATION CACHE
# ────────────────────────────────────────────────────────────
class ClassificationCacheEntry(Base):
    __tablename__ = "classification_cache"

    id: Mapped[str] = _id_column()
    content_hash: Mapped[str] = mapped_column(String(16), nullable=False)
    file_name_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    classification: Mapped[dict] = mapped_column(JSONType, nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_hit_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    correction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    invalidated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    client_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_cache_content_hash", "content_hash"),
        Index("idx_cache_valid", "content_hash", "is_valid"),
    )


# ────────────────────────────────────────────────────────────
# FILING CORRECTIONS (append-only)
# ────────────────────────────────────────────────────────────
class FilingCorrection(Base):
    __tablename__ = "filing_corrections"

    id: Mapped[str] = _id_column()
    source_item_id: Mapped[Optional[str]] = mapped_column(Uuid(as_uuid=False), nullable=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_name_normalized: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(16), nullable=False)
    content_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    client_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_prediction: Mapped[dict] = mapped_column(JSONType, nullable=False)
    user_correction: Mapped[dict] = mapped_column(JSONType, nullable=False)
    corrected_fields: Mapped[list] = mapped_column(JSONType, nullable=False)
    # Denormalised from ai_prediction / user_correction for indexed lookups
    predicted_file_type: Mapped[str] = mapped_column(Text, nullable=False)
    predicted_category: Mapped[str] = mapped_column(Text, nullable=False)
    predicted_target_folder: Mapped[str] = mapped_column(Text, nullable=False, default="")
    corrected_file_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrected_category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrected_target_folder: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    correction_weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0, server_default="1.0")
    corrected_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_keywords: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    ai_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_corrections_file_type", "predicted_file_type", "created_at"),
        Index("idx_corrections_category", "predicted_category", "created_at"),
        Index("idx_corrections_folder", "predicted_target_folder", "created_at"),
        Index("idx_corrections_source_item", "source_item_id"),
        Index("idx_corrections_content_hash", "content_hash"),
    )


# ────────────────────────────────────────────────────────────
# TRAINING EXPORTS
# ────────────────────────────────────────────────────────────
class TrainingExport(Base):
    __tablename__ = "training_exports"

    id: Mapped[str] = _id_column()
    export_name: Mapped[str] = mapped_column(Text, nullable=False)
    exported_by: Mapped[str] = mapped_column(Text, nullable=False)
    exported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    criteria: Mapped[dict] = mapped_column(JSONType, nullable=False)
    stats: Mapped[dict] = mapped_column(JSONType, nullable=False)
    export_format: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    artifact_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_exports_user", "exported_by", "exported_at"),
    )


# ────────────────────────────────────────────────────────────
# BULK UPLOAD BATCHES
# ────────────────────────────────────────────────────────────
class BulkUploadBatch(Base):
    __tablename__ = "bulk_upload_batches"

    id: Mapped[str] = _id_column()
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default="client")
    client_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_shortcode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    internal_folder_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_folder_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    personal_folder_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    personal_folder_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploader_initials: Mapped[str] = mapped_column(String(3), nullable=False, default="XX")
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    processing_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="foreground")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="uploading")
    total_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    filed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_completion_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_processing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_processing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    items = relationship("BulkUploadItem", back_populates="batch", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_batches_user", "user_id", "created_at"),
        Index("idx_batches_status", "status"),
    )


# ────────────────────────────────────────────────────────────
# BULK UPLOAD ITEMS
# ────────────────────────────────────────────────────────────
class BulkUploadItem(Base):
    __tablename__ = "bulk_upload_items"

    id: Mapped[str] = _id_column()
    batch_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("bulk_upload_batches.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_storage_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_type_detected: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_folder: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    generated_document_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    version_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    duplicate_of_document_id: Mapped[Optional[str]] = mapped_column(Uuid(as_uuid=False), nullable=True)
    suggested_checklist_items: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    checklist_item_ids: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    extracted_intelligence: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    extracted_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    document_analysis: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    classification_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_edits: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    document_id: Mapped[Optional[str]] = mapped_column(Uuid(as_uuid=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    batch = relationship("BulkUploadBatch", back_populates="items")

    __table_args__ = (
        Index("idx_items_batch", "batch_id", "seq"),
        Index("idx_items_batch_status", "batch_id", "status"),
    )


# ────────────────────────────────────────────────────────────
# FILED DOCUMENTS
# ────────────────────────────────────────────────────────────
class Document(Base):
    __tablename__ = "documents"

    id: Mapped[str] = _id_column()
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_storage_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    file_type_detected: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    client_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    folder_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    folder_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[str] = mapped_column(String(16), nullable=False, default="V1.0")
    uploader_initials: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    previous_version_id: Mapped[Optional[str]] = mapped_column(Uuid(as_uuid=False), nullable=True)
    extracted_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    document_analysis: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    classification_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default="client")
    owner_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_documents_client_file", "client_id", "file_name"),
        Index("idx_documents_code", "document_code"),
    )
