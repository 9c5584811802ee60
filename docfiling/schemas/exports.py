"""
Training export job schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from docfiling.clock import as_utc
from docfiling.models.enums import CorrectableField, ExportFormat, ExportStatus


class ExportCriteria(BaseModel):
    """Filters applied, in order, to the correction store."""
    min_correction_weight: Optional[float] = None
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    client_types: Optional[list[str]] = None
    corrected_fields_filter: Optional[list[CorrectableField]] = None

    @field_validator("date_range_start", "date_range_end")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class ExportStats(BaseModel):
    total_examples: int = 0
    by_file_type: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_correction_type: dict[str, int] = Field(default_factory=dict)


class TrainingExportRecord(BaseModel):
    id: str
    export_name: str
    exported_by: str
    exported_at: datetime
    criteria: ExportCriteria
    stats: ExportStats
    export_format: ExportFormat
    status: ExportStatus = ExportStatus.PENDING
    error: Optional[str] = None
    artifact_path: Optional[str] = None

    model_config = {"from_attributes": True}


class CreateExportRequest(BaseModel):
    export_name: str
    exported_by: str
    format: ExportFormat
    criteria: ExportCriteria = Field(default_factory=ExportCriteria)


class CreateExportResponse(BaseModel):
    export_id: str
    status: ExportStatus


class ExportDetail(TrainingExportRecord):
    download_path: Optional[str] = None
