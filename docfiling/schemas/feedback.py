"""
Records and request/response schemas for the classification cache and the
correction store.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from docfiling.clock import as_utc
from docfiling.models.enums import ConfusionField, CorrectableField
from docfiling.schemas.classification import AIPrediction, Classification, UserCorrection


# ── Stored records ───────────────────────────────────────────

class CacheEntryRecord(BaseModel):
    """One cached classification. Never deleted, only marked invalid."""
    id: str
    content_hash: str
    file_name_pattern: str
    classification: Classification
    hit_count: int = 0
    last_hit_at: datetime
    created_at: datetime
    correction_count: int = 0
    is_valid: bool = True
    invalidated_at: Optional[datetime] = None
    client_type: Optional[str] = None

    model_config = {"from_attributes": True}


class FilingCorrectionRecord(BaseModel):
    """An immutable reviewer override of an AI prediction."""
    id: str
    source_item_id: Optional[str] = None
    file_name: str
    file_name_normalized: str
    content_hash: str
    content_summary: str = ""
    client_type: Optional[str] = None
    ai_prediction: AIPrediction
    user_correction: UserCorrection
    corrected_fields: list[CorrectableField]
    correction_weight: float = 1.0
    corrected_by: Optional[str] = None
    document_keywords: list[str] = []
    ai_reasoning: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Cache ────────────────────────────────────────────────────

class CacheCheckResult(BaseModel):
    hit: bool
    classification: Optional[Classification] = None
    hit_count: Optional[int] = None
    cache_id: Optional[str] = None


class StoreCacheRequest(BaseModel):
    content_hash: str
    file_name_pattern: str
    classification: Classification
    client_type: Optional[str] = None


class InvalidatePatternRequest(BaseModel):
    pattern: Optional[str] = None
    client_type: Optional[str] = None
    older_than: Optional[datetime] = None

    @field_validator("older_than")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class InvalidationResult(BaseModel):
    invalidated_count: int


# ── Corrections ──────────────────────────────────────────────

class CaptureCorrectionRequest(BaseModel):
    source_item_id: Optional[str] = None
    file_name: str
    content_summary: str = ""
    client_type: Optional[str] = None
    ai_prediction: AIPrediction
    user_correction: UserCorrection
    corrected_fields: list[CorrectableField]
    corrected_by: Optional[str] = None
    document_keywords: list[str] = []
    ai_reasoning: Optional[str] = None


class RelevantCorrection(BaseModel):
    id: str
    ai_prediction: AIPrediction
    user_correction: UserCorrection
    file_name: str
    match_reason: str
    relevance_score: float


class ConfusionPair(BaseModel):
    """The classifier is torn between options for one field."""
    field: ConfusionField
    options: list[str]


class CurrentClassification(BaseModel):
    file_type: str
    category: str
    confidence: float = 0.0


class TargetedCorrectionsRequest(BaseModel):
    confused_between: list[ConfusionPair]
    current_classification: CurrentClassification
    file_name: str
    limit: Optional[int] = None


class TargetedCorrection(RelevantCorrection):
    confusion_resolved: str


class ConsolidatedRule(BaseModel):
    """A from->to correction pattern seen at least twice."""
    field: CorrectableField
    from_value: str
    to_value: str
    count: int
    examples: list[str] = []
    avg_confidence: float = 0.0


class ConsolidatedRules(BaseModel):
    file_type_rules: list[ConsolidatedRule] = []
    category_rules: list[ConsolidatedRule] = []
    total_corrections: int = 0


class CorrectionStats(BaseModel):
    total_corrections: int = 0
    by_field: dict[str, int] = Field(default_factory=dict)
    by_file_type: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)


class CorrectionSummary(BaseModel):
    """Flattened view of a correction for debugging lists."""
    id: str
    file_name: str
    ai_file_type: str
    user_file_type: Optional[str] = None
    ai_category: str
    user_category: Optional[str] = None
    ai_target_folder: str = ""
    user_target_folder: Optional[str] = None
    ai_checklist_suggestions: list[str] = []
    user_checklist_items: list[str] = []
    corrected_fields: list[CorrectableField]
    created_at: datetime
