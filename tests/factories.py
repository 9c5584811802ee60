"""
Record builders shared by the test modules.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from docfiling.models.enums import CorrectableField
from docfiling.pipeline.fingerprint import content_hash, normalize_filename
from docfiling.schemas.classification import AIPrediction, ChecklistSelection, UserCorrection
from docfiling.schemas.feedback import CaptureCorrectionRequest, FilingCorrectionRecord

T0 = datetime(2026, 1, 12, 9, 0, tzinfo=timezone.utc)


def prediction(
    file_type: str = "Other",
    category: str = "Other",
    target_folder: str = "miscellaneous",
    confidence: float = 0.6,
) -> AIPrediction:
    return AIPrediction(
        file_type=file_type,
        category=category,
        target_folder=target_folder,
        confidence=confidence,
    )


def capture_request(
    file_name: str = "Track Record 2024.pdf",
    predicted: Optional[AIPrediction] = None,
    file_type: Optional[str] = "Track Record",
    category: Optional[str] = None,
    target_folder: Optional[str] = None,
    summary: str = "Developer track record listing completed schemes",
    client_type: Optional[str] = "borrower",
    source_item_id: Optional[str] = None,
) -> CaptureCorrectionRequest:
    fields = []
    if file_type is not None:
        fields.append(CorrectableField.FILE_TYPE)
    if category is not None:
        fields.append(CorrectableField.CATEGORY)
    if target_folder is not None:
        fields.append(CorrectableField.TARGET_FOLDER)
    return CaptureCorrectionRequest(
        source_item_id=source_item_id,
        file_name=file_name,
        content_summary=summary,
        client_type=client_type,
        ai_prediction=predicted or prediction(),
        user_correction=UserCorrection(
            file_type=file_type,
            category=category,
            target_folder=target_folder,
        ),
        corrected_fields=fields,
        corrected_by="user-1",
    )


def correction_record(
    file_name: str = "Track Record 2024.pdf",
    predicted_type: str = "Other",
    corrected_type: Optional[str] = "Track Record",
    predicted_category: str = "Other",
    corrected_category: Optional[str] = None,
    confidence: float = 0.6,
    client_type: Optional[str] = "borrower",
    weight: float = 1.0,
    created_at: datetime = T0,
    checklist: Optional[list[ChecklistSelection]] = None,
) -> FilingCorrectionRecord:
    fields = []
    if corrected_type is not None:
        fields.append(CorrectableField.FILE_TYPE)
    if corrected_category is not None:
        fields.append(CorrectableField.CATEGORY)
    if checklist is not None:
        fields.append(CorrectableField.CHECKLIST_ITEMS)
    return FilingCorrectionRecord(
        id=str(uuid.uuid4()),
        file_name=file_name,
        file_name_normalized=normalize_filename(file_name),
        content_hash=content_hash(file_name),
        content_summary=f"Summary of {file_name}",
        client_type=client_type,
        ai_prediction=prediction(predicted_type, predicted_category, confidence=confidence),
        user_correction=UserCorrection(
            file_type=corrected_type,
            category=corrected_category,
            checklist_items=checklist,
        ),
        corrected_fields=fields,
        correction_weight=weight,
        created_at=created_at,
    )
