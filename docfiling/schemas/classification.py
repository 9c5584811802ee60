"""
Classification payloads shared by the cache, the correction store and the
bulk processor.
"""

from typing import Optional

from pydantic import BaseModel, Field

from docfiling.models.enums import CorrectableField


class ChecklistSuggestion(BaseModel):
    """An AI-suggested checklist item."""
    item_id: str
    item_name: str
    category: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    reasoning: Optional[str] = None


class ChecklistSelection(BaseModel):
    """A checklist item chosen by a reviewer."""
    item_id: str
    item_name: str


class Classification(BaseModel):
    """A classification result as cached for a content hash."""
    file_type: str
    category: str
    target_folder: str = ""
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    is_internal: Optional[bool] = None
    suggested_checklist_items: Optional[list[ChecklistSuggestion]] = None


class AIPrediction(Classification):
    """What the classifier said before a human looked at it."""


class UserCorrection(BaseModel):
    """Reviewer overrides. Unset fields mean 'kept the AI value'."""
    file_type: Optional[str] = None
    category: Optional[str] = None
    target_folder: Optional[str] = None
    is_internal: Optional[bool] = None
    checklist_items: Optional[list[ChecklistSelection]] = None


# correctedFields vocabulary -> attribute name on AIPrediction / UserCorrection
FIELD_ATTRIBUTES: dict[CorrectableField, str] = {
    CorrectableField.FILE_TYPE: "file_type",
    CorrectableField.CATEGORY: "category",
    CorrectableField.TARGET_FOLDER: "target_folder",
    CorrectableField.IS_INTERNAL: "is_internal",
    CorrectableField.CHECKLIST_ITEMS: "checklist_items",
}


def field_differs(field: CorrectableField, prediction: AIPrediction, correction: UserCorrection) -> bool:
    """
    True when the correction actually overrides the prediction for field.
    A checklist selection always counts: the prediction holds suggestions,
    not the pre-selection the reviewer changed.
    """
    if field == CorrectableField.CHECKLIST_ITEMS:
        return correction.checklist_items is not None

    attr = FIELD_ATTRIBUTES[field]
    corrected = getattr(correction, attr)
    if corrected is None:
        return False
    return corrected != getattr(prediction, attr)
