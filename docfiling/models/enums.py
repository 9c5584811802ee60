"""
Python enums for every status and closed vocabulary in the filing pipeline.
Values are stored verbatim in the database and returned by the API.
"""

from enum import Enum


class BatchStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    REVIEW = "review"
    COMPLETED = "completed"
    PARTIAL = "partial"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY_FOR_REVIEW = "ready_for_review"
    FILED = "filed"
    ERROR = "error"


class ExportStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


class ExportFormat(str, Enum):
    OPENAI_CHAT = "openai_chat"
    TOGETHER_CHAT = "together_chat"
    ALPACA = "alpaca"


class BatchScope(str, Enum):
    CLIENT = "client"
    INTERNAL = "internal"
    PERSONAL = "personal"


class ProcessingMode(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class VersionType(str, Enum):
    MINOR = "minor"
    SIGNIFICANT = "significant"


class ValueType(str, Enum):
    """Tag for an extracted intelligence field value."""
    STRING = "string"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"
    PERCENTAGE = "percentage"
    ARRAY = "array"
    TEXT = "text"
    BOOLEAN = "boolean"


class CorrectableField(str, Enum):
    """Fields a reviewer can override on an AI prediction."""
    FILE_TYPE = "fileType"
    CATEGORY = "category"
    TARGET_FOLDER = "targetFolder"
    IS_INTERNAL = "isInternal"
    CHECKLIST_ITEMS = "checklistItems"


class ConfusionField(str, Enum):
    FILE_TYPE = "fileType"
    CATEGORY = "category"
    FOLDER = "folder"


class MatchType(str, Enum):
    EXACT = "exact"
    SIMILAR = "similar"
