"""
Sanitisation of extracted-intelligence fields returned by the classifier.

The classifier is an upstream model and its output is not trusted to match
the storage schema. Unknown value types become text, missing confidence
becomes 0, unrecognised keys are dropped and entries without a field path
are skipped. Nothing in here raises on malformed input.
"""

import re
from typing import Any, Optional

import structlog

from docfiling.models.enums import ValueType
from docfiling.schemas.bulk import ExtractedIntelligence, IntelligenceField

logger = structlog.get_logger(__name__)

_NUMERIC_NOISE = re.compile(r"[£$€,%\s]")

_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}


def _coerce_value_type(raw: Any) -> ValueType:
    try:
        return ValueType(str(raw).lower())
    except ValueError:
        return ValueType.TEXT


def _coerce_confidence(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return min(max(value, 0.0), 1.0)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(_NUMERIC_NOISE.sub("", value))
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def coerce_value(value: Any, value_type: ValueType) -> tuple[Any, ValueType]:
    """
    Fit value to value_type. When it does not fit, fall back to
    (str(value), TEXT) so the field is kept rather than rejected.
    """
    if value is None:
        return None, value_type

    if value_type in (ValueType.NUMBER, ValueType.CURRENCY, ValueType.PERCENTAGE):
        number = _as_number(value)
        if number is not None:
            return number, value_type
    elif value_type == ValueType.BOOLEAN:
        flag = _as_bool(value)
        if flag is not None:
            return flag, value_type
    elif value_type == ValueType.ARRAY:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value], value_type
        return [str(value)], value_type
    elif isinstance(value, (str, int, float, bool)):
        return str(value), value_type

    return str(value), ValueType.TEXT


def sanitize_field(raw: Any) -> Optional[IntelligenceField]:
    if not isinstance(raw, dict):
        return None
    field_path = raw.get("fieldPath") or raw.get("field_path")
    if not field_path or not isinstance(field_path, str):
        return None

    value_type = _coerce_value_type(raw.get("valueType", raw.get("value_type")))
    value, value_type = coerce_value(raw.get("value"), value_type)

    label = raw.get("label") or field_path.split(".")[-1]
    category = raw.get("category") or field_path.split(".")[0]

    return IntelligenceField(
        field_path=field_path,
        label=str(label),
        category=str(category),
        value=value,
        value_type=value_type,
        is_canonical=bool(raw.get("isCanonical", raw.get("is_canonical", False))),
        confidence=_coerce_confidence(raw.get("confidence")),
        source_text=_optional_str(raw.get("sourceText", raw.get("source_text"))),
        original_label=_optional_str(raw.get("originalLabel", raw.get("original_label"))),
        matched_alias=_optional_str(raw.get("matchedAlias", raw.get("matched_alias"))),
    )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def sanitize_intelligence_fields(raw_fields: Optional[list[Any]]) -> list[IntelligenceField]:
    fields = []
    dropped = 0
    for raw in raw_fields or []:
        field = sanitize_field(raw)
        if field is None:
            dropped += 1
            continue
        fields.append(field)
    if dropped:
        logger.warning("intelligence_fields_dropped", dropped=dropped, kept=len(fields))
    return fields


def build_extracted_data(fields: list[IntelligenceField]) -> dict[str, Any]:
    """Nest fields by dotted path: 'financials.value' -> {'financials': {'value': {...}}}."""
    data: dict[str, Any] = {}
    for field in fields:
        parts = field.field_path.split(".")
        current = data
        for part in parts[:-1]:
            nxt = current.get(part)
            if not isinstance(nxt, dict):
                nxt = {}
                current[part] = nxt
            current = nxt
        current[parts[-1]] = {
            "value": field.value,
            "type": field.value_type.value,
            "confidence": field.confidence,
            "label": field.label,
        }
    return data


def build_extracted_intelligence(
    raw_fields: Optional[list[Any]],
    insights: Optional[dict[str, Any]] = None,
) -> Optional[ExtractedIntelligence]:
    fields = sanitize_intelligence_fields(raw_fields)
    if not fields and not insights:
        return None
    return ExtractedIntelligence(fields=fields, insights=insights if isinstance(insights, dict) else None)
