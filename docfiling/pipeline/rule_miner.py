"""
Pure aggregation over a snapshot of corrections: consolidated from->to rules
and correction statistics. Nothing here touches storage.
"""

from datetime import datetime
from typing import Iterable, Optional

from docfiling.clock import as_utc
from docfiling.config import settings
from docfiling.models.enums import CorrectableField
from docfiling.schemas.feedback import (
    ConsolidatedRule,
    ConsolidatedRules,
    CorrectionStats,
    FilingCorrectionRecord,
)


def _bucket(
    corrections: Iterable[FilingCorrectionRecord],
    field: CorrectableField,
    max_examples: int,
) -> list[ConsolidatedRule]:
    """Group corrections of one field by (predicted, corrected) value."""
    attr = "file_type" if field == CorrectableField.FILE_TYPE else "category"
    buckets: dict[tuple[str, str], ConsolidatedRule] = {}

    for c in corrections:
        predicted = getattr(c.ai_prediction, attr)
        corrected = getattr(c.user_correction, attr)
        if not corrected or corrected == predicted:
            continue

        rule = buckets.get((predicted, corrected))
        if rule is None:
            rule = ConsolidatedRule(field=field, from_value=predicted, to_value=corrected, count=0)
            buckets[(predicted, corrected)] = rule

        rule.count += 1
        if len(rule.examples) < max_examples:
            rule.examples.append(c.file_name)
        # Running mean of the AI's confidence when it got this wrong
        rule.avg_confidence = (
            rule.avg_confidence * (rule.count - 1) + c.ai_prediction.confidence
        ) / rule.count

    return list(buckets.values())


def _select(
    rules: list[ConsolidatedRule],
    min_occurrences: int,
    touching: Optional[str],
) -> list[ConsolidatedRule]:
    kept = [r for r in rules if r.count >= min_occurrences]
    kept.sort(key=lambda r: r.count, reverse=True)
    if touching:
        kept = [r for r in kept if r.from_value == touching or r.to_value == touching]
    return kept


def mine_rules(
    corrections: list[FilingCorrectionRecord],
    file_type: Optional[str] = None,
    category: Optional[str] = None,
    limit: Optional[int] = None,
    min_occurrences: Optional[int] = None,
    max_examples: Optional[int] = None,
) -> ConsolidatedRules:
    """
    Summarise corrections into rules like "Other -> Track Record (x15)".
    Only patterns seen min_occurrences times survive. When file_type or
    category is given, only rules whose from or to matches it are kept.
    """
    limit = limit or settings.RULES_LIMIT
    min_occurrences = min_occurrences or settings.RULE_MIN_OCCURRENCES
    max_examples = max_examples or settings.RULE_MAX_EXAMPLES

    file_type_rules = _select(
        _bucket(corrections, CorrectableField.FILE_TYPE, max_examples),
        min_occurrences,
        file_type,
    )
    category_rules = _select(
        _bucket(corrections, CorrectableField.CATEGORY, max_examples),
        min_occurrences,
        category,
    )

    return ConsolidatedRules(
        file_type_rules=file_type_rules[:limit],
        category_rules=category_rules[:limit],
        total_corrections=len(corrections),
    )


def correction_stats(
    corrections: Iterable[FilingCorrectionRecord],
    since: Optional[datetime] = None,
) -> CorrectionStats:
    """Counts by corrected field, AI-predicted file type and AI-predicted category."""
    since = as_utc(since)
    stats = CorrectionStats()

    for c in corrections:
        if since is not None and c.created_at < since:
            continue
        stats.total_corrections += 1
        for field in c.corrected_fields:
            stats.by_field[field.value] = stats.by_field.get(field.value, 0) + 1
        ft = c.ai_prediction.file_type
        stats.by_file_type[ft] = stats.by_file_type.get(ft, 0) + 1
        cat = c.ai_prediction.category
        stats.by_category[cat] = stats.by_category.get(cat, 0) + 1

    return stats
