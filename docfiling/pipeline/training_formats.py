"""
Turn filing corrections into supervised fine-tuning examples.
"""

import json
from collections import Counter
from typing import Iterable

from docfiling.clock import as_utc
from docfiling.models.enums import ExportFormat
from docfiling.schemas.exports import ExportCriteria, ExportStats
from docfiling.schemas.feedback import FilingCorrectionRecord


SYSTEM_PROMPT = (
    "You are a document classification agent for a real estate finance company. "
    "Classify documents accurately based on their content and filename."
)


def corrected_label(correction: FilingCorrectionRecord) -> dict[str, str]:
    """Target label: the reviewer's value wins, else the original prediction."""
    ai = correction.ai_prediction
    user = correction.user_correction
    return {
        "fileType": user.file_type or ai.file_type,
        "category": user.category or ai.category,
        "targetFolder": user.target_folder or ai.target_folder,
    }


def _user_prompt(correction: FilingCorrectionRecord) -> str:
    return (
        "Classify this document:\n"
        f"Filename: {correction.file_name}\n"
        f"Summary: {correction.content_summary}\n"
        "\n"
        "Return JSON with: fileType, category, targetFolder"
    )


def format_training_example(correction: FilingCorrectionRecord, export_format: ExportFormat) -> dict:
    user_prompt = _user_prompt(correction)
    assistant = json.dumps(corrected_label(correction))

    if export_format == ExportFormat.OPENAI_CHAT:
        return {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
                {"role": "assistant", "content": assistant},
            ]
        }
    if export_format == ExportFormat.TOGETHER_CHAT:
        return {
            "text": (
                f"<|system|>\n{SYSTEM_PROMPT}\n"
                f"<|user|>\n{user_prompt}\n"
                f"<|assistant|>\n{assistant}"
            )
        }
    if export_format == ExportFormat.ALPACA:
        return {
            "instruction": SYSTEM_PROMPT,
            "input": user_prompt,
            "output": assistant,
        }
    raise ValueError(f"Unsupported export format: {export_format}")


def filter_corrections(
    corrections: Iterable[FilingCorrectionRecord],
    criteria: ExportCriteria,
) -> list[FilingCorrectionRecord]:
    """Apply weight, date range, client type and corrected-field filters in sequence."""
    selected = list(corrections)

    if criteria.min_correction_weight is not None:
        selected = [c for c in selected if c.correction_weight >= criteria.min_correction_weight]
    start, end = as_utc(criteria.date_range_start), as_utc(criteria.date_range_end)
    if start is not None:
        selected = [c for c in selected if c.created_at >= start]
    if end is not None:
        selected = [c for c in selected if c.created_at <= end]
    if criteria.client_types:
        allowed = set(criteria.client_types)
        selected = [c for c in selected if c.client_type and c.client_type in allowed]
    if criteria.corrected_fields_filter:
        wanted = set(criteria.corrected_fields_filter)
        selected = [c for c in selected if wanted.intersection(c.corrected_fields)]

    return selected


def build_export_stats(corrections: list[FilingCorrectionRecord]) -> ExportStats:
    labels = [corrected_label(c) for c in corrections]
    by_type = Counter(label["fileType"] for label in labels if label["fileType"])
    by_category = Counter(label["category"] for label in labels if label["category"])
    by_field = Counter(f.value for c in corrections for f in c.corrected_fields)

    return ExportStats(
        total_examples=len(corrections),
        by_file_type=dict(by_type),
        by_category=dict(by_category),
        by_correction_type=dict(by_field),
    )


def to_jsonl(examples: Iterable[dict]) -> str:
    return "\n".join(json.dumps(e) for e in examples)
