"""
Tests for training example formatting and export filters.
"""

import json
from datetime import timedelta

from docfiling.models.enums import CorrectableField, ExportFormat
from docfiling.pipeline.training_formats import (
    SYSTEM_PROMPT,
    build_export_stats,
    corrected_label,
    filter_corrections,
    format_training_example,
    to_jsonl,
)
from docfiling.schemas.exports import ExportCriteria
from tests.factories import T0, correction_record


class TestCorrectedLabel:
    def test_correction_wins(self):
        label = corrected_label(correction_record(corrected_type="Track Record"))
        assert label["fileType"] == "Track Record"

    def test_falls_back_to_prediction(self):
        label = corrected_label(correction_record(corrected_type="Track Record"))
        assert label["category"] == "Other"
        assert label["targetFolder"] == "miscellaneous"


class TestFormatTrainingExample:
    def test_openai_chat(self):
        example = format_training_example(correction_record(), ExportFormat.OPENAI_CHAT)
        roles = [m["role"] for m in example["messages"]]
        assert roles == ["system", "user", "assistant"]
        assert example["messages"][0]["content"] == SYSTEM_PROMPT
        assert "Filename: Track Record 2024.pdf" in example["messages"][1]["content"]
        assert json.loads(example["messages"][2]["content"])["fileType"] == "Track Record"

    def test_together_chat(self):
        example = format_training_example(correction_record(), ExportFormat.TOGETHER_CHAT)
        text = example["text"]
        assert text.startswith("<|system|>\n")
        assert "<|user|>\n" in text
        assert '"fileType": "Track Record"' in text.split("<|assistant|>\n")[1]

    def test_alpaca(self):
        example = format_training_example(correction_record(), ExportFormat.ALPACA)
        assert set(example) == {"instruction", "input", "output"}
        assert json.loads(example["output"])["fileType"] == "Track Record"


class TestFilterCorrections:
    def test_no_criteria_keeps_everything(self):
        corrections = [correction_record(), correction_record()]
        assert len(filter_corrections(corrections, ExportCriteria())) == 2

    def test_min_weight(self):
        corrections = [correction_record(weight=0.5), correction_record(weight=1.0)]
        kept = filter_corrections(corrections, ExportCriteria(min_correction_weight=0.8))
        assert [c.correction_weight for c in kept] == [1.0]

    def test_date_range_is_inclusive(self):
        corrections = [
            correction_record("early.pdf", created_at=T0 - timedelta(days=2)),
            correction_record("start.pdf", created_at=T0),
            correction_record("end.pdf", created_at=T0 + timedelta(days=1)),
            correction_record("late.pdf", created_at=T0 + timedelta(days=3)),
        ]
        criteria = ExportCriteria(date_range_start=T0, date_range_end=T0 + timedelta(days=1))
        assert [c.file_name for c in filter_corrections(corrections, criteria)] == ["start.pdf", "end.pdf"]

    def test_naive_bounds_read_as_utc(self):
        corrections = [
            correction_record("early.pdf", created_at=T0 - timedelta(days=2)),
            correction_record("start.pdf", created_at=T0),
        ]
        # Built without validation, as criteria loaded from an older stored job would be
        criteria = ExportCriteria.model_construct(
            date_range_start=T0.replace(tzinfo=None),
            date_range_end=None,
            min_correction_weight=None,
            client_types=None,
            corrected_fields_filter=None,
        )
        assert [c.file_name for c in filter_corrections(corrections, criteria)] == ["start.pdf"]

    def test_client_types(self):
        corrections = [
            correction_record(client_type="lender"),
            correction_record(client_type="borrower"),
            correction_record(client_type=None),
        ]
        kept = filter_corrections(corrections, ExportCriteria(client_types=["lender"]))
        assert [c.client_type for c in kept] == ["lender"]

    def test_corrected_fields_intersection(self):
        corrections = [
            correction_record(corrected_type="Track Record"),
            correction_record(corrected_type=None, corrected_category="Credit"),
        ]
        criteria = ExportCriteria(corrected_fields_filter=[CorrectableField.CATEGORY])
        kept = filter_corrections(corrections, criteria)
        assert len(kept) == 1
        assert kept[0].user_correction.category == "Credit"


class TestExportStats:
    def test_counts_by_resulting_label(self):
        corrections = [
            correction_record(corrected_type="Track Record"),
            correction_record(corrected_type="Track Record"),
            correction_record(corrected_type=None, corrected_category="Credit"),
        ]
        stats = build_export_stats(corrections)
        assert stats.total_examples == 3
        assert stats.by_file_type == {"Track Record": 2, "Other": 1}
        assert stats.by_category == {"Other": 2, "Credit": 1}
        assert stats.by_correction_type == {"fileType": 2, "category": 1}


class TestToJsonl:
    def test_one_object_per_line(self):
        out = to_jsonl([{"a": 1}, {"b": 2}])
        assert [json.loads(line) for line in out.split("\n")] == [{"a": 1}, {"b": 2}]

    def test_empty(self):
        assert to_jsonl([]) == ""
