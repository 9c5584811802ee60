"""
Tests for status transitions and batch status aggregation.
"""

import pytest

from docfiling.errors import InvalidTransitionError
from docfiling.models.enums import BatchStatus, ExportStatus, ItemStatus
from docfiling.pipeline.state_machine import (
    aggregate_batch_status,
    can_transition,
    ensure_transition,
)


class TestTransitions:
    @pytest.mark.parametrize("current,target", [
        (BatchStatus.UPLOADING, BatchStatus.PROCESSING),
        (BatchStatus.PROCESSING, BatchStatus.REVIEW),
        (BatchStatus.REVIEW, BatchStatus.COMPLETED),
        (BatchStatus.PARTIAL, BatchStatus.PROCESSING),
        (ItemStatus.PENDING, ItemStatus.PROCESSING),
        (ItemStatus.PROCESSING, ItemStatus.ERROR),
        (ItemStatus.READY_FOR_REVIEW, ItemStatus.FILED),
        (ItemStatus.ERROR, ItemStatus.PENDING),
        (ExportStatus.PENDING, ExportStatus.GENERATING),
        (ExportStatus.GENERATING, ExportStatus.COMPLETED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        ensure_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (BatchStatus.UPLOADING, BatchStatus.REVIEW),
        (BatchStatus.COMPLETED, BatchStatus.PROCESSING),
        (ItemStatus.PENDING, ItemStatus.FILED),
        (ItemStatus.FILED, ItemStatus.ERROR),
        (ExportStatus.COMPLETED, ExportStatus.GENERATING),
        (ExportStatus.ERROR, ExportStatus.PENDING),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc:
            ensure_transition(current, target)
        assert exc.value.error_code == "ERR_INVALID_TRANSITION"

    def test_mixed_types_rejected(self):
        assert not can_transition(ItemStatus.PENDING, BatchStatus.PROCESSING)


class TestAggregateBatchStatus:
    def test_in_flight_keeps_processing(self):
        assert aggregate_batch_status([ItemStatus.FILED, ItemStatus.PENDING]) == BatchStatus.PROCESSING
        assert aggregate_batch_status([ItemStatus.PROCESSING]) == BatchStatus.PROCESSING

    def test_all_filed_completes(self):
        assert aggregate_batch_status([ItemStatus.FILED, ItemStatus.FILED]) == BatchStatus.COMPLETED

    def test_filed_with_errors_is_partial(self):
        assert aggregate_batch_status([ItemStatus.FILED, ItemStatus.ERROR]) == BatchStatus.PARTIAL

    def test_all_errors_is_partial(self):
        assert aggregate_batch_status([ItemStatus.ERROR, ItemStatus.ERROR]) == BatchStatus.PARTIAL

    def test_awaiting_review(self):
        statuses = [ItemStatus.READY_FOR_REVIEW, ItemStatus.FILED, ItemStatus.ERROR]
        assert aggregate_batch_status(statuses) == BatchStatus.REVIEW

    def test_no_items(self):
        assert aggregate_batch_status([]) == BatchStatus.REVIEW
